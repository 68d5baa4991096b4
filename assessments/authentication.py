"""
Guest access for invited candidates without an account.

Requests carry ``Authorization: Invitation <token>``. The authenticated
principal is a ``GuestCandidate`` wrapping the invitation, never a User.
"""
from django.utils.translation import gettext_lazy as _
from rest_framework import authentication, exceptions

from exams.models import Invitation

from .identity import Guest


class GuestCandidate:
    is_authenticated = True
    is_anonymous = False
    is_active = True
    is_staff = False
    is_superuser = False
    is_staff_grader = False
    role = 'guest'
    pk = None
    id = None

    def __init__(self, invitation):
        self.invitation = invitation
        self.email = invitation.email

    def __str__(self):
        return f"guest {self.email}"

    @property
    def identity(self):
        return Guest(self.invitation.pk, self.invitation.email, self.invitation.name)


class InvitationTokenAuthentication(authentication.BaseAuthentication):
    keyword = 'Invitation'

    def authenticate(self, request):
        auth = authentication.get_authorization_header(request).split()
        if not auth or auth[0].lower() != self.keyword.lower().encode():
            return None

        if len(auth) != 2:
            raise exceptions.AuthenticationFailed(_('Invalid invitation header.'))

        try:
            token = auth[1].decode()
        except UnicodeError:
            raise exceptions.AuthenticationFailed(_('Invalid invitation header.'))

        invitation = Invitation.objects.select_related('exam').filter(token=token).first()
        if invitation is None:
            raise exceptions.AuthenticationFailed(_('Invalid invitation token.'))
        if not invitation.is_usable:
            raise exceptions.AuthenticationFailed(_('Invitation has expired.'))

        return GuestCandidate(invitation), invitation

    def authenticate_header(self, request):
        return self.keyword
