import logging
import random
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.utils import timezone

from exams.models import Invitation

from .exceptions import ExamNotAvailable
from .identity import Guest
from .models import ExamSession, SessionStatus

logger = logging.getLogger(__name__)

_shuffler = random.SystemRandom()


def start_or_resume(exam, candidate, now=None, ip_address=None, user_agent=""):
    """
    Return ``(session, created)``. An in-progress attempt is resumed as-is,
    with the question order it was given when it started.
    """
    now = now or timezone.now()
    active = (
        ExamSession.objects
        .filter(exam=exam, candidate_key=candidate.key, status=SessionStatus.IN_PROGRESS)
        .order_by('-attempt_number')
        .first()
    )
    if active is not None:
        return active, False

    if not exam.is_active:
        raise ExamNotAvailable("This exam is not open")

    attempts_used = ExamSession.objects.filter(exam=exam, candidate_key=candidate.key).count()
    if attempts_used >= exam.attempts_allowed:
        raise ExamNotAvailable("Maximum attempts reached")

    question_order = [str(pk) for pk in exam.questions.order_by('pk').values_list('pk', flat=True)]
    if not question_order:
        raise ExamNotAvailable("This exam has no questions assigned")
    if exam.shuffle_questions:
        _shuffler.shuffle(question_order)

    identity_fields = (
        {'invitation_id': candidate.invitation_id} if isinstance(candidate, Guest)
        else {'user_id': candidate.user_id}
    )
    attempt_number = attempts_used + 1
    try:
        with transaction.atomic():
            session = ExamSession.objects.create(
                exam=exam,
                candidate_key=candidate.key,
                attempt_number=attempt_number,
                start_time=now,
                end_time=now + timedelta(minutes=exam.duration()),
                question_order=question_order,
                ip_address=ip_address,
                user_agent=(user_agent or "")[:255],
                **identity_fields,
            )
    except IntegrityError:
        # A parallel start for the same attempt won; use its session
        return ExamSession.objects.get(exam=exam, candidate_key=candidate.key, attempt_number=attempt_number), False

    if isinstance(candidate, Guest):
        Invitation.objects.filter(pk=candidate.invitation_id, status=Invitation.Status.PENDING).update(
            status=Invitation.Status.STARTED
        )

    logger.info("Started session %s for %s on exam %s", session.pk, candidate.key, exam.pk)
    return session, True
