from rest_framework import permissions

class IsGraderOrAdmin(permissions.BasePermission):
    """
    Allows access to Admins, Examiners, and Graders.
    Strictly blocks Candidates and invitation guests.
    """
    def has_permission(self, request, view):
        # 1. User must be logged in
        if not request.user or not request.user.is_authenticated:
            return False

        # 2. Check Role
        return bool(getattr(request.user, 'is_staff_grader', False))

class IsEnrolledUser(permissions.BasePermission):
    """Blocks invitation guests from account-only endpoints."""

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return getattr(request.user, 'invitation', None) is None
