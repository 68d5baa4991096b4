# assessments/models.py
from django.db import models
from django.db.models import Q
from django.conf import settings
from exams.models import Exam, Invitation

from .answers import ANSWER_KINDS, parse_answer
from .identity import Enrolled, Guest
from .violations import Severity


class SessionStatus(models.TextChoices):
    IN_PROGRESS = "IN_PROGRESS", "In progress"
    COMPLETED = "COMPLETED", "Completed"
    AUTO_SUBMITTED = "AUTO_SUBMITTED", "Auto-submitted"
    ABANDONED = "ABANDONED", "Abandoned"
    TIMED_OUT = "TIMED_OUT", "Timed out"


TERMINAL_STATUSES = (
    SessionStatus.COMPLETED,
    SessionStatus.AUTO_SUBMITTED,
    SessionStatus.ABANDONED,
    SessionStatus.TIMED_OUT,
)


class ExamSession(models.Model):
    """Tracks a candidate's specific attempt at an exam."""
    exam = models.ForeignKey(Exam, on_delete=models.SET_NULL, null=True, related_name='sessions')

    # Candidate identity: exactly one of these is set
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name='exam_sessions')
    invitation = models.ForeignKey(Invitation, on_delete=models.CASCADE, null=True, blank=True, related_name='sessions')
    candidate_key = models.CharField(max_length=64, editable=False)
    attempt_number = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=20, choices=SessionStatus.choices, default=SessionStatus.IN_PROGRESS)
    warning_count = models.PositiveIntegerField(default=0)

    start_time = models.DateTimeField()
    end_time = models.DateTimeField()  # Hard deadline
    submitted_at = models.DateTimeField(null=True, blank=True)
    auto_submit_reason = models.CharField(max_length=255, blank=True)

    # Fixed at start so a resumed session presents the same order
    question_order = models.JSONField(default=list)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=255, blank=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(user__isnull=False, invitation__isnull=True)
                    | Q(user__isnull=True, invitation__isnull=False)
                ),
                name='session_single_candidate_identity',
            ),
            models.UniqueConstraint(
                fields=['exam', 'candidate_key', 'attempt_number'],
                name='unique_session_attempt',
            ),
        ]
        indexes = [
            models.Index(fields=['status', 'start_time']),
            models.Index(fields=['exam', 'status']),
        ]

    def __str__(self):
        return f"{self.candidate_key} - {self.exam_id} #{self.attempt_number}"

    def save(self, *args, **kwargs):
        if not self.candidate_key:
            self.candidate_key = self.candidate.key
        super().save(*args, **kwargs)

    @property
    def candidate(self):
        if self.invitation_id is not None:
            invitation = self.invitation
            return Guest(invitation.pk, invitation.email, invitation.name)
        return Enrolled(self.user_id)

    @property
    def is_in_progress(self):
        return self.status == SessionStatus.IN_PROGRESS

    def is_owned_by(self, identity):
        return self.candidate_key == identity.key

    def answer_map(self):
        """question id (str) -> answer payload, for grading."""
        return {answer.question_id: answer.payload for answer in self.answers.all()}


class SessionAnswer(models.Model):
    session = models.ForeignKey(ExamSession, related_name='answers', on_delete=models.CASCADE)
    question_id = models.CharField(max_length=64)
    kind = models.CharField(max_length=20, choices=[(k, k) for k in ANSWER_KINDS])
    data = models.JSONField()
    saved_at = models.DateTimeField()

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['session', 'question_id'], name='unique_answer_per_question'),
        ]

    @property
    def payload(self):
        return parse_answer(self.data)


class Violation(models.Model):
    """Immutable audit record of one accepted proctoring event."""

    class ReviewStatus(models.TextChoices):
        PENDING = "PENDING", "Pending"
        REVIEWED = "REVIEWED", "Reviewed"
        DISMISSED = "DISMISSED", "Dismissed"

    session = models.ForeignKey(ExamSession, related_name='violations', on_delete=models.CASCADE)
    exam = models.ForeignKey(Exam, related_name='violations', on_delete=models.SET_NULL, null=True)
    kind = models.CharField(max_length=40)
    severity = models.CharField(max_length=10, choices=Severity.choices, default=Severity.MEDIUM)
    description = models.CharField(max_length=255)
    detail = models.JSONField(null=True, blank=True)
    detected_at = models.DateTimeField()
    auto_submit_triggered = models.BooleanField(default=False)

    # Filled in by proctors after the fact
    review_status = models.CharField(max_length=10, choices=ReviewStatus.choices, default=ReviewStatus.PENDING)
    review_notes = models.TextField(blank=True)
    reviewed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['detected_at', 'id']
        indexes = [
            models.Index(fields=['session', 'kind']),
            models.Index(fields=['severity', 'review_status']),
        ]

    def __str__(self):
        return f"{self.kind} ({self.severity}) on session {self.session_id}"


class Result(models.Model):
    """Graded outcome of a finished session. At most one per (exam, candidate, attempt)."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending manual grading"
        GRADED = "GRADED", "Graded"
        PUBLISHED = "PUBLISHED", "Published"

    exam = models.ForeignKey(Exam, related_name='results', on_delete=models.CASCADE)
    session = models.OneToOneField(ExamSession, related_name='result', on_delete=models.CASCADE)
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name='results')
    invitation = models.ForeignKey(Invitation, on_delete=models.CASCADE, null=True, blank=True, related_name='results')
    candidate_key = models.CharField(max_length=64)
    attempt_number = models.PositiveIntegerField(default=1)

    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    question_results = models.JSONField(default=list)

    # --- Scoring ---
    raw_total = models.FloatField(default=0)
    clamped_total = models.FloatField(default=0)
    total_marks = models.FloatField(default=0)
    passing_marks = models.FloatField(default=0)
    percentage = models.FloatField(default=0)
    passed = models.BooleanField(default=False)
    correct_count = models.PositiveIntegerField(default=0)
    incorrect_count = models.PositiveIntegerField(default=0)
    unanswered_count = models.PositiveIntegerField(default=0)
    pending_manual_count = models.PositiveIntegerField(default=0)

    # --- Time analysis ---
    time_spent_seconds = models.PositiveIntegerField(default=0)
    average_time_per_question = models.FloatField(default=0)

    # --- Ranking (filled in by the ranking service) ---
    rank = models.PositiveIntegerField(null=True, blank=True)
    percentile = models.FloatField(null=True, blank=True)
    ranked_out_of = models.PositiveIntegerField(null=True, blank=True)

    late_submission = models.JSONField(null=True, blank=True)
    proctoring_report = models.JSONField(default=dict)

    submitted_at = models.DateTimeField(null=True, blank=True)
    graded_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    graded_at = models.DateTimeField(null=True, blank=True)
    published_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['exam', 'candidate_key', 'attempt_number'],
                name='unique_result_per_attempt',
            ),
        ]
        indexes = [
            models.Index(fields=['exam', 'status']),
            models.Index(fields=['exam', 'rank']),
        ]

    def __str__(self):
        return f"Result {self.candidate_key} - {self.exam_id} ({self.status})"
