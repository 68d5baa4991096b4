# exams/models.py
import secrets

from django.db import models
from django.utils import timezone


def generate_invitation_token():
    return secrets.token_urlsafe(32)


class ExamCategory(models.Model):
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True)

    def __str__(self):
        return self.name

class Exam(models.Model):
    """
    Exam configuration. Read-only to the integrity engine: duration, grading
    policy, proctoring policy, late-submission policy and result visibility.
    """
    title = models.CharField(max_length=255)
    category = models.ForeignKey(ExamCategory, on_delete=models.SET_NULL, null=True, blank=True, related_name='exams')
    description = models.TextField(blank=True)

    duration_minutes = models.PositiveIntegerField(null=True, blank=True, help_text="Defaults to the platform setting")

    # --- Grading policy ---
    total_marks = models.FloatField(null=True, blank=True, help_text="Defaults to the sum of question points")
    passing_marks = models.FloatField(null=True, blank=True)
    pass_mark_percentage = models.PositiveIntegerField(null=True, blank=True, help_text="Defaults to the platform setting")
    negative_marking = models.BooleanField(default=False)
    negative_mark_value = models.FloatField(default=0)

    # --- Proctoring policy ---
    proctoring_enabled = models.BooleanField(default=False)
    violation_warning_limit = models.PositiveIntegerField(null=True, blank=True, help_text="Defaults to the platform setting")
    auto_submit_on_violation = models.BooleanField(default=False)

    # --- Late submission policy ---
    late_submission_allowed = models.BooleanField(default=False)
    late_submission_deadline = models.DateTimeField(null=True, blank=True)
    late_submission_penalty = models.FloatField(default=0)

    # --- Session policy ---
    shuffle_questions = models.BooleanField(default=True)
    attempts_allowed = models.PositiveIntegerField(default=1)

    # --- Result visibility (recruitment exams usually hide the score) ---
    show_only_confirmation = models.BooleanField(default=False)
    show_score_to_candidate = models.BooleanField(default=True)
    candidate_result_message = models.TextField(blank=True)

    is_active = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title

    def warning_limit(self):
        if self.violation_warning_limit:
            return self.violation_warning_limit
        from cores.models import PlatformSetting
        return PlatformSetting.load().default_violation_limit

    def duration(self):
        if self.duration_minutes:
            return self.duration_minutes
        from cores.models import PlatformSetting
        return PlatformSetting.load().default_exam_duration

    def pass_percentage(self):
        if self.pass_mark_percentage is not None:
            return self.pass_mark_percentage
        from cores.models import PlatformSetting
        return PlatformSetting.load().default_pass_mark

    def accepts_late_submission(self, now=None):
        """True while late work is still allowed after a session's hard deadline."""
        if not self.late_submission_allowed:
            return False
        now = now or timezone.now()
        return self.late_submission_deadline is None or now <= self.late_submission_deadline

    def score_visible_to(self, candidate):
        from assessments.identity import Guest

        if self.show_only_confirmation:
            return False
        if isinstance(candidate, Guest):
            return self.show_score_to_candidate
        return True

class Question(models.Model):
    class QuestionType(models.TextChoices):
        MULTIPLE_CHOICE = "multiple_choice", "Multiple Choice"
        TRUE_FALSE = "true_false", "True / False"
        MULTIPLE_RESPONSE = "multiple_response", "Multiple Response"
        FILL_BLANK = "fill_blank", "Fill in the Blank"
        SHORT_ANSWER = "short_answer", "Short Answer"
        ESSAY = "essay", "Essay"
        SUBJECTIVE = "subjective", "Subjective"
        CODING = "coding", "Coding"

    class Difficulty(models.TextChoices):
        EASY = "easy", "Easy"
        MEDIUM = "medium", "Medium"
        HARD = "hard", "Hard"

    # Nullable Exam: Allows questions to sit in the "Bank" without being assigned
    exam = models.ForeignKey(Exam, related_name='questions', on_delete=models.SET_NULL, null=True, blank=True)

    text = models.TextField()
    question_type = models.CharField(max_length=20, choices=QuestionType.choices, default=QuestionType.MULTIPLE_CHOICE)

    category = models.CharField(max_length=100, blank=True)
    difficulty = models.CharField(max_length=20, choices=Difficulty.choices, default=Difficulty.MEDIUM)
    points = models.FloatField(default=1)
    negative_marks = models.FloatField(null=True, blank=True, help_text="Overrides the exam's negative mark value")

    # Text questions: a single expected string or a list of accepted strings
    expected_answers = models.JSONField(null=True, blank=True)

    def __str__(self):
        return f"{self.text[:50]}..."

class Option(models.Model):
    question = models.ForeignKey(Question, related_name='options', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    is_correct = models.BooleanField(default=False)

    def __str__(self):
        return self.text

class Invitation(models.Model):
    """Guest access to one exam without a user account."""

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        STARTED = "STARTED", "Started"
        COMPLETED = "COMPLETED", "Completed"
        EXPIRED = "EXPIRED", "Expired"

    exam = models.ForeignKey(Exam, related_name='invitations', on_delete=models.CASCADE)
    token = models.CharField(max_length=64, unique=True, default=generate_invitation_token)
    email = models.EmailField()
    name = models.CharField(max_length=255)
    phone = models.CharField(max_length=20, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    expires_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=['email'])]

    def __str__(self):
        return f"{self.email} -> {self.exam.title}"

    @property
    def is_usable(self):
        if self.status == self.Status.EXPIRED:
            return False
        return self.expires_at is None or timezone.now() <= self.expires_at
