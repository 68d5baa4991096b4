from django.db import models
from django.core.cache import cache
from django.conf import settings

SETTINGS_CACHE_KEY = 'platform_settings'


class PlatformSetting(models.Model):
    """Single-row table of platform-wide exam defaults."""

    default_pass_mark = models.PositiveIntegerField(default=50, help_text="Pass mark percentage when an exam sets none")
    default_exam_duration = models.PositiveIntegerField(default=120, help_text="Duration in minutes when an exam sets none")
    default_violation_limit = models.PositiveIntegerField(default=3, help_text="Warnings before auto-submit when an exam sets none")

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)
        cache.set(SETTINGS_CACHE_KEY, self)

    def delete(self, *args, **kwargs):
        pass

    @classmethod
    def load(cls):
        obj = cache.get(SETTINGS_CACHE_KEY)
        if obj is None:
            obj, _ = cls.objects.get_or_create(pk=1)
            cache.set(SETTINGS_CACHE_KEY, obj)
        return obj

    def __str__(self):
        return "Platform Settings"


class AuditLog(models.Model):
    ACTION_CHOICES = [
        ('AUTO_SUBMIT', 'Auto-submitted (violations)'),
        ('TIMEOUT', 'Timed out'),
        ('ABANDON', 'Abandoned'),
        ('GRADE', 'Grade Submitted'),
        ('PUBLISH', 'Results Published'),
        ('REVIEW', 'Violation Reviewed'),
        ('SETTINGS', 'Settings Changed'),
    ]

    # Null actor means the engine acted on its own
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='audit_logs')
    action = models.CharField(max_length=20, choices=ACTION_CHOICES)
    target_model = models.CharField(max_length=50, help_text="e.g., ExamSession, Result, Violation")
    target_object_id = models.CharField(max_length=100, blank=True, null=True)
    details = models.TextField(blank=True)
    timestamp = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-timestamp']
        indexes = [models.Index(fields=['target_model', 'target_object_id'])]

    def __str__(self):
        return f"{self.actor or 'system'} - {self.action} - {self.timestamp}"

    @classmethod
    def record(cls, action, target, details="", actor=None):
        return cls.objects.create(
            actor=actor,
            action=action,
            target_model=type(target).__name__,
            target_object_id=str(target.pk),
            details=details,
        )
