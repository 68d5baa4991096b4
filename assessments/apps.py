from django.apps import AppConfig


class AssessmentsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'assessments'
    verbose_name = 'Exam sessions & grading'

    def ready(self):
        # Connects the live feed receivers
        from . import live_feed  # noqa: F401
