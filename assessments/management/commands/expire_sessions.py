from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from assessments import store
from assessments.exceptions import AlreadyTerminal
from assessments.models import ExamSession, SessionStatus
from cores.models import AuditLog

class Command(BaseCommand):
    help = 'Marks in-progress sessions long past their deadline as ABANDONED'

    def add_arguments(self, parser):
        parser.add_argument(
            '--grace', type=int, default=settings.EXAM_INTEGRITY['ABANDON_GRACE_MINUTES'],
            help='Minutes past end_time before a session counts as abandoned',
        )
        parser.add_argument('--dry-run', action='store_true', help='Only list the sessions')

    def handle(self, *args, **options):
        now = timezone.now()
        cutoff = now - timedelta(minutes=options['grace'])
        stale = ExamSession.objects.filter(status=SessionStatus.IN_PROGRESS, end_time__lt=cutoff).order_by('end_time')

        abandoned = 0
        for session in stale:
            if options['dry_run']:
                self.stdout.write(f"Would abandon session {session.pk} ({session.candidate_key}, ended {session.end_time})")
                continue
            try:
                store.transition(
                    session.pk, SessionStatus.ABANDONED, submitted_at=session.end_time, reason="no terminal event received",
                )
            except AlreadyTerminal:
                # Finished by its candidate while we were sweeping
                continue
            AuditLog.record('ABANDON', session, f"Deadline {session.end_time.isoformat()} passed without submission")
            abandoned += 1

        if options['dry_run']:
            self.stdout.write(self.style.WARNING(f"{stale.count()} session(s) would be abandoned"))
        else:
            self.stdout.write(self.style.SUCCESS(f"Abandoned {abandoned} session(s)"))
