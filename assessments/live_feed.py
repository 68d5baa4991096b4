"""
Live monitoring feed for proctors.

Receivers below push monitor-facing events into a capped per-exam list in the
Django cache. Losing an event (cache eviction, a failing receiver) is fine:
the database rows remain the record of truth.
"""
import logging

from django.conf import settings
from django.core.cache import cache
from django.db.models import Count
from django.dispatch import receiver
from django.utils import timezone

from .models import ExamSession, SessionStatus, Violation
from .notifications import result_created, result_published, session_submitted, violation_recorded

logger = logging.getLogger(__name__)


def feed_key(exam_id):
    return f"exam-live-feed:{exam_id}"


def push_event(exam_id, event_type, **data):
    if exam_id is None:
        return
    config = settings.EXAM_INTEGRITY
    key = feed_key(exam_id)
    events = cache.get(key) or []
    events.append({'type': event_type, 'at': timezone.now().isoformat(), **data})
    cache.set(key, events[-config['LIVE_FEED_SIZE']:], config['LIVE_FEED_TTL'])


def recent_events(exam_id):
    return list(cache.get(feed_key(exam_id)) or [])


@receiver(violation_recorded)
def on_violation(sender, exam_id, session_id, **kwargs):
    push_event(
        exam_id, 'violation',
        session_id=session_id,
        kind=kwargs.get('kind'),
        severity=kwargs.get('severity'),
        warning_count=kwargs.get('warning_count'),
        max_warnings=kwargs.get('max_warnings'),
        candidate=kwargs.get('candidate_key'),
    )


@receiver(session_submitted)
def on_session_submitted(sender, exam_id, session_id, **kwargs):
    push_event(
        exam_id, 'session_ended',
        session_id=session_id,
        status=kwargs.get('status'),
        reason=kwargs.get('reason'),
        candidate=kwargs.get('candidate_key'),
    )


@receiver(result_created)
def on_result_created(sender, exam_id, session_id, **kwargs):
    push_event(exam_id, 'result_created', session_id=session_id, result_id=kwargs.get('result_id'),
               status=kwargs.get('status'))


@receiver(result_published)
def on_result_published(sender, exam_id, session_id, **kwargs):
    push_event(exam_id, 'result_published', session_id=session_id, result_id=kwargs.get('result_id'))


def live_exam_stats(exam_id):
    by_status = dict(
        ExamSession.objects.filter(exam_id=exam_id)
        .values_list('status')
        .annotate(n=Count('id'))
    )
    live_students = [
        {
            'session_id': s.pk,
            'candidate': s.candidate_key,
            'warning_count': s.warning_count,
            'start_time': s.start_time,
            'end_time': s.end_time,
        }
        for s in ExamSession.objects.filter(exam_id=exam_id, status=SessionStatus.IN_PROGRESS).order_by('start_time')
    ]
    return {
        'exam_id': exam_id,
        'in_progress': by_status.get(SessionStatus.IN_PROGRESS, 0),
        'completed': by_status.get(SessionStatus.COMPLETED, 0),
        'auto_submitted': by_status.get(SessionStatus.AUTO_SUBMITTED, 0),
        'timed_out': by_status.get(SessionStatus.TIMED_OUT, 0),
        'abandoned': by_status.get(SessionStatus.ABANDONED, 0),
        'total_violations': Violation.objects.filter(exam_id=exam_id).count(),
        'live_students': live_students,
        'recent_events': recent_events(exam_id),
    }
