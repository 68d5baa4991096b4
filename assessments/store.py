"""
Session store access layer.

The integrity monitor and the submission coordinator never read-modify-write
a session in application memory. Every mutation goes through one of the
atomic operations below:

- ``append_violation``: conditional increment-and-fetch of the warning
  counter plus the audit record, in one transaction.
- ``transition``: compare-and-swap from IN_PROGRESS to a terminal status.
- ``save_answers``: last-write-wins answer upsert, only while IN_PROGRESS.
- ``find_or_create_result``: result creation backed by the unique
  (exam, candidate, attempt) constraint.
"""
import functools
import logging
import time

from django.conf import settings
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F

from exams.models import Exam

from .exceptions import AlreadyTerminal, ExamConfigMissing, SessionNotFound
from .models import ExamSession, Result, SessionAnswer, SessionStatus, Violation

logger = logging.getLogger(__name__)


def retry_on_contention(func):
    """Retry on database lock contention; re-raise once attempts run out."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        config = settings.EXAM_INTEGRITY
        attempts = max(1, config['COUNTER_RETRY_ATTEMPTS'])
        backoff = config['COUNTER_RETRY_BACKOFF']
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except OperationalError as exc:
                if attempt == attempts or transaction.get_connection().in_atomic_block:
                    raise
                logger.warning("%s contended (attempt %d/%d): %s", func.__name__, attempt, attempts, exc)
                time.sleep(backoff * attempt)

    return wrapper


def _status_of(session_id):
    return ExamSession.objects.values_list('status', flat=True).filter(pk=session_id).first()


def load_session(session_id):
    session = (
        ExamSession.objects
        .select_related('exam', 'invitation')
        .filter(pk=session_id)
        .first()
    )
    if session is None:
        raise SessionNotFound(session_id)
    return session


def exam_of(session):
    if session.exam_id is None:
        raise ExamConfigMissing(session.pk)
    try:
        return session.exam
    except Exam.DoesNotExist:
        raise ExamConfigMissing(session.pk)


@retry_on_contention
def append_violation(session_id, exam_id, kind, severity, description, detail, detected_at):
    """
    Add one violation and bump the counter by exactly 1.

    Returns ``(warning_count, violation)``. Raises ``AlreadyTerminal`` (and
    writes nothing) when the session is no longer IN_PROGRESS.
    """
    with transaction.atomic():
        updated = (
            ExamSession.objects
            .filter(pk=session_id, status=SessionStatus.IN_PROGRESS)
            .update(warning_count=F('warning_count') + 1)
        )
        if not updated:
            raise AlreadyTerminal(session_id, _status_of(session_id))

        violation = Violation.objects.create(
            session_id=session_id,
            exam_id=exam_id,
            kind=kind,
            severity=severity,
            description=description,
            detail=detail,
            detected_at=detected_at,
        )
        # Read back inside the same transaction: the row is still ours
        warning_count = ExamSession.objects.values_list('warning_count', flat=True).get(pk=session_id)

    return warning_count, violation


def _upsert_answers(session_id, answers, saved_at):
    for question_id, payload in answers:
        SessionAnswer.objects.update_or_create(
            session_id=session_id,
            question_id=str(question_id),
            defaults={'kind': payload.kind, 'data': payload.to_dict(), 'saved_at': saved_at},
        )


def save_answers(session_id, answers, saved_at):
    """Autosave. Raises ``AlreadyTerminal`` (and writes nothing) once the session has ended."""
    with transaction.atomic():
        session = ExamSession.objects.select_for_update().filter(pk=session_id).first()
        if session is None:
            raise SessionNotFound(session_id)
        if not session.is_in_progress:
            raise AlreadyTerminal(session_id, session.status)
        _upsert_answers(session_id, answers, saved_at)


def transition(session_id, target, submitted_at, reason="", answers=None, trigger_violation_id=None):
    """
    Move a session from IN_PROGRESS to ``target``.

    Exactly one concurrent caller wins. The others get ``AlreadyTerminal``
    and must replay the result lookup instead. Answers (candidate path only) are merged
    in the same transaction as the winning transition.
    """
    with transaction.atomic():
        session = ExamSession.objects.select_for_update().filter(pk=session_id).first()
        if session is None:
            raise SessionNotFound(session_id)
        if not session.is_in_progress:
            raise AlreadyTerminal(session_id, session.status)

        if answers:
            _upsert_answers(session_id, answers, submitted_at)

        won = (
            ExamSession.objects
            .filter(pk=session_id, status=SessionStatus.IN_PROGRESS)
            .update(status=target, submitted_at=submitted_at, auto_submit_reason=reason[:255])
        )
        if not won:
            raise AlreadyTerminal(session_id, _status_of(session_id))
        if trigger_violation_id is not None:
            Violation.objects.filter(pk=trigger_violation_id).update(auto_submit_triggered=True)


def result_key(session):
    return {
        'exam_id': session.exam_id,
        'candidate_key': session.candidate_key,
        'attempt_number': session.attempt_number,
    }


def find_or_create_result(session, grade, graded_at):
    """
    Return ``(result, created)`` for the session's (exam, candidate, attempt).

    ``grade`` is only called when no result exists yet. If a concurrent
    caller inserts first, the unique constraint rejects our insert and the
    winner's row is returned instead.
    """
    key = result_key(session)
    existing = Result.objects.filter(**key).first()
    if existing is not None:
        return existing, False

    fields = grade()
    try:
        with transaction.atomic():
            result = Result.objects.create(
                session=session,
                user_id=session.user_id,
                invitation_id=session.invitation_id,
                submitted_at=session.submitted_at,
                graded_at=graded_at if fields['status'] == Result.Status.GRADED else None,
                **key,
                **fields,
            )
    except IntegrityError:
        logger.warning("Duplicate result for %s collapsed into the existing record", key)
        return Result.objects.get(**key), False

    return result, True
