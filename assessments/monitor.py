"""
Integrity monitor: ingestion of proctoring violation events.

The warning counter is the only evidence behind a forced submission, so it is
never read-modified-written here. ``store.append_violation`` increments it in
the database and hands back the post-increment value.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.utils import timezone

from cores.models import AuditLog

from . import store
from .coordinator import TIME_LIMIT_REASON, SubmissionCoordinator
from .exceptions import AlreadyTerminal
from .models import SessionStatus, Violation
from .notifications import broadcast, violation_recorded
from .violations import classify

logger = logging.getLogger(__name__)

FORCED_SUBMIT_MESSAGE = "Exam auto-submitted due to violation limit exceeded"
TIMED_OUT_MESSAGE = "Exam time limit exceeded"
NOT_IN_PROGRESS = "session not in progress"
PROCTORING_DISABLED = "proctoring disabled"


@dataclass
class ViolationOutcome:
    accepted: bool
    warning_count: int
    max_warnings: Optional[int]
    forced_submit: bool = False
    severity: Optional[str] = None
    kind: Optional[str] = None
    reason: str = ""
    message: str = ""
    session_status: str = SessionStatus.IN_PROGRESS

    def candidate_warning(self):
        return {
            'warning_count': self.warning_count,
            'max_warnings': self.max_warnings,
            'kind': self.kind,
            'message': self.message,
        }

    def forced_submit_event(self):
        if not self.forced_submit:
            return None
        return {
            'reason': self.reason,
            'warning_count': self.warning_count,
            'message': FORCED_SUBMIT_MESSAGE,
        }

    def as_dict(self):
        body = {
            'accepted': self.accepted,
            'warning_count': self.warning_count,
            'max_warnings': self.max_warnings,
            'forced_submit': self.forced_submit,
            'status': self.session_status,
            'message': self.message,
        }
        if self.accepted:
            body['severity'] = self.severity
            body['warning'] = self.candidate_warning()
        if self.forced_submit:
            body['forced_submit_event'] = self.forced_submit_event()
        if self.reason:
            body['reason'] = self.reason
        return body


class IntegrityMonitor:

    def __init__(self, coordinator=None, clock=timezone.now):
        self.coordinator = coordinator or SubmissionCoordinator(clock=clock)
        self.clock = clock

    def record_violation(self, session_id, kind, detail=None, now=None):
        now = now or self.clock()
        session = store.load_session(session_id)
        if not session.is_in_progress:
            # Late events cannot change a finished attempt
            return self._rejected(session, NOT_IN_PROGRESS, max_warnings=None)

        exam = store.exam_of(session)
        limit = exam.warning_limit()
        if not exam.proctoring_enabled:
            return self._rejected(session, PROCTORING_DISABLED, limit)

        if now > session.end_time and not exam.accepts_late_submission(now):
            outcome = self.coordinator.submit(session.pk, reason=TIME_LIMIT_REASON, now=now)
            return ViolationOutcome(
                accepted=False,
                warning_count=outcome.session.warning_count,
                max_warnings=limit,
                reason=TIME_LIMIT_REASON,
                message=TIMED_OUT_MESSAGE,
                session_status=outcome.session.status,
            )

        normalized, severity, description = classify(kind)
        try:
            warning_count, violation = store.append_violation(
                session.pk, exam.pk, normalized, severity, description, detail, now,
            )
        except AlreadyTerminal as exc:
            # Finished between our read and the conditional increment
            session.status = exc.status
            return self._rejected(session, NOT_IN_PROGRESS, limit)

        logger.info(
            "Session %s violation %s (%s): warning %d of %d",
            session.pk, normalized, severity, warning_count, limit,
        )

        reason = ""
        forced = False
        status = SessionStatus.IN_PROGRESS
        if warning_count >= limit and exam.auto_submit_on_violation:
            reason = f"violation limit exceeded ({warning_count}/{limit})"
            submission = self.coordinator.submit(
                session.pk, reason=reason, now=now, trigger_violation_id=violation.pk,
            )
            forced = submission.transitioned and submission.session.status == SessionStatus.AUTO_SUBMITTED
            status = submission.session.status

        outcome = ViolationOutcome(
            accepted=True,
            warning_count=warning_count,
            max_warnings=limit,
            forced_submit=forced,
            severity=severity,
            kind=normalized,
            reason=reason,
            message=FORCED_SUBMIT_MESSAGE if forced else f"Warning {warning_count} of {limit}: {description}",
            session_status=status,
        )

        broadcast(
            violation_recorded, sender=Violation,
            exam_id=exam.pk, session_id=session.pk, violation_id=violation.pk,
            kind=normalized, severity=severity, description=description,
            warning_count=warning_count, max_warnings=limit,
            forced_submit=forced, candidate_key=session.candidate_key,
        )
        return outcome

    @staticmethod
    def _rejected(session, reason, max_warnings):
        return ViolationOutcome(
            accepted=False,
            warning_count=session.warning_count,
            max_warnings=max_warnings,
            reason=reason,
            message=f"Violation not recorded: {reason}",
            session_status=session.status,
        )


def review_violation(violation, review_status, notes, actor, now=None):
    """Proctor verdict on a recorded violation. Never touches the warning counter."""
    violation.review_status = review_status
    violation.review_notes = notes or ""
    violation.reviewed_by = actor
    violation.reviewed_at = now or timezone.now()
    violation.save(update_fields=['review_status', 'review_notes', 'reviewed_by', 'reviewed_at'])

    AuditLog.record('REVIEW', violation, f"Marked {violation.kind} on session {violation.session_id} as {review_status}", actor=actor)
    return violation
