"""
Submission coordinator.

Both ways a session can end funnel through ``SubmissionCoordinator.submit``:
the candidate's own submit request and the forced submission fired by the
integrity monitor. The state transition is a compare-and-swap in the store,
and the result is created with find-or-create under a unique key, so the
two paths can race freely and still produce exactly one Result.
"""
import logging
from dataclasses import dataclass

from django.db import DatabaseError
from django.utils import timezone

from cores.models import AuditLog
from exams.models import Invitation

from . import store
from .exceptions import AlreadyTerminal
from .grading import GradingEngine, load_question_definitions, policy_for, snapshot_session
from .models import ExamSession, Result, SessionStatus
from .notifications import broadcast, result_created, session_submitted
from .ranking import recompute_ranks

logger = logging.getLogger(__name__)

CANDIDATE_REASON = "candidate"
TIME_LIMIT_REASON = "time limit exceeded"
CONFIRMATION_MESSAGE = "Your exam has been submitted successfully."
PENDING_MESSAGE = "Your answers are awaiting manual grading."
UNPUBLISHED_MESSAGE = "Your result has not been published yet."


@dataclass
class SubmissionOutcome:
    result: Result
    session: ExamSession
    transitioned: bool
    created: bool


class SubmissionCoordinator:

    def __init__(self, engine=None, clock=timezone.now):
        self.engine = engine or GradingEngine()
        self.clock = clock

    @staticmethod
    def target_status(session, exam, reason, now):
        if now > session.end_time and not exam.accepts_late_submission(now):
            return SessionStatus.TIMED_OUT
        if reason == CANDIDATE_REASON:
            return SessionStatus.COMPLETED
        return SessionStatus.AUTO_SUBMITTED

    def submit(self, session_id, answers=None, reason=CANDIDATE_REASON, now=None, trigger_violation_id=None):
        """
        End the session (if it is still running) and return its one Result.

        ``answers`` is a list of ``(question_id, payload)`` pairs and is only
        honoured on a candidate submit that completes in time. A session that
        is already terminal, or that another caller finishes first, goes
        straight to the idempotent result lookup.
        """
        now = now or self.clock()
        session = store.load_session(session_id)
        exam = store.exam_of(session)

        transitioned = False
        if session.is_in_progress:
            target = self.target_status(session, exam, reason, now)
            if target == SessionStatus.TIMED_OUT:
                reason = TIME_LIMIT_REASON
            merged = answers if target == SessionStatus.COMPLETED else None
            try:
                store.transition(
                    session.pk,
                    target,
                    submitted_at=now,
                    reason="" if target == SessionStatus.COMPLETED else reason,
                    answers=merged,
                    trigger_violation_id=trigger_violation_id if target == SessionStatus.AUTO_SUBMITTED else None,
                )
                transitioned = True
            except AlreadyTerminal as exc:
                logger.info("Session %s was finished concurrently (%s); replaying result lookup", session.pk, exc.status)
            session = store.load_session(session_id)
            if transitioned:
                self._after_transition(session, now)

        result, created = store.find_or_create_result(session, lambda: self._grade(session, exam), graded_at=now)
        if created:
            logger.info(
                "Created %s result %s for session %s (score %s/%s)",
                result.status, result.pk, session.pk, result.clamped_total, result.total_marks,
            )
            if result.status == Result.Status.GRADED:
                self._rerank(exam.pk)
                result.refresh_from_db()
            broadcast(
                result_created, sender=Result,
                exam_id=exam.pk, session_id=session.pk, result_id=result.pk, status=result.status,
            )

        return SubmissionOutcome(result=result, session=session, transitioned=transitioned, created=created)

    def save_answer(self, session_id, question_id, payload, now=None):
        """Autosave one answer. Returns False once the session has ended."""
        now = now or self.clock()
        session = store.load_session(session_id)
        exam = store.exam_of(session)
        if session.is_in_progress and now > session.end_time and not exam.accepts_late_submission(now):
            # Deadline enforcement is inline: an autosave past the deadline ends the session
            self.submit(session_id, reason=TIME_LIMIT_REASON, now=now)
            return False
        try:
            store.save_answers(session.pk, [(question_id, payload)], saved_at=now)
        except AlreadyTerminal:
            return False
        return True

    def _rerank(self, exam_id):
        # The result is already stored; a ranking failure must not fail the submit
        try:
            store.retry_on_contention(recompute_ranks)(exam_id)
        except DatabaseError:
            logger.exception("Ranking exam %s failed; ranks refresh on the next grading event", exam_id)

    def _grade(self, session, exam):
        question_ids = session.question_order or [str(pk) for pk in exam.questions.values_list('pk', flat=True)]
        graded = self.engine.grade(
            snapshot_session(session),
            policy_for(exam),
            load_question_definitions(question_ids),
        )
        return graded.as_model_fields()

    def _after_transition(self, session, now):
        if session.status == SessionStatus.AUTO_SUBMITTED:
            logger.warning("Session %s auto-submitted: %s", session.pk, session.auto_submit_reason)
            AuditLog.record('AUTO_SUBMIT', session, session.auto_submit_reason)
        elif session.status == SessionStatus.TIMED_OUT:
            logger.warning("Session %s timed out at %s", session.pk, now)
            AuditLog.record('TIMEOUT', session, f"Deadline {session.end_time.isoformat()} passed")
        else:
            logger.info("Session %s submitted by candidate", session.pk)

        if session.invitation_id is not None:
            Invitation.objects.filter(pk=session.invitation_id).exclude(
                status=Invitation.Status.COMPLETED
            ).update(status=Invitation.Status.COMPLETED, completed_at=now)

        broadcast(
            session_submitted, sender=ExamSession,
            exam_id=session.exam_id, session_id=session.pk,
            status=session.status, reason=session.auto_submit_reason,
            warning_count=session.warning_count, candidate_key=session.candidate_key,
        )


def present(outcome, candidate):
    """Candidate-facing submit response; score fields follow the exam's visibility policy."""
    session, result = outcome.session, outcome.result
    exam = session.exam
    body = {
        'submitted': True,
        'session_id': session.pk,
        'status': session.status,
    }

    if not exam.score_visible_to(candidate):
        body['message'] = exam.candidate_result_message or CONFIRMATION_MESSAGE
        return body

    if result.status == Result.Status.PENDING:
        body['message'] = PENDING_MESSAGE
        return body

    body.update({
        'score': result.clamped_total,
        'total_marks': result.total_marks,
        'passing_marks': result.passing_marks,
        'percentage': result.percentage,
        'passed': result.passed,
    })
    if exam.candidate_result_message:
        body['message'] = exam.candidate_result_message
    return body
