"""
Tests for the submission coordinator
"""
from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.db import OperationalError
from django.utils import timezone

from assessments.coordinator import (
    CONFIRMATION_MESSAGE, PENDING_MESSAGE, TIME_LIMIT_REASON, SubmissionCoordinator, present,
)
from assessments.grading import GradingEngine
from assessments.identity import Enrolled, Guest
from assessments.models import Result, SessionAnswer, SessionStatus
from assessments import store
from exams.models import Invitation, Question
from helpers import pick, write


@pytest.fixture
def coordinator():
    return SubmissionCoordinator()


@pytest.fixture
def questions(proctored_exam):
    return list(proctored_exam.questions.order_by('pk'))


@pytest.mark.django_db
class TestSubmit:

    def test_candidate_submit_completes_and_grades(self, coordinator, session, questions):
        q1, q2 = questions
        answers = [(str(q1.pk), pick(q1)), (str(q2.pk), pick(q2, correct=False))]

        outcome = coordinator.submit(session.pk, answers=answers)

        assert outcome.transitioned is True
        assert outcome.created is True
        assert outcome.session.status == SessionStatus.COMPLETED
        assert outcome.session.submitted_at is not None
        result = outcome.result
        assert result.status == Result.Status.GRADED
        assert result.clamped_total == 1
        assert result.correct_count == 1
        assert result.incorrect_count == 1
        assert result.rank == 1
        assert SessionAnswer.objects.filter(session=session).count() == 2

    def test_retry_returns_the_same_result(self, coordinator, session, questions):
        q1, _ = questions
        first = coordinator.submit(session.pk, answers=[(str(q1.pk), pick(q1))])
        second = coordinator.submit(session.pk, answers=[(str(q1.pk), pick(q1, correct=False))])

        assert second.transitioned is False
        assert second.created is False
        assert second.result.pk == first.result.pk
        assert second.result.clamped_total == first.result.clamped_total
        assert Result.objects.count() == 1
        # The replay did not overwrite the stored answer
        assert SessionAnswer.objects.get(session=session).payload == pick(q1)

    def test_forced_path_never_merges_answers(self, coordinator, session, questions):
        q1, _ = questions
        outcome = coordinator.submit(
            session.pk, answers=[(str(q1.pk), pick(q1))], reason="violation limit exceeded (3/3)",
        )

        assert outcome.session.status == SessionStatus.AUTO_SUBMITTED
        assert not SessionAnswer.objects.filter(session=session).exists()
        assert outcome.result.unanswered_count == 2

    def test_autosaved_answers_are_graded_on_forced_submit(self, coordinator, session, questions):
        q1, q2 = questions
        coordinator.save_answer(session.pk, str(q1.pk), pick(q1))
        coordinator.save_answer(session.pk, str(q2.pk), pick(q2))

        outcome = coordinator.submit(session.pk, reason="violation limit exceeded (3/3)")

        assert outcome.result.clamped_total == 2
        assert outcome.result.proctoring_report['auto_submitted'] is True

    def test_submit_after_deadline_times_out(self, coordinator, session, questions):
        q1, _ = questions
        outcome = coordinator.submit(
            session.pk, answers=[(str(q1.pk), pick(q1))], now=session.end_time + timedelta(minutes=1),
        )

        assert outcome.session.status == SessionStatus.TIMED_OUT
        assert outcome.session.auto_submit_reason == TIME_LIMIT_REASON
        assert not SessionAnswer.objects.filter(session=session).exists()
        assert outcome.result.clamped_total == 0

    def test_late_submission_penalty(self, coordinator, session, questions, proctored_exam):
        proctored_exam.late_submission_allowed = True
        proctored_exam.late_submission_penalty = 0.5
        proctored_exam.save()
        q1, q2 = questions

        outcome = coordinator.submit(
            session.pk,
            answers=[(str(q1.pk), pick(q1)), (str(q2.pk), pick(q2))],
            now=session.end_time + timedelta(minutes=3),
        )

        assert outcome.session.status == SessionStatus.COMPLETED
        assert outcome.result.clamped_total == 1.5
        assert outcome.result.late_submission['late_by_minutes'] == 3
        assert outcome.result.late_submission['penalty_applied'] == 0.5

    def test_abandoned_session_can_still_be_graded(self, coordinator, session):
        store.transition(session.pk, SessionStatus.ABANDONED, submitted_at=session.end_time)

        outcome = coordinator.submit(session.pk)

        assert outcome.transitioned is False
        assert outcome.created is True
        assert outcome.session.status == SessionStatus.ABANDONED

    def test_swept_session_is_graded_without_late_penalty(self, coordinator, proctored_exam, candidate, start_session,
                                                          questions):
        proctored_exam.late_submission_allowed = True
        proctored_exam.late_submission_penalty = 1
        proctored_exam.save()
        stale = start_session(proctored_exam, candidate, now=timezone.now() - timedelta(hours=3))
        q1, q2 = questions
        store.save_answers(stale.pk, [(str(q1.pk), pick(q1)), (str(q2.pk), pick(q2))], saved_at=stale.start_time)
        call_command('expire_sessions', stdout=StringIO())

        outcome = coordinator.submit(stale.pk)

        assert outcome.session.status == SessionStatus.ABANDONED
        assert outcome.session.submitted_at == stale.end_time
        assert outcome.result.late_submission is None
        assert outcome.result.clamped_total == 2
        assert outcome.result.time_spent_seconds == proctored_exam.duration() * 60

    def test_guest_submit_completes_invitation(self, coordinator, invitation, proctored_exam, start_session):
        guest = Guest(invitation.pk, invitation.email, invitation.name)
        session = start_session(proctored_exam, guest)
        invitation.refresh_from_db()
        assert invitation.status == Invitation.Status.STARTED

        outcome = coordinator.submit(session.pk)

        invitation.refresh_from_db()
        assert invitation.status == Invitation.Status.COMPLETED
        assert invitation.completed_at is not None
        assert outcome.result.invitation_id == invitation.pk
        assert outcome.result.candidate_key == guest.key

    def test_ranking_failure_does_not_fail_the_submit(self, coordinator, session, monkeypatch):
        def locked(exam_id):
            raise OperationalError("database is locked")

        monkeypatch.setattr('assessments.coordinator.recompute_ranks', locked)

        outcome = coordinator.submit(session.pk)

        assert outcome.session.status == SessionStatus.COMPLETED
        assert outcome.result.status == Result.Status.GRADED
        assert outcome.result.rank is None


@pytest.mark.django_db
class TestDuplicateResultRace:
    """The unique (exam, candidate, attempt) key collapses a concurrent insert"""

    def test_losing_insert_returns_the_winner(self, session):
        winner = {}

        class RacingEngine(GradingEngine):
            def grade(self, snapshot, policy, questions):
                graded = super().grade(snapshot, policy, questions)
                # Another process stores its result between our lookup and our insert
                live = store.load_session(snapshot.session_id)
                winner['result'] = Result.objects.create(
                    session=live, user_id=live.user_id, **store.result_key(live),
                    **graded.as_model_fields(),
                )
                return graded

        outcome = SubmissionCoordinator(engine=RacingEngine()).submit(session.pk)

        assert outcome.created is False
        assert outcome.result.pk == winner['result'].pk
        assert Result.objects.filter(exam=session.exam).count() == 1


@pytest.mark.django_db
class TestSaveAnswer:

    def test_last_write_wins(self, coordinator, session, questions):
        q1, _ = questions
        assert coordinator.save_answer(session.pk, str(q1.pk), pick(q1, correct=False)) is True
        assert coordinator.save_answer(session.pk, str(q1.pk), pick(q1)) is True

        assert SessionAnswer.objects.get(session=session).payload == pick(q1)

    def test_terminal_session_is_a_no_op(self, coordinator, session, questions):
        q1, _ = questions
        coordinator.submit(session.pk)

        assert coordinator.save_answer(session.pk, str(q1.pk), pick(q1)) is False
        assert not SessionAnswer.objects.filter(session=session).exists()

    def test_autosave_after_deadline_times_out(self, coordinator, session, questions):
        q1, _ = questions

        saved = coordinator.save_answer(session.pk, str(q1.pk), pick(q1), now=session.end_time + timedelta(seconds=5))

        assert saved is False
        session.refresh_from_db()
        assert session.status == SessionStatus.TIMED_OUT


@pytest.mark.django_db
class TestPresent:

    def test_enrolled_candidate_sees_score(self, coordinator, session, candidate):
        body = present(coordinator.submit(session.pk), Enrolled(candidate.pk))

        assert body['submitted'] is True
        assert body['session_id'] == session.pk
        assert body['score'] == 0
        assert body['total_marks'] == 2
        assert body['passing_marks'] == 1
        assert body['passed'] is False

    def test_confirmation_only_exam_hides_score(self, coordinator, session, candidate, proctored_exam):
        proctored_exam.show_only_confirmation = True
        proctored_exam.save()

        body = present(coordinator.submit(session.pk), Enrolled(candidate.pk))

        assert 'score' not in body
        assert body['message'] == CONFIRMATION_MESSAGE

    def test_guest_visibility_follows_exam_setting(self, coordinator, invitation, proctored_exam, start_session):
        proctored_exam.show_score_to_candidate = False
        proctored_exam.candidate_result_message = "We will contact you within a week."
        proctored_exam.save()
        guest = Guest(invitation.pk, invitation.email, invitation.name)
        session = start_session(proctored_exam, guest)

        body = present(coordinator.submit(session.pk), guest)

        assert 'score' not in body
        assert body['message'] == "We will contact you within a week."

    def test_pending_result_hides_partial_score(self, coordinator, session, candidate, add_question, proctored_exam):
        essay = add_question(proctored_exam, question_type=Question.QuestionType.ESSAY, points=5)
        session.question_order = session.question_order + [str(essay.pk)]
        session.save()

        outcome = coordinator.submit(session.pk, answers=[(str(essay.pk), write('Layered models...'))])
        body = present(outcome, Enrolled(candidate.pk))

        assert outcome.result.status == Result.Status.PENDING
        assert 'score' not in body
        assert body['message'] == PENDING_MESSAGE
