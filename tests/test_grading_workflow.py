"""
Tests for manual grading and publication
"""
import pytest

from assessments.coordinator import SubmissionCoordinator
from assessments.grading_workflow import ManualGradingError, grade_question_manually, publish_results
from assessments.models import Result
from assessments.notifications import result_published
from cores.models import AuditLog
from exams.models import Question
from helpers import pick, write


@pytest.fixture
def essay_exam(make_exam, add_question):
    exam = make_exam(title='Technical Writing')
    add_question(exam, options=[('A', True), ('B', False)], points=2)
    add_question(exam, question_type=Question.QuestionType.ESSAY, points=8)
    return exam


@pytest.fixture
def pending_result(essay_exam, candidate, start_session):
    session = start_session(essay_exam, candidate)
    choice, essay = essay_exam.questions.order_by('pk')
    outcome = SubmissionCoordinator().submit(session.pk, answers=[
        (str(choice.pk), pick(choice)),
        (str(essay.pk), write('Clear structure matters because...')),
    ])
    return outcome.result, essay


@pytest.mark.django_db
class TestManualGrading:

    def test_grading_last_manual_question_completes_result(self, pending_result, grader):
        result, essay = pending_result
        assert result.status == Result.Status.PENDING
        assert result.rank is None

        graded = grade_question_manually(result.pk, essay.pk, 6, 'Good structure', grader)

        assert graded.status == Result.Status.GRADED
        assert graded.clamped_total == 8
        assert graded.percentage == 80
        assert graded.passed is True
        assert graded.pending_manual_count == 0
        assert graded.graded_by == grader
        assert graded.rank == 1
        entry = next(qr for qr in graded.question_results if qr['question_id'] == str(essay.pk))
        assert entry['marks_awarded'] == 6
        assert entry['feedback'] == 'Good structure'
        assert entry['requires_manual_grading'] is False
        assert AuditLog.objects.filter(action='GRADE', actor=grader).count() == 1

    def test_regrading_is_allowed(self, pending_result, grader):
        result, essay = pending_result
        grade_question_manually(result.pk, essay.pk, 6, '', grader)

        regraded = grade_question_manually(result.pk, essay.pk, 3, 'Second opinion', grader)

        assert regraded.clamped_total == 5
        assert regraded.status == Result.Status.GRADED

    def test_marks_above_maximum_are_rejected(self, pending_result, grader):
        result, essay = pending_result

        with pytest.raises(ManualGradingError):
            grade_question_manually(result.pk, essay.pk, 9, '', grader)

        result.refresh_from_db()
        assert result.status == Result.Status.PENDING

    def test_auto_graded_question_cannot_be_overridden(self, pending_result, grader, essay_exam):
        result, _ = pending_result
        choice = essay_exam.questions.order_by('pk').first()

        with pytest.raises(ManualGradingError):
            grade_question_manually(result.pk, choice.pk, 0, '', grader)


@pytest.mark.django_db
class TestPublishResults:

    def test_only_graded_results_are_published(self, essay_exam, pending_result, grader, make_user, start_session,
                                               django_capture_on_commit_callbacks):
        pending, essay = pending_result
        other = start_session(essay_exam, make_user())
        # Unanswered essay still needs a (zero) mark before the result counts as graded
        graded = grade_question_manually(SubmissionCoordinator().submit(other.pk).result.pk, essay.pk, 0, '', grader)
        received = []

        def listener(sender, **kwargs):
            received.append(kwargs['result_id'])

        result_published.connect(listener)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                count = publish_results(essay_exam.pk, grader)
        finally:
            result_published.disconnect(listener)

        graded.refresh_from_db()
        pending.refresh_from_db()
        assert count == 1
        assert graded.status == Result.Status.PUBLISHED
        assert graded.published_at is not None
        assert pending.status == Result.Status.PENDING
        assert received == [graded.pk]

    def test_grading_a_published_result_keeps_it_published(self, pending_result, grader, essay_exam):
        result, essay = pending_result
        grade_question_manually(result.pk, essay.pk, 4, '', grader)
        publish_results(essay_exam.pk, grader)

        regraded = grade_question_manually(result.pk, essay.pk, 7, 'Appeal upheld', grader)

        assert regraded.status == Result.Status.PUBLISHED
        assert regraded.clamped_total == 9
