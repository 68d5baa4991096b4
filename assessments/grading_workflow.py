"""Staff-side grading: manual marks for free-form answers and result publication."""
import logging

from django.db import transaction
from django.utils import timezone

from cores.models import AuditLog

from .grading import summarize
from .models import Result
from .notifications import broadcast, result_published
from .ranking import recompute_ranks

logger = logging.getLogger(__name__)


class ManualGradingError(ValueError):
    """Rejected manual grade: wrong question, or marks out of range."""


def grade_question_manually(result_id, question_id, marks, feedback, actor, now=None):
    now = now or timezone.now()
    with transaction.atomic():
        result = Result.objects.select_for_update().get(pk=result_id)
        question_results = list(result.question_results)

        entry = next((qr for qr in question_results if str(qr['question_id']) == str(question_id)), None)
        if entry is None:
            raise ManualGradingError(f"Question {question_id} is not part of this result")
        if not (entry['requires_manual_grading'] or entry.get('manually_graded')):
            raise ManualGradingError(f"Question {question_id} is auto-graded")

        marks = float(marks)
        if marks < 0 or marks > entry['max_marks']:
            raise ManualGradingError(f"Marks must be between 0 and {entry['max_marks']}")

        entry.update({
            'marks_awarded': round(marks, 2),
            'is_correct': marks >= entry['max_marks'],
            'requires_manual_grading': False,
            'manually_graded': True,
            'feedback': feedback or "",
        })

        penalty = (result.late_submission or {}).get('penalty_applied', 0)
        summary = summarize(question_results, result.total_marks, result.passing_marks, penalty)

        result.question_results = question_results
        for field in ('raw_total', 'clamped_total', 'percentage', 'passed', 'correct_count',
                      'incorrect_count', 'unanswered_count', 'pending_manual_count'):
            setattr(result, field, summary[field])
        if result.status != Result.Status.PUBLISHED:
            result.status = summary['status']
        result.graded_by = actor
        result.graded_at = now
        result.save()

        AuditLog.record('GRADE', result, f"Question {question_id}: {marks}/{entry['max_marks']}", actor=actor)

    logger.info("Result %s question %s graded manually by %s", result.pk, question_id, actor)
    if result.status != Result.Status.PENDING:
        recompute_ranks(result.exam_id)
        result.refresh_from_db()
    return result


def publish_results(exam_id, actor, now=None):
    """GRADED -> PUBLISHED for every graded result of the exam. Pending ones stay pending."""
    now = now or timezone.now()
    with transaction.atomic():
        results = list(Result.objects.select_for_update().filter(exam_id=exam_id, status=Result.Status.GRADED))
        for result in results:
            result.status = Result.Status.PUBLISHED
            result.published_at = now
        Result.objects.bulk_update(results, ['status', 'published_at'])

        for result in results:
            AuditLog.record('PUBLISH', result, f"Published result for {result.candidate_key}", actor=actor)
            broadcast(
                result_published, sender=Result,
                exam_id=exam_id, session_id=result.session_id, result_id=result.pk,
            )

    logger.info("Published %d results for exam %s", len(results), exam_id)
    if results:
        recompute_ranks(exam_id)
    return len(results)
