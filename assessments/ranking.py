import logging

from django.db import transaction

from .models import Result

logger = logging.getLogger(__name__)

RANKED_STATUSES = (Result.Status.GRADED, Result.Status.PUBLISHED)


def recompute_ranks(exam_id):
    """
    Re-rank every graded or published result of an exam.

    Higher clamped total ranks first; on a tie the faster candidate wins.
    This is a full recomputation, run after grading, never on the violation path.
    """
    with transaction.atomic():
        results = list(
            Result.objects.select_for_update()
            .filter(exam_id=exam_id, status__in=RANKED_STATUSES)
            .order_by('-clamped_total', 'time_spent_seconds', 'id')
        )
        total = len(results)
        for position, result in enumerate(results, start=1):
            result.rank = position
            result.ranked_out_of = total
            result.percentile = round((total - position + 1) / total * 100, 2) if total > 1 else 100.0
        Result.objects.bulk_update(results, ['rank', 'percentile', 'ranked_out_of'])

    logger.info("Recomputed ranks for exam %s (%d results)", exam_id, total)
    return results
