"""
Fire-and-forget notifications for live observers and downstream consumers.

Signals are sent after the surrounding transaction commits, through
``send_robust``. A failing receiver is logged and never reaches the caller,
so a lost notification cannot undo or delay a state transition.

Every signal carries ``exam_id`` and ``session_id`` keyword arguments.
"""
import logging

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

# kind, severity, warning_count, max_warnings, candidate_key
violation_recorded = Signal()
# status, reason, warning_count, candidate_key
session_submitted = Signal()
# result_id, status
result_created = Signal()
# result_id; consumed by email dispatch and certificate generation
result_published = Signal()


def _send(signal, sender, payload):
    for receiver, response in signal.send_robust(sender=sender, **payload):
        if isinstance(response, Exception):
            logger.warning("Notification receiver %r failed: %s", receiver, response)


def broadcast(signal, sender=None, **payload):
    transaction.on_commit(lambda: _send(signal, sender, payload))
