"""
Grading engine.

``GradingEngine.grade`` is a pure function of a session snapshot, the exam's
grading policy and the question definitions: no database access, no clock.
Running it twice over the same inputs yields identical output, which is what
makes the idempotent replay path of the submission coordinator safe.

The ``snapshot_session``, ``policy_for`` and ``load_question_definitions``
helpers at the bottom read those inputs from the ORM.
"""
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple

from exams.models import Question

from .answers import FreeText, MultiChoice, SingleChoice
from .exceptions import GradingInputInconsistent
from .models import Result, SessionStatus

logger = logging.getLogger(__name__)

QT = Question.QuestionType

SINGLE_SELECT_TYPES = (QT.MULTIPLE_CHOICE, QT.TRUE_FALSE)
MULTI_SELECT_TYPES = (QT.MULTIPLE_RESPONSE,)
TEXT_MATCH_TYPES = (QT.FILL_BLANK, QT.SHORT_ANSWER)
FREE_FORM_TYPES = (QT.ESSAY, QT.SUBJECTIVE, QT.CODING)

NO_ANSWER = "No answer provided"
CORRECT = "Correct answer"
INCORRECT = "Incorrect answer"
FORMAT_MISMATCH = "Answer format mismatch"
MANUAL = "Requires manual grading"


@dataclass(frozen=True)
class QuestionDefinition:
    question_id: str
    question_type: str
    marks: float
    negative_marks: Optional[float] = None
    correct_option_ids: FrozenSet[str] = frozenset()
    expected_answers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class GradingPolicy:
    negative_marking: bool = False
    negative_mark_value: float = 0
    total_marks: Optional[float] = None
    passing_marks: Optional[float] = None
    pass_mark_percentage: float = 50
    late_submission_allowed: bool = False
    late_submission_penalty: float = 0

    def resolve_passing_marks(self, total_possible):
        if self.passing_marks is not None:
            return self.passing_marks
        return round(total_possible * self.pass_mark_percentage / 100, 2)


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: int
    status: str
    question_order: Tuple[str, ...]
    answers: Dict[str, object]
    start_time: object
    end_time: object
    submitted_at: object = None
    warning_count: int = 0
    violation_kinds: Tuple[str, ...] = ()


@dataclass
class GradedResult:
    status: str
    question_results: List[dict]
    raw_total: float
    clamped_total: float
    total_marks: float
    passing_marks: float
    percentage: float
    passed: bool
    correct_count: int
    incorrect_count: int
    unanswered_count: int
    pending_manual_count: int
    time_spent_seconds: int
    average_time_per_question: float
    late_submission: Optional[dict] = None
    proctoring_report: dict = field(default_factory=dict)

    def as_model_fields(self):
        return {
            'status': self.status,
            'question_results': self.question_results,
            'raw_total': self.raw_total,
            'clamped_total': self.clamped_total,
            'total_marks': self.total_marks,
            'passing_marks': self.passing_marks,
            'percentage': self.percentage,
            'passed': self.passed,
            'correct_count': self.correct_count,
            'incorrect_count': self.incorrect_count,
            'unanswered_count': self.unanswered_count,
            'pending_manual_count': self.pending_manual_count,
            'time_spent_seconds': self.time_spent_seconds,
            'average_time_per_question': self.average_time_per_question,
            'late_submission': self.late_submission,
            'proctoring_report': self.proctoring_report,
        }


def normalize_text(value):
    return str(value).strip().lower()


def _question_result(definition, payload, *, answered, is_correct, marks,
                     requires_manual=False, inconsistent=False, feedback=""):
    return {
        'question_id': definition.question_id if definition else None,
        'question_type': definition.question_type if definition else None,
        'answer': payload.to_dict() if payload is not None else None,
        'correct_answer': _correct_answer_of(definition),
        'answered': answered,
        'is_correct': is_correct,
        'marks_awarded': round(marks, 2),
        'max_marks': definition.marks if definition else 0,
        'requires_manual_grading': requires_manual,
        'inconsistent': inconsistent,
        'feedback': feedback,
    }


def _correct_answer_of(definition):
    if definition is None:
        return None
    if definition.question_type in SINGLE_SELECT_TYPES + MULTI_SELECT_TYPES:
        return sorted(definition.correct_option_ids)
    if definition.question_type in TEXT_MATCH_TYPES:
        return list(definition.expected_answers)
    return None


def summarize(question_results, total_marks, passing_marks, penalty=0):
    """
    Aggregate per-question results into the scoring block.

    The raw total is floored at zero first, then any late penalty comes off
    the floored value (floored again). Only the final value is used for the
    percentage and pass/fail.
    """
    raw_total = round(sum(qr['marks_awarded'] for qr in question_results), 2)
    clamped = max(0.0, raw_total)
    final = max(0.0, round(clamped - penalty, 2)) if penalty else clamped

    if total_marks > 0:
        percentage = round(min(100.0, max(0.0, final / total_marks * 100)), 2)
    else:
        percentage = 0.0

    pending = sum(1 for qr in question_results if qr['requires_manual_grading'])
    unanswered = sum(1 for qr in question_results if not qr['answered'])
    correct = sum(1 for qr in question_results if qr['answered'] and qr['is_correct'])
    incorrect = sum(
        1 for qr in question_results
        if qr['answered'] and not qr['is_correct']
        and not qr['requires_manual_grading'] and not qr['inconsistent']
    )

    return {
        'raw_total': raw_total,
        'clamped_total': final,
        'percentage': percentage,
        'passed': final >= passing_marks,
        'correct_count': correct,
        'incorrect_count': incorrect,
        'unanswered_count': unanswered,
        'pending_manual_count': pending,
        'status': Result.Status.PENDING if pending else Result.Status.GRADED,
    }


class GradingEngine:
    """Type-aware, deterministic scoring of one finished session."""

    def grade(self, snapshot, policy, questions):
        definitions = {q.question_id: q for q in questions}
        order = list(snapshot.question_order) or [q.question_id for q in questions]

        question_results = []
        for question_id in order:
            definition = definitions.get(question_id)
            payload = snapshot.answers.get(question_id)
            try:
                if definition is None:
                    raise GradingInputInconsistent(question_id)
                question_results.append(self.grade_question(definition, payload, policy))
            except GradingInputInconsistent as exc:
                logger.warning("Session %s: %s; graded as 0 marks", snapshot.session_id, exc)
                result = _question_result(None, payload, answered=payload is not None and not payload.is_empty(),
                                          is_correct=False, marks=0, inconsistent=True, feedback=str(exc))
                result['question_id'] = question_id
                question_results.append(result)
            except Exception as exc:
                logger.exception("Session %s: grading question %s failed", snapshot.session_id, question_id)
                question_results.append(_question_result(
                    definition, None, answered=payload is not None, is_correct=False, marks=0,
                    inconsistent=True, feedback=f"Grading failed: {exc}",
                ))

        if policy.total_marks:
            total_possible = policy.total_marks
        else:
            total_possible = round(sum(definitions[q].marks for q in order if q in definitions), 2)
        passing_marks = policy.resolve_passing_marks(total_possible)

        late_submission, penalty = self.late_submission(snapshot, policy)
        summary = summarize(question_results, total_possible, passing_marks, penalty)
        if late_submission is not None:
            late_submission['original_score'] = max(0.0, summary['raw_total'])

        time_spent = 0
        finished_at = snapshot.submitted_at
        if finished_at is not None and snapshot.status == SessionStatus.ABANDONED:
            finished_at = min(finished_at, snapshot.end_time)
        if finished_at is not None:
            time_spent = max(0, int((finished_at - snapshot.start_time).total_seconds()))
        average = round(time_spent / len(question_results), 2) if question_results else 0.0

        breakdown = Counter(snapshot.violation_kinds)
        proctoring_report = {
            'total_violations': len(snapshot.violation_kinds),
            'violation_breakdown': {kind: breakdown[kind] for kind in sorted(breakdown)},
            'auto_submitted': snapshot.status == SessionStatus.AUTO_SUBMITTED,
            'warnings_issued': snapshot.warning_count,
        }

        return GradedResult(
            status=summary['status'],
            question_results=question_results,
            raw_total=summary['raw_total'],
            clamped_total=summary['clamped_total'],
            total_marks=total_possible,
            passing_marks=passing_marks,
            percentage=summary['percentage'],
            passed=summary['passed'],
            correct_count=summary['correct_count'],
            incorrect_count=summary['incorrect_count'],
            unanswered_count=summary['unanswered_count'],
            pending_manual_count=summary['pending_manual_count'],
            time_spent_seconds=time_spent,
            average_time_per_question=average,
            late_submission=late_submission,
            proctoring_report=proctoring_report,
        )

    def grade_question(self, definition, payload, policy):
        qtype = definition.question_type

        if qtype in FREE_FORM_TYPES or qtype not in SINGLE_SELECT_TYPES + MULTI_SELECT_TYPES + TEXT_MATCH_TYPES:
            answered = payload is not None and not payload.is_empty()
            feedback = MANUAL if qtype in FREE_FORM_TYPES else f"{MANUAL} (unknown question type)"
            return _question_result(definition, payload, answered=answered, is_correct=False, marks=0,
                                    requires_manual=True, feedback=feedback if answered else NO_ANSWER)

        if payload is None or payload.is_empty():
            return _question_result(definition, payload, answered=False, is_correct=False, marks=0,
                                    feedback=NO_ANSWER)

        if qtype in SINGLE_SELECT_TYPES:
            matched = isinstance(payload, SingleChoice)
            is_correct = matched and definition.correct_option_ids == frozenset([payload.option_id])
        elif qtype in MULTI_SELECT_TYPES:
            matched = isinstance(payload, MultiChoice)
            is_correct = matched and frozenset(payload.option_ids) == definition.correct_option_ids
        else:
            matched = isinstance(payload, FreeText)
            is_correct = matched and normalize_text(payload.text) in {
                normalize_text(expected) for expected in definition.expected_answers
            }

        if is_correct:
            marks = definition.marks
            feedback = CORRECT
        else:
            marks = -self.negative_marks_for(definition, policy)
            feedback = INCORRECT if matched else FORMAT_MISMATCH

        return _question_result(definition, payload, answered=True, is_correct=is_correct,
                                marks=marks, feedback=feedback)

    @staticmethod
    def negative_marks_for(definition, policy):
        if not policy.negative_marking:
            return 0
        if definition.negative_marks is not None:
            return definition.negative_marks
        return policy.negative_mark_value

    @staticmethod
    def late_submission(snapshot, policy):
        """Return (late record or None, penalty to apply)."""
        # Abandoned sessions were never submitted, so they cannot be late
        if snapshot.status == SessionStatus.ABANDONED:
            return None, 0
        if snapshot.submitted_at is None or snapshot.submitted_at <= snapshot.end_time:
            return None, 0
        late_by = math.ceil((snapshot.submitted_at - snapshot.end_time).total_seconds() / 60)
        penalty = policy.late_submission_penalty if policy.late_submission_allowed else 0
        return {
            'is_late': True,
            'late_by_minutes': late_by,
            'penalty_applied': penalty,
            'original_score': 0.0,
        }, penalty


# --- ORM adapters ---

def snapshot_session(session):
    violation_kinds = tuple(session.violations.order_by('detected_at', 'id').values_list('kind', flat=True))
    return SessionSnapshot(
        session_id=session.pk,
        status=session.status,
        question_order=tuple(str(q) for q in session.question_order),
        answers=session.answer_map(),
        start_time=session.start_time,
        end_time=session.end_time,
        submitted_at=session.submitted_at,
        warning_count=session.warning_count,
        violation_kinds=violation_kinds,
    )


def policy_for(exam):
    return GradingPolicy(
        negative_marking=exam.negative_marking,
        negative_mark_value=exam.negative_mark_value,
        total_marks=exam.total_marks,
        passing_marks=exam.passing_marks,
        pass_mark_percentage=exam.pass_percentage(),
        late_submission_allowed=exam.late_submission_allowed,
        late_submission_penalty=exam.late_submission_penalty,
    )


def definition_for(question):
    expected = question.expected_answers
    if expected is None:
        expected_answers = ()
    elif isinstance(expected, (list, tuple)):
        expected_answers = tuple(str(e) for e in expected)
    else:
        expected_answers = (str(expected),)

    return QuestionDefinition(
        question_id=str(question.pk),
        question_type=question.question_type,
        marks=question.points,
        negative_marks=question.negative_marks,
        correct_option_ids=frozenset(str(o.pk) for o in question.options.all() if o.is_correct),
        expected_answers=expected_answers,
    )


def load_question_definitions(question_ids):
    pks = [int(q) for q in question_ids if str(q).isdigit()]
    questions = Question.objects.filter(pk__in=pks).prefetch_related('options').order_by('pk')
    return [definition_for(q) for q in questions]
