"""
Tests for the grading engine (pure, no database)
"""
import json
from dataclasses import asdict
from datetime import datetime, timedelta, timezone

import pytest

from assessments.answers import Code, FreeText, MultiChoice, SingleChoice
from assessments.grading import (
    FORMAT_MISMATCH, GradingEngine, GradingPolicy, QuestionDefinition, SessionSnapshot, summarize,
)
from assessments.models import Result, SessionStatus
from exams.models import Question

QT = Question.QuestionType

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
END = START + timedelta(minutes=30)


def single(qid, correct='a', marks=1, negative=None, qtype=QT.MULTIPLE_CHOICE):
    return QuestionDefinition(qid, qtype, marks, negative, frozenset([correct]))


def multi(qid, correct=('a', 'b'), marks=2):
    return QuestionDefinition(qid, QT.MULTIPLE_RESPONSE, marks, None, frozenset(correct))


def text(qid, expected, marks=1):
    expected = (expected,) if isinstance(expected, str) else tuple(expected)
    return QuestionDefinition(qid, QT.FILL_BLANK, marks, None, frozenset(), expected)


def essay(qid, marks=5):
    return QuestionDefinition(qid, QT.ESSAY, marks)


def snapshot(answers, order, submitted_at=START + timedelta(minutes=10), **fields):
    return SessionSnapshot(
        session_id=1,
        status=fields.pop('status', SessionStatus.COMPLETED),
        question_order=tuple(order),
        answers=answers,
        start_time=START,
        end_time=END,
        submitted_at=submitted_at,
        **fields,
    )


@pytest.fixture
def engine():
    return GradingEngine()


class TestAggregate:
    """Clamping, buckets and pass/fail"""

    def test_negative_total_is_clamped(self, engine):
        """2 questions x 1 mark, negative marking 1 mark, both wrong"""
        questions = [single('q1'), single('q2')]
        answers = {'q1': SingleChoice('b'), 'q2': SingleChoice('b')}
        policy = GradingPolicy(negative_marking=True, negative_mark_value=1)

        graded = engine.grade(snapshot(answers, ['q1', 'q2']), policy, questions)

        assert graded.raw_total == -2
        assert graded.clamped_total == 0
        assert graded.percentage == 0
        assert graded.passed is False

    def test_unanswered_is_not_incorrect(self, engine):
        questions = [single('q1'), single('q2'), single('q3')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('b')}

        graded = engine.grade(snapshot(answers, ['q1', 'q2', 'q3']), GradingPolicy(), questions)

        assert graded.correct_count == 1
        assert graded.incorrect_count == 1
        assert graded.unanswered_count == 1
        assert graded.status == Result.Status.GRADED

    def test_empty_payload_counts_as_unanswered(self, engine):
        questions = [single('q1'), multi('q2'), text('q3', 'paris')]
        answers = {'q1': SingleChoice(''), 'q2': MultiChoice(()), 'q3': FreeText('   ')}
        policy = GradingPolicy(negative_marking=True, negative_mark_value=1)

        graded = engine.grade(snapshot(answers, ['q1', 'q2', 'q3']), policy, questions)

        assert graded.unanswered_count == 3
        assert graded.incorrect_count == 0
        assert graded.raw_total == 0

    def test_percentage_uses_configured_total(self, engine):
        questions = [single('q1', marks=2)]
        policy = GradingPolicy(total_marks=10, passing_marks=4)

        graded = engine.grade(snapshot({'q1': SingleChoice('a')}, ['q1']), policy, questions)

        assert graded.total_marks == 10
        assert graded.percentage == 20.0
        assert graded.passing_marks == 4
        assert graded.passed is False

    def test_passing_marks_fall_back_to_percentage(self, engine):
        questions = [single('q1'), single('q2'), single('q3'), single('q4')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('a'), 'q3': SingleChoice('a')}
        policy = GradingPolicy(pass_mark_percentage=70)

        graded = engine.grade(snapshot(answers, ['q1', 'q2', 'q3', 'q4']), policy, questions)

        assert graded.passing_marks == 2.8
        assert graded.passed is True

    def test_grading_is_deterministic(self, engine):
        questions = [single('q1'), multi('q2'), text('q3', ['Paris']), essay('q4')]
        answers = {
            'q1': SingleChoice('b'),
            'q2': MultiChoice(('a', 'b')),
            'q3': FreeText('paris'),
            'q4': FreeText('An essay'),
        }
        snap = snapshot(answers, ['q1', 'q2', 'q3', 'q4'], violation_kinds=('TAB_SWITCH',), warning_count=1)
        policy = GradingPolicy(negative_marking=True, negative_mark_value=0.25)

        first = engine.grade(snap, policy, questions)
        second = engine.grade(snap, policy, questions)

        assert json.dumps(asdict(first), sort_keys=True) == json.dumps(asdict(second), sort_keys=True)


class TestQuestionTypes:

    def test_single_choice(self, engine):
        policy = GradingPolicy()
        assert engine.grade_question(single('q1'), SingleChoice('a'), policy)['marks_awarded'] == 1
        assert engine.grade_question(single('q1'), SingleChoice('b'), policy)['is_correct'] is False

    def test_true_false_uses_single_choice_rule(self, engine):
        definition = single('q1', correct='t', qtype=QT.TRUE_FALSE)
        assert engine.grade_question(definition, SingleChoice('t'), GradingPolicy())['is_correct'] is True

    @pytest.mark.parametrize('selected,correct', [
        (('a', 'b'), True),
        (('a',), False),
        (('a', 'b', 'c'), False),
    ])
    def test_multi_select_requires_exact_set(self, engine, selected, correct):
        result = engine.grade_question(multi('q1'), MultiChoice(selected), GradingPolicy())

        assert result['is_correct'] is correct
        assert result['marks_awarded'] == (2 if correct else 0)

    @pytest.mark.parametrize('answer', ['Paris', '  PARIS ', 'paris, france'])
    def test_text_normalized_equality(self, engine, answer):
        definition = text('q1', ['paris', 'Paris, France'])
        assert engine.grade_question(definition, FreeText(answer), GradingPolicy())['is_correct'] is True

    def test_text_without_match_is_wrong(self, engine):
        result = engine.grade_question(text('q1', 'paris'), FreeText('lyon'), GradingPolicy())
        assert result['is_correct'] is False

    def test_free_form_always_needs_manual_grading(self, engine):
        answered = engine.grade_question(essay('q1'), FreeText('My answer'), GradingPolicy())
        blank = engine.grade_question(essay('q1'), None, GradingPolicy())
        coding = engine.grade_question(
            QuestionDefinition('q2', QT.CODING, 10), Code('print(1)', 'python'), GradingPolicy(),
        )

        for result in (answered, blank, coding):
            assert result['requires_manual_grading'] is True
            assert result['marks_awarded'] == 0
        assert answered['answered'] is True
        assert blank['answered'] is False

    def test_manual_question_keeps_result_pending(self, engine):
        questions = [single('q1'), essay('q2')]
        answers = {'q1': SingleChoice('a'), 'q2': FreeText('Essay')}

        graded = engine.grade(snapshot(answers, ['q1', 'q2']), GradingPolicy(), questions)

        assert graded.status == Result.Status.PENDING
        assert graded.pending_manual_count == 1

    def test_unanswered_essay_counts_as_pending_manual(self, engine):
        questions = [single('q1'), essay('q2'), essay('q3')]
        answers = {'q1': SingleChoice('a'), 'q2': FreeText('Essay')}

        graded = engine.grade(snapshot(answers, ['q1', 'q2', 'q3']), GradingPolicy(), questions)

        assert graded.status == Result.Status.PENDING
        assert graded.pending_manual_count == 2

    def test_format_mismatch_is_graded_wrong(self, engine):
        policy = GradingPolicy(negative_marking=True, negative_mark_value=1)
        result = engine.grade_question(single('q1'), FreeText('a'), policy)

        assert result['is_correct'] is False
        assert result['feedback'] == FORMAT_MISMATCH
        assert result['marks_awarded'] == -1

    def test_question_negative_marks_override_exam_value(self, engine):
        policy = GradingPolicy(negative_marking=True, negative_mark_value=1)
        result = engine.grade_question(single('q1', negative=0.5), SingleChoice('b'), policy)
        assert result['marks_awarded'] == -0.5

    def test_no_negative_marks_when_disabled(self, engine):
        result = engine.grade_question(single('q1', negative=0.5), SingleChoice('b'), GradingPolicy())
        assert result['marks_awarded'] == 0


class TestRobustness:

    def test_missing_definition_is_flagged_not_fatal(self, engine):
        questions = [single('q1')]
        answers = {'q1': SingleChoice('a'), 'q9': SingleChoice('x')}

        graded = engine.grade(snapshot(answers, ['q1', 'q9']), GradingPolicy(), questions)

        missing = graded.question_results[1]
        assert missing['question_id'] == 'q9'
        assert missing['inconsistent'] is True
        assert missing['marks_awarded'] == 0
        assert graded.clamped_total == 1
        assert graded.incorrect_count == 0

    def test_failure_in_one_question_does_not_abort(self):
        class FlakyEngine(GradingEngine):
            def grade_question(self, definition, payload, policy):
                if definition.question_id == 'q2':
                    raise RuntimeError('corrupt option data')
                return super().grade_question(definition, payload, policy)

        questions = [single('q1'), single('q2'), single('q3')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('a'), 'q3': SingleChoice('a')}

        graded = FlakyEngine().grade(snapshot(answers, ['q1', 'q2', 'q3']), GradingPolicy(), questions)

        assert graded.clamped_total == 2
        assert graded.question_results[1]['inconsistent'] is True
        assert 'corrupt option data' in graded.question_results[1]['feedback']


class TestLateSubmission:

    def test_penalty_after_clamp(self, engine):
        questions = [single('q1'), single('q2')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('a')}
        policy = GradingPolicy(late_submission_allowed=True, late_submission_penalty=1)
        late = END + timedelta(minutes=5, seconds=30)

        graded = engine.grade(snapshot(answers, ['q1', 'q2'], submitted_at=late), policy, questions)

        assert graded.clamped_total == 1
        assert graded.late_submission == {
            'is_late': True,
            'late_by_minutes': 6,
            'penalty_applied': 1,
            'original_score': 2,
        }

    def test_penalty_never_drives_below_zero(self, engine):
        questions = [single('q1'), single('q2')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('b')}
        policy = GradingPolicy(
            negative_marking=True, negative_mark_value=2,
            late_submission_allowed=True, late_submission_penalty=1,
        )
        late = END + timedelta(minutes=1)

        graded = engine.grade(snapshot(answers, ['q1', 'q2'], submitted_at=late), policy, questions)

        assert graded.raw_total == -1
        assert graded.clamped_total == 0
        assert graded.late_submission['original_score'] == 0

    def test_on_time_submission_has_no_late_record(self, engine):
        graded = engine.grade(snapshot({}, ['q1']), GradingPolicy(), [single('q1')])
        assert graded.late_submission is None

    def test_abandoned_session_is_never_late(self, engine):
        questions = [single('q1'), single('q2')]
        answers = {'q1': SingleChoice('a'), 'q2': SingleChoice('a')}
        policy = GradingPolicy(late_submission_allowed=True, late_submission_penalty=1)
        swept = END + timedelta(hours=2)

        graded = engine.grade(
            snapshot(answers, ['q1', 'q2'], submitted_at=swept, status=SessionStatus.ABANDONED), policy, questions,
        )

        assert graded.late_submission is None
        assert graded.clamped_total == 2
        assert graded.time_spent_seconds == 30 * 60

    def test_summarize_applies_penalty_to_clamped_value(self):
        question_results = [
            {'marks_awarded': -3, 'answered': True, 'is_correct': False,
             'requires_manual_grading': False, 'inconsistent': False},
            {'marks_awarded': 5, 'answered': True, 'is_correct': True,
             'requires_manual_grading': False, 'inconsistent': False},
        ]
        summary = summarize(question_results, total_marks=10, passing_marks=1, penalty=1.5)

        assert summary['raw_total'] == 2
        assert summary['clamped_total'] == 0.5
        assert summary['percentage'] == 5.0
        assert summary['passed'] is False


class TestReports:

    def test_time_and_proctoring_report(self, engine):
        snap = snapshot(
            {'q1': SingleChoice('a')}, ['q1', 'q2'],
            status=SessionStatus.AUTO_SUBMITTED,
            violation_kinds=('TAB_SWITCH', 'DEV_TOOLS', 'TAB_SWITCH'),
            warning_count=3,
        )

        graded = engine.grade(snap, GradingPolicy(), [single('q1'), single('q2')])

        assert graded.time_spent_seconds == 600
        assert graded.average_time_per_question == 300
        assert graded.proctoring_report == {
            'total_violations': 3,
            'violation_breakdown': {'DEV_TOOLS': 1, 'TAB_SWITCH': 2},
            'auto_submitted': True,
            'warnings_issued': 3,
        }
