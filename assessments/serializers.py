from rest_framework import serializers

from exams.models import Question
from exams.serializers import ExamListSerializer, QuestionSerializer

from .answers import parse_answer
from .models import ExamSession, SessionAnswer, Violation, Result

class AnswerPayloadField(serializers.JSONField):
    """Wire dict -> SingleChoice | MultiChoice | FreeText | Code."""

    def to_internal_value(self, data):
        data = super().to_internal_value(data)
        try:
            return parse_answer(data)
        except ValueError as exc:
            raise serializers.ValidationError(str(exc))

    def to_representation(self, value):
        return value.to_dict() if hasattr(value, 'to_dict') else value

class AnswerInputSerializer(serializers.Serializer):
    question_id = serializers.CharField()
    answer = AnswerPayloadField()

class SubmitSerializer(serializers.Serializer):
    answers = AnswerInputSerializer(many=True, required=False)

    def validate_answers(self, value):
        # Last entry wins when a question appears twice
        merged = {}
        for item in value:
            merged[item['question_id']] = item['answer']
        return list(merged.items())

class ViolationInputSerializer(serializers.Serializer):
    kind = serializers.CharField(max_length=40)
    detail = serializers.JSONField(required=False, allow_null=True)

class SessionAnswerSerializer(serializers.ModelSerializer):
    class Meta:
        model = SessionAnswer
        fields = ['question_id', 'kind', 'data', 'saved_at']

class ExamSessionSerializer(serializers.ModelSerializer):
    """Lightweight serializer for lists / dashboard history."""
    exam = ExamListSerializer(read_only=True)
    result_status = serializers.CharField(source='result.status', read_only=True, default=None)

    class Meta:
        model = ExamSession
        fields = [
            'id', 'exam', 'attempt_number', 'status', 'warning_count',
            'start_time', 'end_time', 'submitted_at', 'auto_submit_reason', 'result_status',
        ]

class ActiveExamSessionSerializer(ExamSessionSerializer):
    """Heavy serializer for taking the exam. Includes QUESTIONS in the session's own order."""
    questions = serializers.SerializerMethodField()
    answers = SessionAnswerSerializer(many=True, read_only=True)
    time_remaining_seconds = serializers.SerializerMethodField()
    max_warnings = serializers.SerializerMethodField()

    class Meta(ExamSessionSerializer.Meta):
        fields = ExamSessionSerializer.Meta.fields + ['questions', 'answers', 'time_remaining_seconds', 'max_warnings']

    def get_questions(self, obj):
        by_id = {
            str(q.pk): q
            for q in Question.objects.filter(pk__in=[int(q) for q in obj.question_order if str(q).isdigit()])
            .prefetch_related('options')
        }
        ordered = [by_id[q] for q in map(str, obj.question_order) if q in by_id]
        return QuestionSerializer(ordered, many=True).data

    def get_time_remaining_seconds(self, obj):
        from django.utils import timezone
        if not obj.is_in_progress:
            return 0
        return max(0, int((obj.end_time - timezone.now()).total_seconds()))

    def get_max_warnings(self, obj):
        if obj.exam is None or not obj.exam.proctoring_enabled:
            return None
        return obj.exam.warning_limit()

class ViolationSerializer(serializers.ModelSerializer):
    reviewed_by_email = serializers.CharField(source='reviewed_by.email', read_only=True, default=None)

    class Meta:
        model = Violation
        fields = [
            'id', 'session', 'kind', 'severity', 'description', 'detail', 'detected_at',
            'auto_submit_triggered', 'review_status', 'review_notes', 'reviewed_by_email', 'reviewed_at',
        ]

class ViolationReviewSerializer(serializers.Serializer):
    review_status = serializers.ChoiceField(choices=[
        Violation.ReviewStatus.REVIEWED, Violation.ReviewStatus.DISMISSED,
    ])
    review_notes = serializers.CharField(required=False, allow_blank=True)

class ResultSerializer(serializers.ModelSerializer):
    """Staff view of a result, including per-question detail."""
    exam_title = serializers.CharField(source='exam.title', read_only=True)
    candidate_email = serializers.SerializerMethodField()

    class Meta:
        model = Result
        fields = [
            'id', 'exam', 'exam_title', 'session', 'candidate_key', 'candidate_email', 'attempt_number',
            'status', 'question_results', 'raw_total', 'clamped_total', 'total_marks', 'passing_marks',
            'percentage', 'passed', 'correct_count', 'incorrect_count', 'unanswered_count',
            'pending_manual_count', 'time_spent_seconds', 'average_time_per_question',
            'rank', 'percentile', 'ranked_out_of', 'late_submission', 'proctoring_report',
            'submitted_at', 'graded_at', 'published_at',
        ]

    def get_candidate_email(self, obj):
        if obj.invitation_id is not None:
            return obj.invitation.email
        return obj.user.email if obj.user_id else None

class CandidateResultSerializer(serializers.ModelSerializer):
    """Published score and per-question feedback for the candidate who sat the exam."""
    score = serializers.FloatField(source='clamped_total', read_only=True)
    questions = serializers.SerializerMethodField()

    class Meta:
        model = Result
        fields = [
            'score', 'total_marks', 'passing_marks', 'percentage', 'passed',
            'correct_count', 'incorrect_count', 'unanswered_count',
            'rank', 'percentile', 'ranked_out_of', 'late_submission', 'published_at', 'questions',
        ]

    def get_questions(self, obj):
        keys = ('question_id', 'answer', 'correct_answer', 'is_correct', 'marks_awarded', 'max_marks', 'feedback')
        return [{key: entry.get(key) for key in keys} for entry in obj.question_results]

class ManualGradeSerializer(serializers.Serializer):
    question_id = serializers.CharField()
    marks = serializers.FloatField(min_value=0)
    feedback = serializers.CharField(required=False, allow_blank=True, default="")

class ManualGradeBatchSerializer(serializers.Serializer):
    # Expects a list of { "question_id": 1, "marks": 5, "feedback": "..." }
    grades = ManualGradeSerializer(many=True)
