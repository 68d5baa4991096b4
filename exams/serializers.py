# exams/serializers.py
from rest_framework import serializers
from .models import Exam, Question, Option, ExamCategory

# --- Candidate-facing serializers: never expose correct answers ---

class OptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Option
        fields = ['id', 'text']

class ExamCategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = ExamCategory
        fields = '__all__'

class QuestionSerializer(serializers.ModelSerializer):
    options = OptionSerializer(many=True, read_only=True)

    class Meta:
        model = Question
        fields = ['id', 'text', 'question_type', 'difficulty', 'points', 'options']

class ExamListSerializer(serializers.ModelSerializer):
    category = serializers.CharField(source='category.name', default=None, read_only=True)
    total_questions = serializers.IntegerField(source='questions.count', read_only=True)
    duration_minutes = serializers.IntegerField(source='duration', read_only=True)

    class Meta:
        model = Exam
        fields = ['id', 'title', 'category', 'duration_minutes', 'total_questions', 'proctoring_enabled']

class ExamDetailSerializer(ExamListSerializer):
    """Policy summary shown before a candidate starts."""
    max_warnings = serializers.SerializerMethodField()

    class Meta(ExamListSerializer.Meta):
        fields = ExamListSerializer.Meta.fields + [
            'description', 'max_warnings', 'auto_submit_on_violation',
            'late_submission_allowed', 'attempts_allowed', 'negative_marking',
        ]

    def get_max_warnings(self, obj):
        return obj.warning_limit() if obj.proctoring_enabled else None
