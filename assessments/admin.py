from django.contrib import admin

from .models import ExamSession, SessionAnswer, Violation, Result


class SessionAnswerInline(admin.TabularInline):
    model = SessionAnswer
    extra = 0
    readonly_fields = ('question_id', 'kind', 'data', 'saved_at')
    can_delete = False


class ViolationInline(admin.TabularInline):
    model = Violation
    extra = 0
    fields = ('kind', 'severity', 'detected_at', 'auto_submit_triggered', 'review_status')
    readonly_fields = ('kind', 'severity', 'detected_at', 'auto_submit_triggered')
    can_delete = False


@admin.register(ExamSession)
class ExamSessionAdmin(admin.ModelAdmin):
    list_display = ('id', 'candidate_key', 'exam', 'attempt_number', 'status', 'warning_count', 'start_time')
    list_filter = ('status',)
    search_fields = ('candidate_key',)
    # Status and counter change only through the engine
    readonly_fields = ('candidate_key', 'status', 'warning_count', 'submitted_at', 'auto_submit_reason', 'question_order')
    inlines = [SessionAnswerInline, ViolationInline]


@admin.register(Violation)
class ViolationAdmin(admin.ModelAdmin):
    list_display = ('session', 'kind', 'severity', 'detected_at', 'auto_submit_triggered', 'review_status')
    list_filter = ('severity', 'review_status', 'kind')
    readonly_fields = ('session', 'exam', 'kind', 'severity', 'description', 'detail', 'detected_at', 'auto_submit_triggered')


@admin.register(Result)
class ResultAdmin(admin.ModelAdmin):
    list_display = ('candidate_key', 'exam', 'status', 'clamped_total', 'percentage', 'passed', 'rank')
    list_filter = ('status', 'passed')
    readonly_fields = [f.name for f in Result._meta.fields]
