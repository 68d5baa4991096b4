from django.contrib import admin

from .models import Exam, Question, Option, ExamCategory, Invitation


class OptionInline(admin.TabularInline):
    model = Option
    extra = 2


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'exam', 'question_type', 'points', 'negative_marks')
    list_filter = ('question_type', 'difficulty')
    inlines = [OptionInline]


class QuestionInline(admin.StackedInline):
    model = Question
    extra = 0
    show_change_link = True


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'category', 'duration_minutes', 'proctoring_enabled', 'is_active')
    list_filter = ('is_active', 'proctoring_enabled', 'category')
    inlines = [QuestionInline]


@admin.register(Invitation)
class InvitationAdmin(admin.ModelAdmin):
    list_display = ('email', 'exam', 'status', 'expires_at', 'completed_at')
    list_filter = ('status',)
    readonly_fields = ('token',)


admin.site.register(Option)
admin.site.register(ExamCategory)
