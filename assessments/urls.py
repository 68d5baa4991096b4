from django.urls import path
from .views import (
    AdminStatsView,
    PendingGradingListView,
    SubmitGradeView,
    PublishResultsView,
    ExamResultsView,
    SessionViolationsView,
    ViolationReviewView,
    LiveExamFeedView,
    StartExamView,
    SaveAnswerView,
    RecordViolationView,
    SubmitExamView,
    CandidateResultView,
    StudentExamAttemptsView,
    ExamSessionDetailView,
)

urlpatterns = [
    # --- Admin Dashboard & Grading Module ---
    path('admin/stats/', AdminStatsView.as_view(), name='admin-stats'),
    path('admin/grading/pending/', PendingGradingListView.as_view(), name='grading-pending'),
    path('admin/grading/submit/<int:result_id>/', SubmitGradeView.as_view(), name='grading-submit'),
    path('admin/exams/<int:exam_id>/publish/', PublishResultsView.as_view(), name='publish-results'),
    path('admin/exams/<int:exam_id>/results/', ExamResultsView.as_view(), name='exam-results'),
    path('admin/exams/<int:exam_id>/live/', LiveExamFeedView.as_view(), name='exam-live-feed'),
    path('admin/sessions/<int:session_id>/violations/', SessionViolationsView.as_view(), name='session-violations'),
    path('admin/violations/<int:violation_id>/review/', ViolationReviewView.as_view(), name='violation-review'),

    # --- Student Exam Flow ---
    path('exams/attempts/', StudentExamAttemptsView.as_view(), name='student-attempts'),
    path('exams/<int:exam_id>/start/', StartExamView.as_view(), name='start_exam'),
    path('exams/session/<int:session_id>/answers/', SaveAnswerView.as_view(), name='save_answer'),
    path('exams/session/<int:session_id>/violations/', RecordViolationView.as_view(), name='record_violation'),
    path('exams/session/<int:session_id>/submit/', SubmitExamView.as_view(), name='submit_exam'),
    path('exams/session/<int:session_id>/result/', CandidateResultView.as_view(), name='session_result'),
    path('exams/session/<int:pk>/', ExamSessionDetailView.as_view(), name='session_detail'),
]
