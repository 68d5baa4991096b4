import logging

from rest_framework import generics, permissions, status, views
from rest_framework.response import Response
from django.db.models import Count
from django.shortcuts import get_object_or_404

from exams.models import Exam
from exams.serializers import ExamDetailSerializer

from . import store
from .coordinator import CONFIRMATION_MESSAGE, PENDING_MESSAGE, UNPUBLISHED_MESSAGE, SubmissionCoordinator, present
from .exceptions import ExamConfigMissing, ExamNotAvailable, SessionNotFound
from .grading_workflow import ManualGradingError, grade_question_manually, publish_results
from .identity import identity_of
from .live_feed import live_exam_stats
from .models import ExamSession, Result, SessionStatus, Violation
from .monitor import IntegrityMonitor, review_violation
from .permissions import IsGraderOrAdmin
from .serializers import (
    ActiveExamSessionSerializer, AnswerInputSerializer, CandidateResultSerializer, ExamSessionSerializer,
    ManualGradeBatchSerializer, ResultSerializer, SubmitSerializer,
    ViolationInputSerializer, ViolationReviewSerializer, ViolationSerializer,
)
from .sessions import start_or_resume

logger = logging.getLogger(__name__)


def _client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


class CandidateSessionMixin:
    """Resolve a session the requesting candidate owns, else 404."""

    def get_owned_session(self, request, session_id):
        candidate = identity_of(request.user)
        session = ExamSession.objects.filter(pk=session_id, candidate_key=candidate.key).first()
        if session is None:
            raise SessionNotFound(session_id)
        return session, candidate

    def engine_error(self, exc):
        if isinstance(exc, SessionNotFound):
            return Response({"error": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        logger.error("%s", exc)
        return Response({"error": str(exc)}, status=status.HTTP_409_CONFLICT)


class AdminStatsView(views.APIView):
    """
    Returns aggregated statistics for the Admin Dashboard.
    """
    permission_classes = [IsGraderOrAdmin]

    def get(self, request):
        by_status = dict(ExamSession.objects.values_list('status').annotate(n=Count('id')))
        return Response({
            "total_exams": Exam.objects.count(),
            "active_sessions": by_status.get(SessionStatus.IN_PROGRESS, 0),
            "auto_submitted_sessions": by_status.get(SessionStatus.AUTO_SUBMITTED, 0),
            "pending_grading": Result.objects.filter(status=Result.Status.PENDING).count(),
            "unreviewed_violations": Violation.objects.filter(review_status=Violation.ReviewStatus.PENDING).count(),
        })


# --- ADMIN VIEWS ---

class PendingGradingListView(generics.ListAPIView):
    """List all results that still require manual grading."""
    permission_classes = [IsGraderOrAdmin]
    serializer_class = ResultSerializer

    def get_queryset(self):
        queryset = Result.objects.filter(status=Result.Status.PENDING).select_related('exam', 'user', 'invitation')
        exam_id = self.request.query_params.get('exam')
        if exam_id:
            queryset = queryset.filter(exam_id=exam_id)
        return queryset.order_by('submitted_at')

class SubmitGradeView(views.APIView):
    """Grader submits marks for free-form answers of one result."""
    permission_classes = [IsGraderOrAdmin]

    def post(self, request, result_id):
        get_object_or_404(Result, pk=result_id)
        serializer = ManualGradeBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = None
        for grade in serializer.validated_data['grades']:
            try:
                result = grade_question_manually(
                    result_id, grade['question_id'], grade['marks'], grade['feedback'], request.user,
                )
            except ManualGradingError as exc:
                return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        if result is None:
            result = Result.objects.get(pk=result_id)
        return Response(ResultSerializer(result).data)

class PublishResultsView(views.APIView):
    permission_classes = [IsGraderOrAdmin]

    def post(self, request, exam_id):
        exam = get_object_or_404(Exam, pk=exam_id)
        published = publish_results(exam.pk, request.user)
        pending = Result.objects.filter(exam=exam, status=Result.Status.PENDING).count()
        return Response({"published": published, "still_pending": pending})

class ExamResultsView(generics.ListAPIView):
    """Ranked results of one exam."""
    permission_classes = [IsGraderOrAdmin]
    serializer_class = ResultSerializer

    def get_queryset(self):
        return (
            Result.objects.filter(exam_id=self.kwargs['exam_id'])
            .select_related('exam', 'user', 'invitation')
            .order_by('rank', 'id')
        )

class SessionViolationsView(generics.ListAPIView):
    permission_classes = [IsGraderOrAdmin]
    serializer_class = ViolationSerializer

    def get_queryset(self):
        return Violation.objects.filter(session_id=self.kwargs['session_id']).select_related('reviewed_by')

class ViolationReviewView(views.APIView):
    permission_classes = [IsGraderOrAdmin]

    def post(self, request, violation_id):
        violation = get_object_or_404(Violation, pk=violation_id)
        serializer = ViolationReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        review_violation(
            violation,
            serializer.validated_data['review_status'],
            serializer.validated_data.get('review_notes', ''),
            request.user,
        )
        return Response(ViolationSerializer(violation).data)

class LiveExamFeedView(views.APIView):
    """Polling endpoint for live proctoring dashboards."""
    permission_classes = [IsGraderOrAdmin]

    def get(self, request, exam_id):
        exam = get_object_or_404(Exam, pk=exam_id)
        return Response(live_exam_stats(exam.pk))


# --- STUDENT VIEWS ---

class StartExamView(views.APIView):
    """
    Candidate starts (or resumes) an exam.
    Returns the session WITH its questions, in the order fixed at start.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, exam_id):
        exam = get_object_or_404(Exam, id=exam_id)
        candidate = identity_of(request.user)

        invitation = getattr(request.user, 'invitation', None)
        if invitation is not None and invitation.exam_id != exam.pk:
            return Response({"error": "This invitation is for a different exam"}, status=status.HTTP_403_FORBIDDEN)

        try:
            session, created = start_or_resume(
                exam, candidate,
                ip_address=_client_ip(request),
                user_agent=request.META.get('HTTP_USER_AGENT', ''),
            )
        except ExamNotAvailable as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        data = ActiveExamSessionSerializer(session).data
        data['exam'] = ExamDetailSerializer(exam).data
        return Response(data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

class SaveAnswerView(CandidateSessionMixin, views.APIView):
    """Autosave one answer while the session is running."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, session_id):
        serializer = AnswerInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session, _ = self.get_owned_session(request, session_id)
            saved = SubmissionCoordinator().save_answer(
                session.pk, serializer.validated_data['question_id'], serializer.validated_data['answer'],
            )
        except (SessionNotFound, ExamConfigMissing) as exc:
            return self.engine_error(exc)

        session.refresh_from_db(fields=['status'])
        return Response({"saved": saved, "status": session.status})

class RecordViolationView(CandidateSessionMixin, views.APIView):
    """Proctoring client reports one violation event."""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, session_id):
        serializer = ViolationInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session, _ = self.get_owned_session(request, session_id)
            outcome = IntegrityMonitor().record_violation(
                session.pk, serializer.validated_data['kind'], serializer.validated_data.get('detail'),
            )
        except (SessionNotFound, ExamConfigMissing) as exc:
            return self.engine_error(exc)

        return Response(outcome.as_dict())

class SubmitExamView(CandidateSessionMixin, views.APIView):
    """
    Candidate submits final answers.
    Safe to retry: a repeated or raced submit returns the one stored result.
    """
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, session_id):
        serializer = SubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            session, candidate = self.get_owned_session(request, session_id)
            outcome = SubmissionCoordinator().submit(
                session.pk, answers=serializer.validated_data.get('answers'),
            )
        except (SessionNotFound, ExamConfigMissing) as exc:
            return self.engine_error(exc)

        return Response(present(outcome, candidate))

class CandidateResultView(CandidateSessionMixin, views.APIView):
    """
    Candidate reads the result of their own session.
    Scores and feedback appear only once the result is published and the exam lets this candidate see them.
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, session_id):
        try:
            session, candidate = self.get_owned_session(request, session_id)
            exam = store.exam_of(session)
        except (SessionNotFound, ExamConfigMissing) as exc:
            return self.engine_error(exc)

        result = Result.objects.filter(**store.result_key(session)).first()
        if result is None:
            return Response({"error": "No result for this session yet"}, status=status.HTTP_404_NOT_FOUND)

        published = result.status == Result.Status.PUBLISHED
        body = {"session_id": session.pk, "status": result.status, "published": published}
        if not exam.score_visible_to(candidate):
            body["message"] = exam.candidate_result_message or CONFIRMATION_MESSAGE
        elif result.status == Result.Status.PENDING:
            body["message"] = PENDING_MESSAGE
        elif not published:
            body["message"] = UNPUBLISHED_MESSAGE
        else:
            body.update(CandidateResultSerializer(result).data)
        return Response(body)

class StudentExamAttemptsView(generics.ListAPIView):
    """List all exam sessions for the logged-in candidate (Lightweight)."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ExamSessionSerializer

    def get_queryset(self):
        candidate = identity_of(self.request.user)
        return (
            ExamSession.objects.filter(candidate_key=candidate.key)
            .select_related('exam__category')
            .order_by('-start_time')
        )

class ExamSessionDetailView(generics.RetrieveAPIView):
    """Allow candidate to retrieve their own session (Heavy - Includes Questions)."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = ActiveExamSessionSerializer

    def get_queryset(self):
        candidate = identity_of(self.request.user)
        return ExamSession.objects.filter(candidate_key=candidate.key).select_related('exam')
