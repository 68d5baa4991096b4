from rest_framework import viewsets, permissions, filters

from .models import Exam
from .serializers import ExamDetailSerializer, ExamListSerializer

class ExamViewSet(viewsets.ReadOnlyModelViewSet):
    """Catalogue of open exams. Authoring happens in the Django admin."""
    queryset = Exam.objects.filter(is_active=True).select_related('category').order_by('-created_at')
    permission_classes = [permissions.AllowAny]

    # Enable search on title and category name
    filter_backends = [filters.SearchFilter]
    search_fields = ['title', 'category__name']

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ExamDetailSerializer
        return ExamListSerializer
