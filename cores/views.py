from rest_framework import generics
from rest_framework.permissions import IsAdminUser

from assessments.permissions import IsGraderOrAdmin

from .models import PlatformSetting, AuditLog
from .serializers import PlatformSettingSerializer, AuditLogSerializer


class PlatformSettingView(generics.RetrieveUpdateAPIView):
    serializer_class = PlatformSettingSerializer
    permission_classes = [IsAdminUser]

    def get_object(self):
        return PlatformSetting.load()

    def perform_update(self, serializer):
        instance = serializer.save()
        AuditLog.record(
            'SETTINGS', instance,
            f"Default violation limit set to {instance.default_violation_limit}",
            actor=self.request.user,
        )


class AuditLogListView(generics.ListAPIView):
    """Integrity trail; filter with ?action=, ?target_model= and ?target_id="""
    serializer_class = AuditLogSerializer
    permission_classes = [IsGraderOrAdmin]

    def get_queryset(self):
        queryset = AuditLog.objects.select_related('actor').order_by('-timestamp')
        params = self.request.query_params
        if params.get('action'):
            queryset = queryset.filter(action=params['action'])
        if params.get('target_model'):
            queryset = queryset.filter(target_model=params['target_model'])
        if params.get('target_id'):
            queryset = queryset.filter(target_object_id=params['target_id'])
        return queryset
