from django.urls import path

from .views import AuditLogListView, PlatformSettingView

urlpatterns = [
    path('platform-settings/', PlatformSettingView.as_view(), name='platform-settings'),
    path('audit-trail/', AuditLogListView.as_view(), name='audit-trail'),
]
