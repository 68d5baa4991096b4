from django.contrib import admin

from .models import PlatformSetting, AuditLog

admin.site.register(PlatformSetting)


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ('timestamp', 'actor', 'action', 'target_model', 'target_object_id')
    list_filter = ('action',)
