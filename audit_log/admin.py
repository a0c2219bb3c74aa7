# audit_log/admin.py

from django.contrib import admin
from .models import AppointmentStatusLog

@admin.register(AppointmentStatusLog)
class AppointmentStatusLogAdmin(admin.ModelAdmin):
    list_display = ('appointment', 'from_status', 'to_status', 'actor', 'timestamp')
    list_filter = ('to_status',)
    search_fields = ('appointment__patient__name', 'actor__username', 'note')
    readonly_fields = ('appointment', 'from_status', 'to_status', 'actor', 'note', 'timestamp')

    def has_add_permission(self, request):
        return False
