# audit_log/apps.py

from django.apps import AppConfig

class AuditLogConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'audit_log'
    verbose_name = 'Audit Log'

    def ready(self):
        # Appointment status history is recorded by signal receivers.
        import audit_log.signals
