# audit_log/views.py

from django.contrib.auth.decorators import login_required, permission_required
from django.views.decorators.http import require_GET

from appointments.api import json_ok
from .models import AppointmentStatusLog

@login_required
@permission_required('appointments.view_appointment', raise_exception=True)
@require_GET
def appointment_history_view(request, appointment_id):
    """
    Status history of one appointment, oldest change first.
    """
    logs = (
        AppointmentStatusLog.objects
        .filter(appointment_id=appointment_id)
        .select_related('actor')
        .order_by('timestamp', 'pk')
    )
    return json_ok([
        {
            'from_status': log.from_status or None,
            'to_status': log.to_status,
            'actor': log.actor.get_username() if log.actor else None,
            'note': log.note,
            'timestamp': log.timestamp.isoformat(),
        }
        for log in logs
    ])
