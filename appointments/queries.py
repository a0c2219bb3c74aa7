# appointments/queries.py

from django.db.models import Count, Q
from django.utils import timezone

from .models import Appointment
from .timeutils import to_date

Status = Appointment.Status

OPEN_STATUSES = [Status.PENDING, Status.CONFIRMED]


def _ahead_of(now):
    """Appointments starting after `now`, compared in the site time zone."""
    local = timezone.localtime(now)
    return Q(appointment_date__gt=local.date()) | Q(
        appointment_date=local.date(), appointment_time__gt=local.time().replace(microsecond=0)
    )


def pending_appointments(doctor_id=None, day=None):
    """Requests waiting for the reception desk, oldest appointment first."""
    queryset = Appointment.objects.filter(status=Status.PENDING).select_related('patient', 'doctor__user')
    if doctor_id is not None:
        queryset = queryset.filter(doctor_id=doctor_id)
    if day is not None:
        queryset = queryset.filter(appointment_date=to_date(day))
    return queryset.order_by('appointment_date', 'appointment_time')


def appointment_stats(doctor_id=None, patient_id=None, now=None):
    now = now or timezone.now()
    today = timezone.localdate(now)

    queryset = Appointment.objects.all()
    if doctor_id is not None:
        queryset = queryset.filter(doctor_id=doctor_id)
    if patient_id is not None:
        queryset = queryset.filter(patient_id=patient_id)

    by_status = {status.value: 0 for status in Status}
    for row in queryset.order_by().values('status').annotate(count=Count('pk')):
        by_status[row['status']] = row['count']

    totals = queryset.aggregate(
        today=Count('pk', filter=Q(appointment_date=today)),
        upcoming=Count('pk', filter=_ahead_of(now) & Q(status__in=OPEN_STATUSES)),
    )
    return {
        'total': sum(by_status.values()),
        'by_status': by_status,
        'today': totals['today'],
        'upcoming': totals['upcoming'],
    }


def patient_appointments(patient_id, scope=None, now=None):
    """A patient's appointments; scope is None, 'upcoming' or 'past'."""
    now = now or timezone.now()
    queryset = Appointment.objects.filter(patient_id=patient_id).select_related('doctor__user', 'slot')

    if scope == 'upcoming':
        return queryset.filter(
            _ahead_of(now), status__in=OPEN_STATUSES
        ).order_by('appointment_date', 'appointment_time')
    if scope == 'past':
        return queryset.filter(
            ~_ahead_of(now) | Q(status__in=Appointment.TERMINAL_STATUSES)
        ).order_by('-appointment_date', '-appointment_time')
    return queryset.order_by('-appointment_date', '-appointment_time')
