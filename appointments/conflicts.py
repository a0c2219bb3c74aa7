# appointments/conflicts.py
"""
Overlap detection against the appointment ledger.

Nothing in here writes. Callers that act on the answer hold the doctor row
lock (see staff.directory.get_doctor) so the answer stays true until they
commit.
"""

from .conf import scheduling_setting
from .models import Appointment
from .timeutils import intervals_overlap, minutes_to_time, to_date, to_minutes, MINUTES_PER_DAY


def calendar_appointments(doctor_id, day):
    """Appointments that still hold time on the doctor's calendar for `day`."""
    return (
        Appointment.objects
        .filter(doctor_id=doctor_id, appointment_date=to_date(day))
        .exclude(status__in=Appointment.RELEASING_STATUSES)
        .order_by('appointment_time')
    )


def find_conflicts(doctor_id, day, start_time, duration=None, exclude_appointment_id=None):
    start = to_minutes(start_time)
    if duration is None:
        duration = scheduling_setting('DEFAULT_DURATION_MINUTES')
    end = start + duration

    candidates = calendar_appointments(doctor_id, day)
    if exclude_appointment_id is not None:
        candidates = candidates.exclude(pk=exclude_appointment_id)
    if end < MINUTES_PER_DAY:
        # Anything starting at or after our end cannot overlap.
        candidates = candidates.filter(appointment_time__lt=minutes_to_time(end))

    overlapping = [
        appointment.pk
        for appointment in candidates.only('pk', 'appointment_time', 'duration')
        if intervals_overlap(start, end, appointment.start_minute, appointment.end_minute)
    ]
    return (
        Appointment.objects
        .filter(pk__in=overlapping)
        .select_related('patient', 'doctor__user')
        .order_by('appointment_time')
    )


def find_same_day_appointment(patient_id, doctor_id, day, exclude_appointment_id=None):
    """The patient's first open appointment with this doctor on `day`, or None."""
    queryset = (
        Appointment.objects
        .filter(patient_id=patient_id, doctor_id=doctor_id, appointment_date=to_date(day))
        .exclude(status__in=Appointment.TERMINAL_STATUSES)
    )
    if exclude_appointment_id is not None:
        queryset = queryset.exclude(pk=exclude_appointment_id)
    return queryset.order_by('appointment_time').first()
