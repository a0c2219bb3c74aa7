# appointments/scheduling.py
"""
Slot store and availability.

Slots are materialised lazily from a doctor's weekly template the first
time a date is queried. Reserving and releasing a slot are single
conditional UPDATE statements, so two requests racing for the last place
in a slot cannot both win.
"""

from typing import NamedTuple, Optional

import structlog
from django.db import models, transaction
from django.db.models import Case, F, Value, When
from django.db.models.functions import Greatest
from django.utils import timezone

from staff.directory import DoctorSnapshot, get_doctor
from .conf import scheduling_setting
from .conflicts import calendar_appointments
from .exceptions import Conflict, InvalidRequest, NotFound
from .models import Slot
from .timeutils import format_minutes, minutes_to_time, to_date, weekday_code

logger = structlog.get_logger(__name__)


class DaySchedule(NamedTuple):
    day: str
    start_minute: int
    end_minute: int

    @property
    def label(self):
        return f"{format_minutes(self.start_minute)}-{format_minutes(self.end_minute)}"


def schedule_for(doctor: DoctorSnapshot, day) -> Optional[DaySchedule]:
    """The effective working window for `day`: the first available entry for that weekday."""
    code = weekday_code(day)
    for entry in doctor.weekly_schedule:
        if entry.day == code and entry.is_available:
            return DaySchedule(code, entry.start_minute, entry.end_minute)
    return None


def span_starts(schedule: DaySchedule, span_minutes: int):
    """Start minutes of every whole span that fits inside the window."""
    return range(schedule.start_minute, schedule.end_minute - span_minutes + 1, span_minutes)


def require_doctor(doctor_id, lock=False, active=True, verified=False) -> DoctorSnapshot:
    doctor = get_doctor(doctor_id, lock=lock)
    if doctor is None or not doctor.is_doctor:
        raise NotFound("Doctor not found")
    if (active and not doctor.is_active) or (verified and not doctor.is_verified):
        raise NotFound("Doctor not found or not available")
    return doctor


def generate_slots_for_date(doctor_id, day, created_by=None):
    """
    Create the slots for `day` that do not exist yet and return them.

    Existing slots are left alone whatever their state, so calling this
    any number of times gives the same set of rows.
    """
    day = to_date(day)
    doctor = require_doctor(doctor_id, active=False)
    schedule = schedule_for(doctor, day)
    if schedule is None:
        return []

    span = scheduling_setting('SLOT_MINUTES')
    existing = set(
        Slot.objects.filter(doctor_id=doctor.id, date=day).values_list('start_time', flat=True)
    )
    pending = [
        Slot(
            doctor_id=doctor.id,
            date=day,
            start_time=minutes_to_time(start),
            end_time=minutes_to_time(start + span),
            duration=span,
            fee=doctor.consultation_fee,
            created_by=created_by,
        )
        for start in span_starts(schedule, span)
        if minutes_to_time(start) not in existing
    ]
    if not pending:
        return []

    with transaction.atomic():
        # A concurrent generator may have inserted some of these already.
        Slot.objects.bulk_create(pending, ignore_conflicts=True)

    created = list(
        Slot.objects.filter(
            doctor_id=doctor.id,
            date=day,
            start_time__in=[slot.start_time for slot in pending],
        ).order_by('start_time')
    )
    logger.info('slots_generated', doctor_id=doctor.id, date=day.isoformat(), count=len(created))
    return created


def get_available_slots(doctor_id, day):
    return (
        Slot.objects
        .filter(
            doctor_id=doctor_id,
            date=to_date(day),
            is_available=True,
            is_blocked=False,
            booked_patients__lt=F('max_patients'),
        )
        .order_by('start_time')
    )


def list_slots_for_date(doctor_id, day, created_by=None):
    day = to_date(day)
    doctor = require_doctor(doctor_id)
    generate_slots_for_date(doctor.id, day, created_by=created_by)
    return get_available_slots(doctor.id, day)


def get_doctor_availability(doctor_id, day):
    day = to_date(day)
    doctor = require_doctor(doctor_id)
    schedule = schedule_for(doctor, day)
    if schedule is None:
        return {'available': False, 'reason': f"Doctor is not available on {day:%A}"}

    booked = [
        {
            'start': format_minutes(appointment.start_minute),
            'end': format_minutes(appointment.end_minute),
        }
        for appointment in calendar_appointments(doctor.id, day).only('appointment_time', 'duration')
    ]
    return {
        'available': True,
        'schedule': {
            'start': format_minutes(schedule.start_minute),
            'end': format_minutes(schedule.end_minute),
        },
        'booked_intervals': booked,
    }


def _existing_slot_or_404(slot_id):
    if not Slot.objects.filter(pk=slot_id).exists():
        raise NotFound("Slot not found")


def reserve_slot(slot_id, appointment_id):
    updated = (
        Slot.objects
        .filter(pk=slot_id, is_available=True, is_blocked=False, booked_patients__lt=F('max_patients'))
        .update(
            booked_patients=F('booked_patients') + 1,
            appointment_id=appointment_id,
            # Evaluated against the row before the increment.
            is_available=Case(
                When(booked_patients__gte=F('max_patients') - 1, then=Value(False)),
                default=Value(True),
            ),
            updated_at=timezone.now(),
        )
    )
    if not updated:
        _existing_slot_or_404(slot_id)
        logger.info('slot_reserve_refused', slot_id=slot_id, appointment_id=appointment_id)
        raise Conflict("Slot is not available")
    logger.info('slot_reserved', slot_id=slot_id, appointment_id=appointment_id)
    return Slot.objects.get(pk=slot_id)


def release_slot(slot_id):
    updated = Slot.objects.filter(pk=slot_id).update(
        booked_patients=Greatest(F('booked_patients') - 1, Value(0), output_field=models.IntegerField()),
        appointment=None,
        is_available=True,
        updated_at=timezone.now(),
    )
    if not updated:
        raise NotFound("Slot not found")
    logger.info('slot_released', slot_id=slot_id)
    return Slot.objects.get(pk=slot_id)


def _lock_slot(slot_id):
    try:
        return Slot.objects.select_for_update().get(pk=slot_id)
    except (Slot.DoesNotExist, ValueError, TypeError):
        raise NotFound("Slot not found") from None


@transaction.atomic
def block_slot(slot_id, reason='other', notes='', actor=None):
    if reason not in dict(Slot.BLOCK_REASON_CHOICES):
        raise InvalidRequest(f"Unknown block reason '{reason}'")
    slot = _lock_slot(slot_id)
    if slot.booked_patients > 0:
        raise Conflict("Cannot block a slot that already has bookings")
    slot.is_blocked = True
    slot.is_available = False
    slot.block_reason = reason
    if notes:
        slot.notes = notes
    slot.last_modified_by = actor
    slot.save()
    logger.info('slot_blocked', slot_id=slot.pk, reason=reason)
    return slot


@transaction.atomic
def unblock_slot(slot_id, actor=None):
    slot = _lock_slot(slot_id)
    slot.is_blocked = False
    slot.block_reason = ''
    slot.is_available = slot.booked_patients < slot.max_patients
    slot.last_modified_by = actor
    slot.save()
    logger.info('slot_unblocked', slot_id=slot.pk)
    return slot
