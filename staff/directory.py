# staff/directory.py
"""
Read-only doctor directory used by the scheduling engine.

The engine never works on live StaffMember rows: it asks for a
DoctorSnapshot, an immutable copy of the fields booking rules depend on
(status flags, fee, weekly template in minutes).
"""

from decimal import Decimal
from typing import NamedTuple, Optional, Tuple

from django.db.models import Prefetch

from appointments.timeutils import time_to_minutes, to_minutes
from .models import DOCTORS_GROUP, ScheduleEntry, StaffMember


class WeeklyEntry(NamedTuple):
    day: str
    start_minute: int
    end_minute: int
    is_available: bool


class DoctorSnapshot(NamedTuple):
    id: int
    name: str
    specialization: Optional[str]
    is_active: bool
    is_verified: bool
    is_doctor: bool
    consultation_fee: Decimal
    weekly_schedule: Tuple[WeeklyEntry, ...]

    @property
    def is_bookable(self):
        return self.is_doctor and self.is_active and self.is_verified


def snapshot(staff_member):
    entries = tuple(
        WeeklyEntry(
            day=entry.day,
            start_minute=time_to_minutes(entry.start_time),
            end_minute=time_to_minutes(entry.end_time),
            is_available=entry.is_available,
        )
        for entry in staff_member.weekly_schedule.all()
    )
    return DoctorSnapshot(
        id=staff_member.pk,
        name=staff_member.name,
        specialization=staff_member.specialization,
        is_active=staff_member.is_active and staff_member.user.is_active,
        is_verified=staff_member.is_verified,
        is_doctor=staff_member.is_doctor,
        consultation_fee=staff_member.consultation_fee or Decimal('0.00'),
        weekly_schedule=entries,
    )


def get_doctor(doctor_id, lock=False):
    """
    Snapshot of a staff member, or None when the id is unknown.

    With lock=True the StaffMember row is locked for the rest of the
    surrounding transaction, which serialises bookings per doctor.
    """
    queryset = StaffMember.objects.select_related('user')
    if lock:
        # Lock the staff row only, not the joined auth user.
        queryset = StaffMember.objects.select_for_update(of=('self',)).select_related('user')
    try:
        staff_member = queryset.get(pk=doctor_id)
    except (StaffMember.DoesNotExist, ValueError, TypeError):
        return None
    return snapshot(staff_member)


def doctors():
    return (
        StaffMember.objects.filter(user__groups__name=DOCTORS_GROUP)
        .select_related('user')
        .prefetch_related(Prefetch('weekly_schedule', queryset=ScheduleEntry.objects.order_by('pk')))
        .distinct()
    )


def bookable_doctors():
    return doctors().filter(is_active=True, is_verified=True, user__is_active=True)


def find_doctors_by_specialization(specialization):
    return bookable_doctors().filter(specialization__iexact=specialization)


def find_available_doctors(day, at_time):
    """Bookable doctors whose template covers `at_time` on weekday code `day`."""
    at_time = to_minutes(at_time)
    matching = []
    for doctor in bookable_doctors():
        for entry in doctor.weekly_schedule.all():
            if entry.day != day or not entry.is_available:
                continue
            if time_to_minutes(entry.start_time) <= at_time <= time_to_minutes(entry.end_time):
                matching.append(doctor)
            break
    return matching
