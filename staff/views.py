# staff/views.py

from django.contrib.auth.decorators import login_required
from django.views.decorators.http import require_GET

from appointments.api import json_ok, scheduling_errors
from appointments.exceptions import InvalidRequest, NotFound
from appointments.timeutils import WEEKDAY_CODES, format_minutes, time_to_minutes
from . import directory


def doctor_json(staff_member):
    return {
        'id': staff_member.pk,
        'name': str(staff_member),
        'specialization': staff_member.get_specialization_display() if staff_member.specialization else None,
        'qualification': staff_member.qualification,
        'experience_years': staff_member.experience_years,
        'consultation_fee': str(staff_member.consultation_fee),
        'weekly_schedule': [
            {
                'day': entry.day,
                'start_time': format_minutes(time_to_minutes(entry.start_time)),
                'end_time': format_minutes(time_to_minutes(entry.end_time)),
                'is_available': entry.is_available,
            }
            for entry in staff_member.weekly_schedule.all()
        ],
    }


@login_required
@require_GET
def doctor_list_view(request):
    specialization = request.GET.get('specialization')
    if specialization:
        doctors = directory.find_doctors_by_specialization(specialization)
    else:
        doctors = directory.bookable_doctors()
    return json_ok([doctor_json(doctor) for doctor in doctors])


@login_required
@require_GET
@scheduling_errors
def available_doctors_view(request):
    """Bookable doctors working on ?day=mon..sun at ?time=HH:MM."""
    day = (request.GET.get('day') or '').lower()
    if day not in WEEKDAY_CODES:
        raise InvalidRequest("day must be one of " + ', '.join(WEEKDAY_CODES))
    doctors = directory.find_available_doctors(day, request.GET.get('time', ''))
    return json_ok([doctor_json(doctor) for doctor in doctors])


@login_required
@require_GET
@scheduling_errors
def doctor_detail_view(request, pk):
    doctor = directory.bookable_doctors().filter(pk=pk).first()
    if doctor is None:
        raise NotFound("Doctor not found")
    return json_ok(doctor_json(doctor))
