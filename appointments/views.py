# appointments/views.py

from django.contrib.auth.decorators import login_required, permission_required
from django.views.decorators.http import require_GET, require_POST

from . import policies, queries, scheduling
from .api import form_errors, json_error, json_ok, request_data, scheduling_errors
from .exceptions import ErrorKind, Forbidden, InvalidRequest, NotFound
from .forms import (
    BlockSlotForm, BookingForm, DayQueryForm, ManualAppointmentForm, NoteForm,
    PaymentForm, ReasonForm, RescheduleForm,
)
from .models import Appointment


def appointment_json(appointment):
    cancellation = None
    if appointment.cancelled_at:
        cancellation = {
            'reason': appointment.cancellation_reason,
            'cancelled_by': appointment.cancelled_by_id,
            'cancelled_at': appointment.cancelled_at.isoformat(),
            'refund_amount': str(appointment.refund_amount),
        }
    return {
        'id': appointment.pk,
        'patient': {'id': appointment.patient_id, 'name': appointment.patient.name},
        'doctor': {'id': appointment.doctor_id, 'name': str(appointment.doctor)},
        'date': appointment.appointment_date.isoformat(),
        'time': appointment.appointment_time.strftime('%H:%M'),
        'end_time': appointment.end_time.strftime('%H:%M'),
        'duration': appointment.duration,
        'status': appointment.status,
        'purpose_of_visit': appointment.purpose_of_visit,
        'priority': appointment.priority,
        'appointment_type': appointment.appointment_type,
        'reason': appointment.reason,
        'symptoms': appointment.symptoms,
        'slot': appointment.slot_id,
        'payment': {
            'amount': str(appointment.payment_amount),
            'status': appointment.payment_status,
            'method': appointment.payment_method,
            'transaction_id': appointment.payment_transaction_id,
            'paid_at': appointment.paid_at.isoformat() if appointment.paid_at else None,
        },
        'cancellation': cancellation,
    }


def slot_json(slot):
    return {
        'id': slot.pk,
        'doctor': slot.doctor_id,
        'date': slot.date.isoformat(),
        'start_time': slot.start_time.strftime('%H:%M'),
        'end_time': slot.end_time.strftime('%H:%M'),
        'duration': slot.duration,
        'status': slot.status,
        'max_patients': slot.max_patients,
        'booked_patients': slot.booked_patients,
        'slot_type': slot.slot_type,
        'fee': str(slot.fee),
    }


def _patient_profile(user):
    return getattr(user, 'patient_profile', None)


def _staff_profile(user):
    return getattr(user, 'staff_profile', None)


def _appointment_for(request, pk, staff_perm, allow_patient=True, allow_doctor=False):
    """
    The appointment, if the user may act on it.

    Staff holding `staff_perm` may act on any appointment. Otherwise the
    patient (when `allow_patient`) or the treating doctor (when
    `allow_doctor`) may act on it.
    """
    appointment = (
        Appointment.objects.select_related('patient', 'doctor__user').filter(pk=pk).first()
    )
    if appointment is None:
        raise NotFound("Appointment not found")
    user = request.user
    if user.has_perm(staff_perm):
        return appointment
    patient = _patient_profile(user)
    if allow_patient and patient is not None and appointment.patient_id == patient.pk:
        return appointment
    staff = _staff_profile(user)
    if allow_doctor and staff is not None and appointment.doctor_id == staff.pk:
        return appointment
    raise Forbidden("You can only manage your own appointments")


def _int_param(request, name):
    value = request.GET.get(name)
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        raise InvalidRequest(f"'{name}' must be a number") from None


def _day(request):
    form = DayQueryForm(request.GET)
    if not form.is_valid():
        return None, form_errors(form)
    return form.cleaned_data['date'], None


# --- Slots & availability ---
@login_required
@require_GET
@scheduling_errors
def doctor_slots_view(request, doctor_id):
    day, error = _day(request)
    if error:
        return error
    slots = scheduling.list_slots_for_date(doctor_id, day, created_by=request.user)
    return json_ok([slot_json(slot) for slot in slots])


@login_required
@require_GET
@scheduling_errors
def doctor_availability_view(request, doctor_id):
    day, error = _day(request)
    if error:
        return error
    return json_ok(scheduling.get_doctor_availability(doctor_id, day))


@login_required
@permission_required('appointments.change_slot', raise_exception=True)
@require_POST
@scheduling_errors
def block_slot_view(request, pk):
    form = BlockSlotForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    slot = scheduling.block_slot(
        pk, reason=form.cleaned_data['reason'], notes=form.cleaned_data['notes'], actor=request.user
    )
    return json_ok(slot_json(slot), message='Slot blocked')


@login_required
@permission_required('appointments.change_slot', raise_exception=True)
@require_POST
@scheduling_errors
def unblock_slot_view(request, pk):
    slot = scheduling.unblock_slot(pk, actor=request.user)
    return json_ok(slot_json(slot), message='Slot unblocked')


# --- Booking ---
@login_required
@require_POST
@scheduling_errors
def book_appointment_view(request):
    form = BookingForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    data = form.cleaned_data

    patient_id = data['patient']
    if not request.user.has_perm('appointments.add_appointment'):
        patient = _patient_profile(request.user)
        if patient is None:
            raise Forbidden("Only patients can book appointments")
        if patient_id not in (None, patient.pk):
            raise Forbidden("You can only book appointments for yourself")
        patient_id = patient.pk
    elif patient_id is None:
        return json_error(ErrorKind.INVALID_REQUEST.value, "A patient is required", 400)

    appointment = policies.book_appointment(
        patient_id,
        data['doctor'],
        data['appointment_date'],
        data['appointment_time'],
        duration=data['duration'],
        reason=data['reason'],
        symptoms=data['symptoms'],
        priority=data['priority'],
        appointment_type=data['appointment_type'],
        purpose_of_visit=data['purpose_of_visit'],
        created_by=request.user,
    )
    return json_ok(appointment_json(appointment), status=201, message='Appointment booked successfully')


@login_required
@permission_required('appointments.add_appointment', raise_exception=True)
@require_POST
@scheduling_errors
def manual_appointment_view(request):
    form = ManualAppointmentForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    data = form.cleaned_data
    appointment = policies.create_manual_appointment(
        data['patient_mobile'],
        data['doctor'],
        data['appointment_date'],
        data['appointment_time'],
        patient_name=data['patient_name'],
        purpose_of_visit=data['purpose_of_visit'],
        reason=data['reason'],
        is_walk_in=data['is_walk_in'],
        slot_id=data['slot'],
        duration=data['duration'],
        created_by=request.user,
    )
    return json_ok(appointment_json(appointment), status=201, message='Manual appointment created successfully')


# --- Listing ---
@login_required
@require_GET
@scheduling_errors
def appointment_list_view(request):
    user = request.user
    if user.has_perm('appointments.view_appointment'):
        appointments = Appointment.objects.select_related('patient', 'doctor__user')
        doctor_id = _int_param(request, 'doctor')
        if doctor_id is not None:
            appointments = appointments.filter(doctor_id=doctor_id)
        if request.GET.get('status'):
            appointments = appointments.filter(status=request.GET['status'])
        if request.GET.get('date'):
            day, error = _day(request)
            if error:
                return error
            appointments = appointments.filter(appointment_date=day)
    else:
        patient = _patient_profile(user)
        if patient is None:
            raise Forbidden("You do not have access to appointments")
        scope = request.GET.get('scope')
        if scope not in (None, 'upcoming', 'past'):
            return json_error(ErrorKind.INVALID_REQUEST.value, "scope must be 'upcoming' or 'past'", 400)
        appointments = queries.patient_appointments(patient.pk, scope)
    return json_ok([appointment_json(appointment) for appointment in appointments])


@login_required
@permission_required('appointments.view_appointment', raise_exception=True)
@require_GET
@scheduling_errors
def pending_appointments_view(request):
    day = None
    if request.GET.get('date'):
        day, error = _day(request)
        if error:
            return error
    appointments = queries.pending_appointments(doctor_id=_int_param(request, 'doctor'), day=day)
    return json_ok([appointment_json(appointment) for appointment in appointments])


@login_required
@require_GET
@scheduling_errors
def appointment_stats_view(request):
    user = request.user
    if user.has_perm('appointments.view_appointment'):
        stats = queries.appointment_stats(doctor_id=_int_param(request, 'doctor'))
    else:
        patient = _patient_profile(user)
        if patient is None:
            raise Forbidden("You do not have access to appointment statistics")
        stats = queries.appointment_stats(patient_id=patient.pk)
    return json_ok(stats)


@login_required
@require_GET
@scheduling_errors
def appointment_detail_view(request, pk):
    appointment = _appointment_for(request, pk, 'appointments.view_appointment', allow_doctor=True)
    return json_ok(appointment_json(appointment))


# --- Lifecycle ---
@login_required
@require_POST
@scheduling_errors
def cancel_appointment_view(request, pk):
    _appointment_for(request, pk, 'appointments.change_appointment')
    form = ReasonForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    appointment = policies.cancel_appointment(pk, cancelled_by=request.user, reason=form.cleaned_data['reason'])
    return json_ok(appointment_json(appointment), message='Appointment cancelled successfully')


@login_required
@permission_required('appointments.change_appointment', raise_exception=True)
@require_POST
@scheduling_errors
def confirm_appointment_view(request, pk):
    appointment = policies.confirm_appointment(pk, actor=request.user)
    return json_ok(appointment_json(appointment), message='Appointment confirmed successfully')


@login_required
@permission_required('appointments.change_appointment', raise_exception=True)
@require_POST
@scheduling_errors
def reject_appointment_view(request, pk):
    form = ReasonForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    appointment = policies.reject_appointment(pk, actor=request.user, reason=form.cleaned_data['reason'])
    return json_ok(appointment_json(appointment), message='Appointment rejected')


@login_required
@require_POST
@scheduling_errors
def reschedule_appointment_view(request, pk):
    _appointment_for(request, pk, 'appointments.change_appointment')
    form = RescheduleForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    data = form.cleaned_data
    appointment = policies.reschedule_appointment(
        pk,
        data['appointment_date'],
        data['appointment_time'],
        actor=request.user,
        duration=data['duration'],
    )
    return json_ok(appointment_json(appointment), message='Appointment rescheduled successfully')


LIFECYCLE_ACTIONS = {
    'start': policies.start_consultation,
    'complete': policies.complete_appointment,
    'no-show': policies.mark_no_show,
}


@login_required
@require_POST
@scheduling_errors
def appointment_action_view(request, pk, action):
    if action not in LIFECYCLE_ACTIONS:
        raise NotFound(f"Unknown action '{action}'")
    _appointment_for(request, pk, 'appointments.change_appointment', allow_patient=False, allow_doctor=True)
    form = NoteForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    appointment = LIFECYCLE_ACTIONS[action](pk, actor=request.user, note=form.cleaned_data['note'])
    return json_ok(appointment_json(appointment))


@login_required
@permission_required('appointments.change_appointment', raise_exception=True)
@require_POST
@scheduling_errors
def record_payment_view(request, pk):
    form = PaymentForm(request_data(request))
    if not form.is_valid():
        return form_errors(form)
    data = form.cleaned_data
    appointment = policies.record_payment(
        pk,
        amount=data['amount'],
        method=data['method'],
        transaction_id=data['transaction_id'],
        actor=request.user,
    )
    return json_ok(appointment_json(appointment), message='Payment recorded')
