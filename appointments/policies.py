# appointments/policies.py
"""
Booking, cancellation and lifecycle rules.

Every public function here either returns the saved Appointment or raises
a SchedulingError subclass. Each one runs inside a single transaction, so
a failure leaves the ledger and the slot store untouched.

Functions that depend on the clock take an optional `now` (an aware
datetime). "Today" is the calendar day of `now` in the site time zone.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import NamedTuple, Optional

import phonenumbers
import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone
from phonenumber_field.phonenumber import PhoneNumber

from patients.models import Patient
from .conf import scheduling_setting
from .conflicts import find_conflicts, find_same_day_appointment
from .exceptions import Conflict, InvalidRequest, NotFound
from .models import Appointment, MAX_DURATION_MINUTES, MIN_DURATION_MINUTES
from .retry import transient_retry
from .scheduling import release_slot, require_doctor, reserve_slot, schedule_for
from .timeutils import add_months, format_minutes, hours_until, minutes_to_time, to_date, to_minutes

logger = structlog.get_logger(__name__)

Status = Appointment.Status

SLOT_TAKEN_MESSAGE = "Time slot is already booked. Please choose a different time."


class CancellationCheck(NamedTuple):
    allowed: bool
    reason: Optional[str] = None


def _now(now):
    return now if now is not None else timezone.now()


def normalise_duration(duration):
    if duration in (None, ''):
        return scheduling_setting('DEFAULT_DURATION_MINUTES')
    try:
        duration = int(duration)
    except (TypeError, ValueError):
        raise InvalidRequest("Duration must be a whole number of minutes.") from None
    if not MIN_DURATION_MINUTES <= duration <= MAX_DURATION_MINUTES:
        raise InvalidRequest(
            f"Duration must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES} minutes."
        )
    return duration


def _get_patient(patient_id):
    try:
        return Patient.objects.get(pk=patient_id)
    except (Patient.DoesNotExist, ValueError, TypeError):
        raise NotFound("Patient not found") from None


def _lock_appointment(appointment_id):
    try:
        return Appointment.objects.select_for_update().get(pk=appointment_id)
    except (Appointment.DoesNotExist, ValueError, TypeError):
        raise NotFound("Appointment not found") from None


def _validation_message(error):
    if hasattr(error, 'message_dict'):
        return '; '.join(
            f"{field}: {' '.join(messages)}" for field, messages in error.message_dict.items()
        )
    return ' '.join(error.messages)


def _store_appointment(appointment):
    """
    Validate and write an appointment.

    The partial unique constraint on (doctor, date, time) is the last word
    on double booking: if a concurrent writer got the start time first the
    insert fails and the caller sees the same Conflict a pre-check gives.
    """
    try:
        appointment.full_clean(validate_unique=False, validate_constraints=False)
    except ValidationError as exc:
        raise InvalidRequest(_validation_message(exc)) from None
    try:
        with transaction.atomic():
            appointment.save()
    except IntegrityError as exc:
        logger.warning(
            'booking_store_conflict',
            doctor_id=appointment.doctor_id,
            date=appointment.appointment_date.isoformat(),
            time=appointment.appointment_time.strftime('%H:%M'),
        )
        raise Conflict(SLOT_TAKEN_MESSAGE) from exc
    return appointment


def _release_linked_slot(appointment):
    if appointment.slot_id is not None:
        release_slot(appointment.slot_id)


def check_booking_window(doctor, day, start, now=None):
    """Date bounds and working hours, in that order. Returns the day's schedule."""
    today = timezone.localdate(_now(now))
    if day < today:
        raise InvalidRequest("Cannot book appointments for past dates")

    months = scheduling_setting('BOOKING_HORIZON_MONTHS')
    if day > add_months(today, months):
        raise InvalidRequest(f"Cannot book appointments more than {months} months in advance")

    schedule = schedule_for(doctor, day)
    if schedule is None:
        raise InvalidRequest(f"Doctor is not available on {day:%A}")
    if not schedule.start_minute <= start <= schedule.end_minute:
        raise InvalidRequest(
            f"Appointment time must be between {format_minutes(schedule.start_minute)} "
            f"and {format_minutes(schedule.end_minute)}"
        )
    return schedule


def _check_calendar(doctor, day, start, duration, exclude_appointment_id=None):
    conflicts = find_conflicts(
        doctor.id, day, start, duration, exclude_appointment_id=exclude_appointment_id
    )
    if conflicts.exists():
        logger.info(
            'booking_conflict',
            doctor_id=doctor.id,
            date=day.isoformat(),
            time=format_minutes(start),
            conflicting_ids=list(conflicts.values_list('pk', flat=True)),
        )
        raise Conflict(SLOT_TAKEN_MESSAGE)


@transient_retry
def book_appointment(patient_id, doctor_id, appointment_date, appointment_time, duration=None,
                     reason='', symptoms='', priority='medium', appointment_type='consultation',
                     purpose_of_visit='consultation', created_by=None, now=None):
    """
    Book a pending appointment for a patient.

    Checks run in a fixed order and the first failure wins: doctor and
    patient exist, the date is not in the past, the date is within the
    booking horizon, the doctor works that weekday, the time falls inside
    working hours, the interval is free, and the patient has no other open
    appointment with this doctor that day.
    """
    now = _now(now)
    start = to_minutes(appointment_time)
    duration = normalise_duration(duration)
    day = to_date(appointment_date)

    with transaction.atomic():
        # Serialises bookings for this doctor until commit.
        doctor = require_doctor(doctor_id, lock=True, verified=True)
        patient = _get_patient(patient_id)
        check_booking_window(doctor, day, start, now)
        _check_calendar(doctor, day, start, duration)
        if find_same_day_appointment(patient.pk, doctor.id, day) is not None:
            raise Conflict("You already have an appointment with this doctor on this date")

        appointment = _store_appointment(Appointment(
            patient=patient,
            doctor_id=doctor.id,
            appointment_date=day,
            appointment_time=minutes_to_time(start),
            duration=duration,
            reason=reason or '',
            symptoms=symptoms or '',
            priority=priority,
            appointment_type=appointment_type,
            purpose_of_visit=purpose_of_visit,
            status=Status.PENDING,
            payment_amount=doctor.consultation_fee,
            payment_status='pending',
            created_by=created_by,
            last_modified_by=created_by,
        ))

    logger.info(
        'appointment_booked',
        appointment_id=appointment.pk,
        doctor_id=doctor.id,
        patient_id=patient.pk,
        date=day.isoformat(),
        time=format_minutes(start),
        duration=duration,
    )
    return appointment


def can_cancel(appointment, now=None) -> CancellationCheck:
    if appointment.status in (Status.CANCELLED, Status.COMPLETED, Status.NO_SHOW, Status.REJECTED):
        return CancellationCheck(False, f"Appointment is already {appointment.status}")
    if appointment.status == Status.IN_PROGRESS:
        return CancellationCheck(False, "Cannot cancel appointment in progress")

    cutoff = scheduling_setting('CANCELLATION_CUTOFF_HOURS')
    if hours_until(appointment.appointment_datetime, _now(now)) < cutoff:
        return CancellationCheck(
            False, f"Cannot cancel appointment less than {cutoff} hours before scheduled time"
        )
    return CancellationCheck(True)


def calculate_refund(appointment, now=None) -> Decimal:
    """Refund owed if the appointment were cancelled at `now`."""
    if appointment.payment_status != 'paid':
        return Decimal('0.00')

    hours = hours_until(appointment.appointment_datetime, _now(now))
    amount = Decimal(appointment.payment_amount)
    if hours >= scheduling_setting('FULL_REFUND_HOURS'):
        refund = amount
    elif hours >= scheduling_setting('CANCELLATION_CUTOFF_HOURS'):
        refund = amount * scheduling_setting('PARTIAL_REFUND_RATE')
    else:
        refund = Decimal('0')
    return refund.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


@transient_retry
def cancel_appointment(appointment_id, cancelled_by=None, reason='', now=None):
    now = _now(now)
    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        check = can_cancel(appointment, now)
        if not check.allowed:
            raise InvalidRequest(check.reason)

        refund = calculate_refund(appointment, now)
        appointment.status = Status.CANCELLED
        appointment.cancellation_reason = reason or ''
        appointment.cancelled_by = cancelled_by
        appointment.cancelled_at = now
        appointment.refund_amount = refund
        if refund > 0:
            appointment.payment_status = 'refunded'
        appointment.last_modified_by = cancelled_by
        appointment.save()
        _release_linked_slot(appointment)

    logger.info('appointment_cancelled', appointment_id=appointment.pk, refund=str(refund))
    return appointment


@transient_retry
def confirm_appointment(appointment_id, actor=None):
    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        if appointment.status != Status.PENDING:
            raise InvalidRequest("Only pending appointments can be confirmed")
        appointment.status = Status.CONFIRMED
        appointment.last_modified_by = actor
        appointment.save()

    logger.info('appointment_confirmed', appointment_id=appointment.pk)
    return appointment


@transient_retry
def reject_appointment(appointment_id, actor=None, reason='', now=None):
    now = _now(now)
    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        if appointment.status != Status.PENDING:
            raise InvalidRequest("Only pending appointments can be rejected")
        appointment.status = Status.REJECTED
        appointment.cancellation_reason = reason or 'Rejected by receptionist'
        appointment.cancelled_by = actor
        appointment.cancelled_at = now
        appointment.last_modified_by = actor
        appointment.save()
        _release_linked_slot(appointment)

    logger.info('appointment_rejected', appointment_id=appointment.pk)
    return appointment


@transient_retry
def transition_status(appointment_id, new_status, actor=None, note=''):
    """Move an appointment along the lifecycle table, refusing illegal moves."""
    try:
        new_status = Status(new_status)
    except ValueError:
        raise InvalidRequest(f"Unknown status '{new_status}'") from None
    if new_status == Status.CANCELLED:
        raise InvalidRequest("Cancelled status is only set by cancelling the appointment")
    if new_status == Status.REJECTED:
        raise InvalidRequest("Rejected status is only set by rejecting the appointment")

    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        old_status = appointment.status
        if not appointment.can_transition_to(new_status):
            raise InvalidRequest(f"Cannot change appointment status from {old_status} to {new_status.value}")
        appointment.status = new_status
        appointment.last_modified_by = actor
        appointment._status_note = note
        appointment.save()
        if new_status in Appointment.RELEASING_STATUSES:
            _release_linked_slot(appointment)

    logger.info(
        'appointment_status_changed',
        appointment_id=appointment.pk,
        from_status=old_status,
        to_status=new_status.value,
    )
    return appointment


def start_consultation(appointment_id, actor=None, note=''):
    return transition_status(appointment_id, Status.IN_PROGRESS, actor=actor, note=note)


def complete_appointment(appointment_id, actor=None, note=''):
    return transition_status(appointment_id, Status.COMPLETED, actor=actor, note=note)


def mark_no_show(appointment_id, actor=None, note=''):
    return transition_status(appointment_id, Status.NO_SHOW, actor=actor, note=note)


@transient_retry
def reschedule_appointment(appointment_id, appointment_date, appointment_time, actor=None,
                           duration=None, now=None):
    now = _now(now)
    start = to_minutes(appointment_time)
    day = to_date(appointment_date)

    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        if appointment.status not in (Status.PENDING, Status.CONFIRMED):
            raise InvalidRequest("Only pending or confirmed appointments can be rescheduled")
        duration = normalise_duration(duration if duration is not None else appointment.duration)
        doctor = require_doctor(appointment.doctor_id, lock=True)
        check_booking_window(doctor, day, start, now)
        _check_calendar(doctor, day, start, duration, exclude_appointment_id=appointment.pk)
        if find_same_day_appointment(
            appointment.patient_id, doctor.id, day, exclude_appointment_id=appointment.pk
        ) is not None:
            raise Conflict("Patient already has an appointment with this doctor on this date")

        # The old slot no longer matches the new time.
        _release_linked_slot(appointment)
        appointment.slot = None
        appointment.appointment_date = day
        appointment.appointment_time = minutes_to_time(start)
        appointment.duration = duration
        appointment.last_modified_by = actor
        _store_appointment(appointment)

    logger.info(
        'appointment_rescheduled',
        appointment_id=appointment.pk,
        date=day.isoformat(),
        time=format_minutes(start),
    )
    return appointment


def parse_mobile(value):
    region = getattr(settings, 'PHONENUMBER_DEFAULT_REGION', None)
    try:
        number = PhoneNumber.from_string(str(value or ''), region=region)
    except phonenumbers.NumberParseException:
        raise InvalidRequest(f"Invalid mobile number '{value}'") from None
    if not number.is_valid():
        raise InvalidRequest(f"Invalid mobile number '{value}'")
    return number


@transient_retry
def create_manual_appointment(patient_mobile, doctor_id, appointment_date, appointment_time,
                              patient_name='', purpose_of_visit='consultation', reason='',
                              is_walk_in=False, slot_id=None, duration=None, created_by=None,
                              now=None):
    """
    Reception desk booking: auto-confirmed, patient found or registered by mobile.

    Walk-ins skip the calendar check and the unique start-time rule.
    Working hours and the booking horizon are not enforced here.
    """
    now = _now(now)
    start = to_minutes(appointment_time)
    duration = normalise_duration(duration)
    day = to_date(appointment_date)
    mobile = parse_mobile(patient_mobile)
    if day < timezone.localdate(now):
        raise InvalidRequest("Cannot book appointments for past dates")

    with transaction.atomic():
        doctor = require_doctor(doctor_id, lock=True)
        patient = Patient.objects.filter(contact_number=mobile).first()
        if patient is None:
            if not patient_name:
                raise InvalidRequest("Patient name is required to register a new patient")
            patient = Patient.objects.create(name=patient_name, contact_number=mobile)
            logger.info('patient_registered', patient_id=patient.pk)

        if not is_walk_in:
            _check_calendar(doctor, day, start, duration)

        appointment = _store_appointment(Appointment(
            patient=patient,
            doctor_id=doctor.id,
            appointment_date=day,
            appointment_time=minutes_to_time(start),
            duration=duration,
            purpose_of_visit=purpose_of_visit or 'consultation',
            reason=reason or 'Walk-in appointment',
            status=Status.CONFIRMED,
            appointment_type='walk-in' if is_walk_in else 'manual',
            payment_amount=doctor.consultation_fee,
            payment_status='pending',
            created_by=created_by,
            last_modified_by=created_by,
        ))

        if slot_id is not None:
            slot = reserve_slot(slot_id, appointment.pk)
            if slot.doctor_id != doctor.id or slot.date != day or slot.start_time != minutes_to_time(start):
                raise InvalidRequest("Slot does not match this doctor, date and time")
            appointment.slot = slot
            appointment.save(update_fields=['slot', 'updated_at'])

    logger.info(
        'manual_appointment_created',
        appointment_id=appointment.pk,
        doctor_id=doctor.id,
        patient_id=patient.pk,
        walk_in=is_walk_in,
    )
    return appointment


@transient_retry
def record_payment(appointment_id, amount=None, method='cash', transaction_id='', actor=None, now=None):
    """Record a payment reported by the external gateway and mark it paid."""
    if method not in dict(Appointment.PAYMENT_METHOD_CHOICES):
        raise InvalidRequest(f"Unknown payment method '{method}'")

    with transaction.atomic():
        appointment = _lock_appointment(appointment_id)
        if appointment.status in (Status.CANCELLED, Status.REJECTED):
            raise InvalidRequest(f"Cannot record payment for a {appointment.status} appointment")
        if appointment.payment_status == 'paid':
            raise Conflict("Payment has already been recorded for this appointment")
        if amount is not None:
            appointment.payment_amount = Decimal(str(amount))
        appointment.payment_status = 'paid'
        appointment.payment_method = method
        appointment.payment_transaction_id = transaction_id or ''
        appointment.paid_at = _now(now)
        appointment.last_modified_by = actor
        appointment.save()

    logger.info('payment_recorded', appointment_id=appointment.pk, amount=str(appointment.payment_amount))
    return appointment
