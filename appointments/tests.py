# appointments/tests.py

import threading
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group, Permission
from django.db import OperationalError, connection
from django.test import TestCase, TransactionTestCase, Client, override_settings
from django.urls import reverse
from django.utils import timezone
from phonenumber_field.phonenumber import PhoneNumber

from patients.models import Patient
from staff.models import ScheduleEntry, StaffMember
from . import policies, queries, scheduling
from .conflicts import find_conflicts, find_same_day_appointment
from .exceptions import Conflict, ErrorKind, InvalidRequest, NotFound, StoreUnavailable
from .models import Appointment, Slot
from .timeutils import add_months, format_minutes, parse_hhmm, to_minutes

User = get_user_model()

PASSWORD = 'StrongPassword123'
WORKING_DAYS = ['mon', 'tue', 'wed', 'thu', 'fri', 'sat']
ALL_DAYS = WORKING_DAYS + ['sun']

# Monday 7 January 2030, 08:00 in the site time zone.
MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)
SUNDAY = date(2030, 1, 13)


def at(day, hour, minute=0):
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


NOW = at(MONDAY, 8)


def make_doctor(username='doctor', fee='500.00', verified=True, days=WORKING_DAYS,
                start=time(9, 0), end=time(17, 0), specialization='GP'):
    user = User.objects.create_user(username=username, password=PASSWORD, first_name='Asha', last_name=username.title())
    doctors_group, _ = Group.objects.get_or_create(name='Doctors')
    user.groups.add(doctors_group)
    doctor = StaffMember.objects.create(
        user=user,
        specialization=specialization,
        consultation_fee=Decimal(fee),
        is_verified=verified,
    )
    for day in days:
        ScheduleEntry.objects.create(doctor=doctor, day=day, start_time=start, end_time=end)
    return doctor


def make_patient(name, number, user=None):
    return Patient.objects.create(name=name, contact_number=PhoneNumber.from_string(number), user=user)


def make_appointment(patient, doctor, day, hour, minute=0, status='confirmed', **extra):
    return Appointment.objects.create(
        patient=patient,
        doctor=doctor,
        appointment_date=day,
        appointment_time=time(hour, minute),
        status=status,
        **extra
    )


class TimeUtilsTests(TestCase):

    def test_parse_accepts_single_digit_hour(self):
        self.assertEqual(parse_hhmm('9:05'), 545)
        self.assertEqual(parse_hhmm('09:05'), 545)
        self.assertEqual(format_minutes(545), '09:05')

    def test_parse_rejects_malformed_times(self):
        for value in ('24:00', '9am', '10:60', '', '10-30', None):
            with self.assertRaises(InvalidRequest):
                to_minutes(value)

    def test_add_months_clamps_to_month_end(self):
        self.assertEqual(add_months(date(2030, 11, 30), 3), date(2031, 2, 28))
        self.assertEqual(add_months(date(2030, 1, 7), 3), date(2030, 4, 7))


class BookingPolicyTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor()
        cls.patient = make_patient('John Doe', '+919876543210')
        cls.other_patient = make_patient('Jane Roe', '+919876543211')

    def book(self, patient=None, day=TUESDAY, at_time='10:00', **kwargs):
        patient = patient or self.patient
        kwargs.setdefault('now', NOW)
        return policies.book_appointment(patient.pk, self.doctor.pk, day, at_time, **kwargs)

    def test_booking_creates_pending_appointment_with_fee(self):
        appointment = self.book(reason='Fever')
        self.assertEqual(appointment.status, Appointment.Status.PENDING)
        self.assertEqual(appointment.payment_amount, Decimal('500.00'))
        self.assertEqual(appointment.payment_status, 'pending')
        self.assertEqual(appointment.duration, 30)
        self.assertEqual(appointment.appointment_time, time(10, 0))
        self.assertIsNone(appointment.slot)

    def test_overlapping_booking_is_a_conflict(self):
        self.book()
        with self.assertRaises(Conflict):
            self.book(patient=self.other_patient, at_time='10:15')

    def test_back_to_back_booking_is_allowed(self):
        self.book()
        appointment = self.book(patient=self.other_patient, at_time='10:30')
        self.assertEqual(appointment.appointment_time, time(10, 30))

    def test_longer_visit_blocks_following_start(self):
        self.book(duration=60)
        with self.assertRaises(Conflict):
            self.book(patient=self.other_patient, at_time='10:45')

    def test_same_day_duplicate_is_a_conflict_regardless_of_time(self):
        self.book()
        with self.assertRaisesMessage(Conflict, 'already have an appointment'):
            self.book(at_time='15:00')

    def test_completed_visit_does_not_block_same_day_rebooking(self):
        make_appointment(self.patient, self.doctor, TUESDAY, 9, status='completed')
        appointment = self.book(at_time='15:00')
        self.assertEqual(appointment.status, 'pending')

    def test_past_date_is_rejected(self):
        with self.assertRaisesMessage(InvalidRequest, 'past dates'):
            self.book(day=MONDAY - timedelta(days=1))

    def test_today_within_working_hours_is_allowed(self):
        appointment = self.book(day=MONDAY, at_time='10:00')
        self.assertEqual(appointment.appointment_date, MONDAY)

    def test_booking_beyond_horizon_is_rejected(self):
        with self.assertRaisesMessage(InvalidRequest, '3 months'):
            self.book(day=add_months(MONDAY, 3) + timedelta(days=1))

    def test_horizon_day_itself_is_inside_the_window(self):
        # 7 April 2030 is a Sunday: the horizon check passes and the weekday check fails.
        with self.assertRaisesMessage(InvalidRequest, 'not available on Sunday'):
            self.book(day=add_months(MONDAY, 3))

    def test_doctor_day_off_is_rejected(self):
        with self.assertRaisesMessage(InvalidRequest, 'Doctor is not available on Sunday'):
            self.book(day=SUNDAY)

    def test_time_outside_working_hours_is_rejected(self):
        with self.assertRaisesMessage(InvalidRequest, 'between 09:00 and 17:00'):
            self.book(at_time='08:30')

    def test_working_hours_end_is_inclusive(self):
        appointment = self.book(at_time='17:00')
        self.assertEqual(appointment.appointment_time, time(17, 0))

    def test_malformed_time_is_rejected_before_lookups(self):
        with self.assertRaises(InvalidRequest):
            policies.book_appointment(self.patient.pk, 999999, TUESDAY, '25:61', now=NOW)

    def test_duration_must_be_in_range(self):
        with self.assertRaises(InvalidRequest):
            self.book(duration=10)
        with self.assertRaises(InvalidRequest):
            self.book(duration=121)

    def test_unknown_doctor_or_patient_is_not_found(self):
        with self.assertRaises(NotFound):
            policies.book_appointment(self.patient.pk, 999999, TUESDAY, '10:00', now=NOW)
        with self.assertRaises(NotFound):
            policies.book_appointment(999999, self.doctor.pk, TUESDAY, '10:00', now=NOW)

    def test_unverified_or_inactive_doctor_is_not_found(self):
        unverified = make_doctor('unverified', verified=False)
        with self.assertRaises(NotFound):
            policies.book_appointment(self.patient.pk, unverified.pk, TUESDAY, '10:00', now=NOW)

        inactive = make_doctor('inactive')
        inactive.is_active = False
        inactive.save()
        with self.assertRaises(NotFound):
            policies.book_appointment(self.patient.pk, inactive.pk, TUESDAY, '10:00', now=NOW)

    def test_staff_without_doctor_role_is_not_found(self):
        receptionist = StaffMember.objects.create(
            user=User.objects.create_user(username='desk', password=PASSWORD),
            is_verified=True,
        )
        with self.assertRaises(NotFound):
            policies.book_appointment(self.patient.pk, receptionist.pk, TUESDAY, '10:00', now=NOW)

    def test_released_appointments_do_not_block_the_calendar(self):
        for status in ('cancelled', 'rejected', 'no-show'):
            make_appointment(self.other_patient, self.doctor, TUESDAY, 11, status=status)
        appointment = self.book(at_time='11:00')
        self.assertEqual(appointment.status, 'pending')

    def test_store_uniqueness_is_reported_as_conflict(self):
        make_appointment(self.other_patient, self.doctor, TUESDAY, 11)
        duplicate = Appointment(
            patient=self.patient,
            doctor=self.doctor,
            appointment_date=TUESDAY,
            appointment_time=time(11, 0),
        )
        with self.assertRaises(Conflict):
            policies._store_appointment(duplicate)
        self.assertEqual(Appointment.objects.filter(appointment_time=time(11, 0)).count(), 1)

    def test_transient_store_failure_is_retried(self):
        real_store = policies._store_appointment
        calls = []

        def flaky(appointment):
            calls.append(appointment)
            if len(calls) == 1:
                raise OperationalError('database is locked')
            return real_store(appointment)

        with mock.patch('appointments.policies._store_appointment', side_effect=flaky):
            appointment = self.book()
        self.assertEqual(len(calls), 2)
        self.assertTrue(Appointment.objects.filter(pk=appointment.pk).exists())

    @override_settings(SCHEDULING={'TRANSIENT_RETRY_ATTEMPTS': 2})
    def test_persistent_store_failure_becomes_unavailable(self):
        failing = mock.Mock(side_effect=OperationalError('database is locked'))
        with mock.patch('appointments.policies._store_appointment', failing):
            with self.assertRaises(StoreUnavailable) as caught:
                self.book()
        self.assertEqual(failing.call_count, 2)
        self.assertEqual(caught.exception.kind, ErrorKind.UNAVAILABLE)
        self.assertFalse(Appointment.objects.exists())


@override_settings(SCHEDULING={'TRANSIENT_RETRY_ATTEMPTS': 6})
class ConcurrentBookingTests(TransactionTestCase):

    def setUp(self):
        self.doctor = make_doctor()
        self.patients = [
            make_patient('John Doe', '+919876543210'),
            make_patient('Jane Roe', '+919876543211'),
        ]

    def test_overlapping_requests_book_once(self):
        barrier = threading.Barrier(2)
        results = []

        def book(patient, at_time):
            try:
                barrier.wait()
                policies.book_appointment(patient.pk, self.doctor.pk, TUESDAY, at_time, now=NOW)
                results.append('booked')
            except Conflict:
                results.append('conflict')
            except Exception as exc:
                results.append(repr(exc))
            finally:
                connection.close()

        threads = [
            threading.Thread(target=book, args=(self.patients[0], '10:00')),
            threading.Thread(target=book, args=(self.patients[1], '10:15')),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(results), ['booked', 'conflict'])
        self.assertEqual(Appointment.objects.filter(doctor=self.doctor, appointment_date=TUESDAY).count(), 1)


class ConflictDetectorTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor()
        cls.patient = make_patient('John Doe', '+919876543210')
        cls.booked = make_appointment(cls.patient, cls.doctor, TUESDAY, 10)

    def test_overlap_is_half_open(self):
        self.assertEqual(list(find_conflicts(self.doctor.pk, TUESDAY, '10:15', 30)), [self.booked])
        self.assertEqual(list(find_conflicts(self.doctor.pk, TUESDAY, '09:45', 30)), [self.booked])
        self.assertFalse(find_conflicts(self.doctor.pk, TUESDAY, '10:30', 30).exists())
        self.assertFalse(find_conflicts(self.doctor.pk, TUESDAY, '09:30', 30).exists())

    def test_exclude_appointment(self):
        conflicts = find_conflicts(self.doctor.pk, TUESDAY, '10:00', 30, exclude_appointment_id=self.booked.pk)
        self.assertFalse(conflicts.exists())

    def test_releasing_statuses_are_ignored(self):
        self.booked.status = 'rejected'
        self.booked.save()
        self.assertFalse(find_conflicts(self.doctor.pk, TUESDAY, '10:00', 30).exists())

    def test_same_day_lookup_ignores_terminal_statuses(self):
        self.assertEqual(find_same_day_appointment(self.patient.pk, self.doctor.pk, TUESDAY), self.booked)
        self.booked.status = 'completed'
        self.booked.save()
        self.assertIsNone(find_same_day_appointment(self.patient.pk, self.doctor.pk, TUESDAY))


class SlotStoreTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor(fee='650.00')
        cls.patient = make_patient('John Doe', '+919876543210')

    def test_generation_partitions_the_working_window(self):
        slots = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)
        self.assertEqual(len(slots), 16)
        self.assertEqual(slots[0].start_time, time(9, 0))
        self.assertEqual(slots[-1].end_time, time(17, 0))
        self.assertTrue(all(slot.fee == Decimal('650.00') for slot in slots))
        self.assertTrue(all(slot.duration == 30 for slot in slots))

    def test_generation_is_idempotent(self):
        scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)
        first = Slot.objects.get(doctor=self.doctor, date=TUESDAY, start_time=time(9, 0))
        scheduling.block_slot(first.pk, reason='break')

        self.assertEqual(scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY), [])
        self.assertEqual(Slot.objects.filter(doctor=self.doctor, date=TUESDAY).count(), 16)
        first.refresh_from_db()
        self.assertTrue(first.is_blocked)

    def test_only_whole_spans_are_generated(self):
        short_day = make_doctor('short', start=time(9, 0), end=time(10, 45))
        slots = scheduling.generate_slots_for_date(short_day.pk, TUESDAY)
        self.assertEqual([slot.start_time for slot in slots], [time(9, 0), time(9, 30), time(10, 0)])

    def test_day_off_generates_nothing(self):
        self.assertEqual(scheduling.generate_slots_for_date(self.doctor.pk, SUNDAY), [])

    def test_unknown_doctor_is_not_found(self):
        with self.assertRaises(NotFound):
            scheduling.generate_slots_for_date(999999, TUESDAY)

    def test_listing_requires_active_doctor(self):
        self.doctor.is_active = False
        self.doctor.save()
        with self.assertRaises(NotFound):
            scheduling.list_slots_for_date(self.doctor.pk, TUESDAY)

    def test_available_slots_skip_blocked_and_full(self):
        slots = list(scheduling.list_slots_for_date(self.doctor.pk, TUESDAY))
        scheduling.block_slot(slots[0].pk, reason='personal')
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 9, 30)
        scheduling.reserve_slot(slots[1].pk, appointment.pk)

        available = list(scheduling.get_available_slots(self.doctor.pk, TUESDAY))
        self.assertEqual(len(available), 14)
        self.assertEqual(available[0].start_time, time(10, 0))

    def test_reserve_and_release(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 9)

        slot = scheduling.reserve_slot(slot.pk, appointment.pk)
        self.assertEqual(slot.booked_patients, 1)
        self.assertEqual(slot.appointment, appointment)
        self.assertFalse(slot.is_available)
        self.assertEqual(slot.status, 'unavailable')

        with self.assertRaises(Conflict):
            scheduling.reserve_slot(slot.pk, appointment.pk)

        slot = scheduling.release_slot(slot.pk)
        self.assertEqual(slot.booked_patients, 0)
        self.assertIsNone(slot.appointment)
        self.assertTrue(slot.is_available)

        # Releasing an empty slot never goes below zero.
        slot = scheduling.release_slot(slot.pk)
        self.assertEqual(slot.booked_patients, 0)

    def test_shared_slot_fills_up(self):
        slot = Slot.objects.create(
            doctor=self.doctor, date=TUESDAY, start_time=time(12, 0), end_time=time(12, 30), max_patients=2
        )
        self.assertEqual(slot.duration, 30)
        first = make_appointment(self.patient, self.doctor, TUESDAY, 12)

        slot = scheduling.reserve_slot(slot.pk, first.pk)
        self.assertTrue(slot.is_available)
        self.assertEqual(slot.status, 'booked')
        slot = scheduling.reserve_slot(slot.pk, first.pk)
        self.assertFalse(slot.is_available)
        self.assertEqual(slot.booked_patients, 2)

    def test_shared_slot_without_linked_appointment_is_available(self):
        slot = Slot.objects.create(
            doctor=self.doctor, date=TUESDAY, start_time=time(12, 0), end_time=time(12, 30), max_patients=2
        )
        first = make_appointment(self.patient, self.doctor, TUESDAY, 12)
        scheduling.reserve_slot(slot.pk, first.pk)
        scheduling.reserve_slot(slot.pk, first.pk)

        slot = scheduling.release_slot(slot.pk)
        self.assertEqual(slot.booked_patients, 1)
        self.assertIsNone(slot.appointment)
        self.assertEqual(slot.status, 'available')

    def test_reserve_unknown_slot_is_not_found(self):
        with self.assertRaises(NotFound):
            scheduling.reserve_slot(999999, None)

    def test_booked_slot_cannot_be_blocked(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        scheduling.reserve_slot(slot.pk, None)
        with self.assertRaises(Conflict):
            scheduling.block_slot(slot.pk, reason='break')

    def test_unblock_restores_availability(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        scheduling.block_slot(slot.pk, reason='maintenance')
        slot = scheduling.unblock_slot(slot.pk)
        self.assertFalse(slot.is_blocked)
        self.assertTrue(slot.is_available)
        self.assertEqual(slot.status, 'available')

    def test_unknown_block_reason_is_rejected(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        with self.assertRaises(InvalidRequest):
            scheduling.block_slot(slot.pk, reason='holiday')

    def test_doctor_availability(self):
        make_appointment(self.patient, self.doctor, TUESDAY, 10, duration=45)
        make_appointment(self.patient, self.doctor, TUESDAY, 14, status='cancelled')
        availability = scheduling.get_doctor_availability(self.doctor.pk, TUESDAY)
        self.assertEqual(availability, {
            'available': True,
            'schedule': {'start': '09:00', 'end': '17:00'},
            'booked_intervals': [{'start': '10:00', 'end': '10:45'}],
        })
        day_off = scheduling.get_doctor_availability(self.doctor.pk, SUNDAY)
        self.assertFalse(day_off['available'])
        self.assertIn('Sunday', day_off['reason'])


class CancellationPolicyTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor()
        cls.patient = make_patient('John Doe', '+919876543210')
        cls.actor = User.objects.create_user(username='desk', password=PASSWORD)

    def setUp(self):
        # Tuesday 10:00, already paid.
        self.appointment = make_appointment(
            self.patient, self.doctor, TUESDAY, 10,
            payment_amount=Decimal('500.00'), payment_status='paid',
        )
        self.start = at(TUESDAY, 10)

    def test_full_refund_a_day_ahead(self):
        now = self.start - timedelta(hours=25)
        self.assertTrue(policies.can_cancel(self.appointment, now).allowed)
        self.assertEqual(policies.calculate_refund(self.appointment, now), Decimal('500.00'))

    def test_partial_refund_inside_a_day(self):
        now = self.start - timedelta(hours=10)
        self.assertTrue(policies.can_cancel(self.appointment, now).allowed)
        self.assertEqual(policies.calculate_refund(self.appointment, now), Decimal('250.00'))

    def test_cancellation_closes_two_hours_before(self):
        now = self.start - timedelta(hours=1)
        check = policies.can_cancel(self.appointment, now)
        self.assertFalse(check.allowed)
        self.assertEqual(check.reason, 'Cannot cancel appointment less than 2 hours before scheduled time')
        with self.assertRaisesMessage(InvalidRequest, 'less than 2 hours'):
            policies.cancel_appointment(self.appointment.pk, now=now)

    def test_unpaid_appointment_gets_no_refund(self):
        self.appointment.payment_status = 'pending'
        self.assertEqual(policies.calculate_refund(self.appointment, self.start - timedelta(days=3)), Decimal('0.00'))

    @override_settings(SCHEDULING={'PARTIAL_REFUND_RATE': '0.25'})
    def test_partial_refund_rate_is_configurable(self):
        now = self.start - timedelta(hours=5)
        self.assertEqual(policies.calculate_refund(self.appointment, now), Decimal('125.00'))

    def test_cancel_records_refund_and_releases_slot(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[2]
        scheduling.reserve_slot(slot.pk, self.appointment.pk)
        self.appointment.slot = slot
        self.appointment.save()

        now = self.start - timedelta(hours=30)
        appointment = policies.cancel_appointment(
            self.appointment.pk, cancelled_by=self.actor, reason='Travelling', now=now
        )
        self.assertEqual(appointment.status, 'cancelled')
        self.assertEqual(appointment.cancellation_reason, 'Travelling')
        self.assertEqual(appointment.cancelled_by, self.actor)
        self.assertEqual(appointment.cancelled_at, now)
        self.assertEqual(appointment.refund_amount, Decimal('500.00'))
        self.assertEqual(appointment.payment_status, 'refunded')

        slot.refresh_from_db()
        self.assertEqual(slot.booked_patients, 0)
        self.assertTrue(slot.is_available)

    def test_terminal_appointment_cannot_be_cancelled(self):
        self.appointment.status = 'completed'
        self.appointment.save()
        with self.assertRaisesMessage(InvalidRequest, 'Appointment is already completed'):
            policies.cancel_appointment(self.appointment.pk, now=self.start - timedelta(days=1))

    def test_in_progress_appointment_cannot_be_cancelled(self):
        self.appointment.status = 'in-progress'
        check = policies.can_cancel(self.appointment, self.start - timedelta(days=1))
        self.assertEqual(check, policies.CancellationCheck(False, 'Cannot cancel appointment in progress'))

    def test_unknown_appointment_is_not_found(self):
        with self.assertRaises(NotFound):
            policies.cancel_appointment(999999, now=NOW)


class LifecycleTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor()
        cls.patient = make_patient('John Doe', '+919876543210')
        cls.other_patient = make_patient('Jane Roe', '+919876543211')
        cls.receptionist = User.objects.create_user(username='desk', password=PASSWORD)

    def test_every_status_has_a_transition_entry(self):
        self.assertEqual(set(Appointment.TRANSITIONS), set(Appointment.Status))
        for status in Appointment.TERMINAL_STATUSES:
            self.assertEqual(Appointment.TRANSITIONS[status], frozenset())

    def test_confirm_pending(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10, status='pending')
        appointment = policies.confirm_appointment(appointment.pk, actor=self.receptionist)
        self.assertEqual(appointment.status, 'confirmed')
        self.assertEqual(appointment.last_modified_by, self.receptionist)

    def test_confirm_or_reject_requires_pending(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10, status='confirmed')
        with self.assertRaisesMessage(InvalidRequest, 'Only pending appointments can be confirmed'):
            policies.confirm_appointment(appointment.pk)
        with self.assertRaisesMessage(InvalidRequest, 'Only pending appointments can be rejected'):
            policies.reject_appointment(appointment.pk)

    def test_reject_records_reason_and_releases_slot(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 9, status='pending')
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        scheduling.reserve_slot(slot.pk, appointment.pk)
        appointment.slot = slot
        appointment.save()

        appointment = policies.reject_appointment(
            appointment.pk, actor=self.receptionist, reason='Doctor on leave', now=NOW
        )
        self.assertEqual(appointment.status, 'rejected')
        self.assertEqual(appointment.cancellation_reason, 'Doctor on leave')
        self.assertEqual(appointment.cancelled_by, self.receptionist)
        self.assertEqual(appointment.refund_amount, Decimal('0'))
        slot.refresh_from_db()
        self.assertEqual(slot.booked_patients, 0)
        self.assertIsNone(slot.appointment)

    def test_visit_runs_through_consultation(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10)
        appointment = policies.start_consultation(appointment.pk)
        self.assertEqual(appointment.status, 'in-progress')
        appointment = policies.complete_appointment(appointment.pk, note='Prescribed rest')
        self.assertEqual(appointment.status, 'completed')

    def test_illegal_transition_is_rejected(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10, status='pending')
        with self.assertRaises(InvalidRequest):
            policies.complete_appointment(appointment.pk)
        with self.assertRaises(InvalidRequest):
            policies.transition_status(appointment.pk, 'archived')

    def test_generic_transition_cannot_cancel_or_reject(self):
        appointment = make_appointment(
            self.patient, self.doctor, TUESDAY, 9, status='confirmed', payment_status='paid'
        )
        pending = make_appointment(self.other_patient, self.doctor, TUESDAY, 11, status='pending')
        with self.assertRaisesMessage(InvalidRequest, 'only set by cancelling'):
            policies.transition_status(appointment.pk, 'cancelled')
        with self.assertRaisesMessage(InvalidRequest, 'only set by rejecting'):
            policies.transition_status(pending.pk, Appointment.Status.REJECTED)
        appointment.refresh_from_db()
        pending.refresh_from_db()
        self.assertEqual(appointment.status, 'confirmed')
        self.assertIsNone(appointment.cancelled_at)
        self.assertEqual(pending.status, 'pending')

    def test_no_show_releases_slot(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 9)
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[0]
        scheduling.reserve_slot(slot.pk, appointment.pk)
        appointment.slot = slot
        appointment.save()

        appointment = policies.mark_no_show(appointment.pk)
        self.assertEqual(appointment.status, 'no-show')
        slot.refresh_from_db()
        self.assertTrue(slot.is_available)
        with self.assertRaises(InvalidRequest):
            policies.mark_no_show(appointment.pk)

    def test_reschedule_moves_the_appointment(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10, status='pending')
        # Overlapping its own old interval is fine.
        appointment = policies.reschedule_appointment(appointment.pk, TUESDAY, '10:15', now=NOW)
        self.assertEqual(appointment.appointment_time, time(10, 15))

    def test_reschedule_into_another_booking_is_a_conflict(self):
        make_appointment(self.other_patient, self.doctor, TUESDAY, 11)
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10)
        with self.assertRaises(Conflict):
            policies.reschedule_appointment(appointment.pk, TUESDAY, '11:15', now=NOW)

    def test_reschedule_checks_dates_and_status(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10)
        with self.assertRaises(InvalidRequest):
            policies.reschedule_appointment(appointment.pk, SUNDAY, '10:00', now=NOW)
        appointment.status = 'completed'
        appointment.save()
        with self.assertRaisesMessage(InvalidRequest, 'Only pending or confirmed'):
            policies.reschedule_appointment(appointment.pk, TUESDAY, '12:00', now=NOW)

    def test_record_payment(self):
        appointment = make_appointment(self.patient, self.doctor, TUESDAY, 10, payment_amount=Decimal('500.00'))
        appointment = policies.record_payment(
            appointment.pk, method='upi', transaction_id='TXN-1', actor=self.receptionist, now=NOW
        )
        self.assertEqual(appointment.payment_status, 'paid')
        self.assertEqual(appointment.paid_at, NOW)
        with self.assertRaises(Conflict):
            policies.record_payment(appointment.pk, method='upi')
        with self.assertRaises(InvalidRequest):
            policies.record_payment(appointment.pk, method='cheque')


class ManualAppointmentTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor(verified=False)
        cls.receptionist = User.objects.create_user(username='desk', password=PASSWORD)

    def create(self, mobile='+919812345678', **kwargs):
        kwargs.setdefault('patient_name', 'Walk In')
        kwargs.setdefault('now', NOW)
        kwargs.setdefault('created_by', self.receptionist)
        return policies.create_manual_appointment(mobile, self.doctor.pk, TUESDAY, kwargs.pop('at_time', '10:00'), **kwargs)

    def test_registers_new_patient_and_confirms(self):
        appointment = self.create()
        self.assertEqual(appointment.status, 'confirmed')
        self.assertEqual(appointment.appointment_type, 'manual')
        self.assertEqual(appointment.reason, 'Walk-in appointment')
        self.assertEqual(appointment.patient.contact_number, PhoneNumber.from_string('+919812345678'))
        self.assertEqual(appointment.created_by, self.receptionist)

    def test_existing_patient_is_reused_by_mobile(self):
        patient = make_patient('Known Patient', '+919812345678')
        appointment = self.create(mobile='9812345678', patient_name='')
        self.assertEqual(appointment.patient, patient)
        self.assertEqual(Patient.objects.count(), 1)

    def test_new_patient_needs_a_name(self):
        with self.assertRaises(InvalidRequest):
            self.create(patient_name='')

    def test_invalid_mobile_is_rejected(self):
        with self.assertRaises(InvalidRequest):
            self.create(mobile='12')

    def test_non_walk_in_is_conflict_checked(self):
        self.create()
        with self.assertRaises(Conflict):
            self.create(mobile='+919812345679', patient_name='Second', at_time='10:15')

    def test_walk_in_skips_calendar_check(self):
        self.create()
        appointment = self.create(mobile='+919812345679', patient_name='Second', is_walk_in=True)
        self.assertEqual(appointment.appointment_type, 'walk-in')
        self.assertEqual(Appointment.objects.filter(appointment_time=time(10, 0)).count(), 2)

    def test_slot_is_reserved_in_the_same_transaction(self):
        slot = Slot.objects.get(
            pk=scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[2].pk
        )
        appointment = self.create(slot_id=slot.pk)
        slot.refresh_from_db()
        self.assertEqual(appointment.slot, slot)
        self.assertEqual(slot.booked_patients, 1)
        self.assertEqual(slot.appointment, appointment)

    def test_slot_must_start_at_the_appointment_time(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[3]
        self.assertEqual(slot.start_time, time(10, 30))
        with self.assertRaisesMessage(InvalidRequest, 'Slot does not match'):
            self.create(slot_id=slot.pk)
        slot.refresh_from_db()
        self.assertEqual(slot.booked_patients, 0)
        self.assertIsNone(slot.appointment)
        self.assertFalse(Appointment.objects.exists())

    def test_unavailable_slot_rolls_back_the_booking(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, TUESDAY)[2]
        scheduling.block_slot(slot.pk, reason='break')
        with self.assertRaises(Conflict):
            self.create(slot_id=slot.pk)
        self.assertFalse(Appointment.objects.exists())


class QueryTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor()
        cls.patient = make_patient('John Doe', '+919876543210')
        cls.other_patient = make_patient('Jane Roe', '+919876543211')
        make_appointment(cls.patient, cls.doctor, MONDAY, 9, status='completed')
        make_appointment(cls.patient, cls.doctor, MONDAY, 11, status='confirmed')
        make_appointment(cls.patient, cls.doctor, TUESDAY, 10, status='pending')
        make_appointment(cls.other_patient, cls.doctor, TUESDAY, 11, status='pending')
        make_appointment(cls.other_patient, cls.doctor, MONDAY - timedelta(days=7), 10, status='no-show')

    def test_pending_appointments(self):
        self.assertEqual(queries.pending_appointments().count(), 2)
        self.assertEqual(queries.pending_appointments(doctor_id=self.doctor.pk, day=TUESDAY).count(), 2)
        self.assertEqual(queries.pending_appointments(day=MONDAY).count(), 0)

    def test_appointment_stats(self):
        stats = queries.appointment_stats(patient_id=self.patient.pk, now=NOW)
        self.assertEqual(stats['total'], 3)
        self.assertEqual(stats['by_status']['completed'], 1)
        self.assertEqual(stats['by_status']['cancelled'], 0)
        self.assertEqual(stats['today'], 2)
        # Monday 11:00 confirmed and Tuesday pending.
        self.assertEqual(stats['upcoming'], 2)

    def test_patient_appointments_by_scope(self):
        upcoming = queries.patient_appointments(self.patient.pk, 'upcoming', now=NOW)
        self.assertEqual([a.appointment_time for a in upcoming], [time(11, 0), time(10, 0)])
        past = queries.patient_appointments(self.patient.pk, 'past', now=NOW)
        self.assertEqual([a.status for a in past], ['completed'])
        self.assertEqual(queries.patient_appointments(self.other_patient.pk, now=NOW).count(), 2)

    def test_scopes_compare_time_of_day(self):
        afternoon = at(MONDAY, 15)
        upcoming = queries.patient_appointments(self.patient.pk, 'upcoming', now=afternoon)
        self.assertEqual([a.appointment_date for a in upcoming], [TUESDAY])
        past = queries.patient_appointments(self.patient.pk, 'past', now=afternoon)
        self.assertEqual([a.appointment_time for a in past], [time(11, 0), time(9, 0)])
        stats = queries.appointment_stats(patient_id=self.patient.pk, now=afternoon)
        self.assertEqual(stats['upcoming'], 1)

    def test_is_upcoming(self):
        ahead = make_appointment(self.other_patient, self.doctor, TUESDAY, 15, status='confirmed')
        self.assertTrue(ahead.is_upcoming)
        finished = make_appointment(self.other_patient, self.doctor, TUESDAY, 16, status='completed')
        self.assertFalse(finished.is_upcoming)
        long_ago = make_appointment(self.other_patient, self.doctor, date(2020, 1, 6), 10, status='pending')
        self.assertFalse(long_ago.is_upcoming)


class AppointmentApiTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor(days=ALL_DAYS)
        cls.day = timezone.localdate() + timedelta(days=2)

        cls.patient_user = User.objects.create_user(username='patient', password=PASSWORD)
        cls.patient = make_patient('John Doe', '+919876543210', user=cls.patient_user)
        cls.other_patient = make_patient('Jane Roe', '+919876543211')

        cls.receptionist = User.objects.create_user(username='desk', password=PASSWORD)
        cls.receptionist.user_permissions.add(*Permission.objects.filter(
            content_type__app_label='appointments',
            codename__in=['view_appointment', 'add_appointment', 'change_appointment', 'change_slot'],
        ))

    def setUp(self):
        self.client = Client()

    def post_json(self, name, payload=None, **kwargs):
        return self.client.post(
            reverse(name, kwargs=kwargs or None),
            data=payload or {},
            content_type='application/json',
        )

    def booking(self, **overrides):
        payload = {
            'doctor': self.doctor.pk,
            'appointment_date': self.day.isoformat(),
            'appointment_time': '10:00',
            'reason': 'Headache',
        }
        payload.update(overrides)
        return payload

    def test_login_is_required(self):
        response = self.post_json('appointments:book_appointment', self.booking())
        self.assertEqual(response.status_code, 302)

    def test_patient_books_for_themselves(self):
        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:book_appointment', self.booking())
        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['patient']['id'], self.patient.pk)
        self.assertEqual(body['data']['status'], 'pending')
        self.assertEqual(body['data']['time'], '10:00')
        self.assertEqual(body['data']['end_time'], '10:30')

    def test_patient_cannot_book_for_someone_else(self):
        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:book_appointment', self.booking(patient=self.other_patient.pk))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'forbidden')

    def test_conflict_maps_to_409(self):
        make_appointment(self.other_patient, self.doctor, self.day, 10)
        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:book_appointment', self.booking(appointment_time='10:15'))
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {
            'success': False,
            'error': 'conflict',
            'message': policies.SLOT_TAKEN_MESSAGE,
        })

    def test_invalid_payload_maps_to_400(self):
        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:book_appointment', self.booking(appointment_date='next week'))
        self.assertEqual(response.status_code, 400)
        self.assertIn('appointment_date', response.json()['errors'])

        response = self.post_json('appointments:book_appointment', self.booking(appointment_time='7 pm'))
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_request')

    def test_form_encoded_booking_by_receptionist(self):
        self.client.force_login(self.receptionist)
        response = self.client.post(
            reverse('appointments:book_appointment'),
            self.booking(patient=self.other_patient.pk),
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['patient']['id'], self.other_patient.pk)

    def test_unknown_doctor_maps_to_404(self):
        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:book_appointment', self.booking(doctor=999999))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'not_found')

    def test_receptionist_confirms_and_patient_cannot(self):
        appointment = make_appointment(self.patient, self.doctor, self.day, 11, status='pending')

        self.client.force_login(self.patient_user)
        response = self.post_json('appointments:confirm_appointment', pk=appointment.pk)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'forbidden')

        self.client.force_login(self.receptionist)
        response = self.post_json('appointments:confirm_appointment', pk=appointment.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'confirmed')

        response = self.post_json('appointments:confirm_appointment', pk=appointment.pk)
        self.assertEqual(response.status_code, 400)

    def test_patient_cancels_own_appointment_only(self):
        own = make_appointment(self.patient, self.doctor, self.day, 11)
        theirs = make_appointment(self.other_patient, self.doctor, self.day, 12)
        self.client.force_login(self.patient_user)

        response = self.post_json('appointments:cancel_appointment', {'reason': 'Busy'}, pk=theirs.pk)
        self.assertEqual(response.status_code, 403)

        response = self.post_json('appointments:cancel_appointment', {'reason': 'Busy'}, pk=own.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['cancellation']['reason'], 'Busy')

    def test_patient_lists_own_appointments(self):
        make_appointment(self.patient, self.doctor, self.day, 11)
        make_appointment(self.other_patient, self.doctor, self.day, 12)
        self.client.force_login(self.patient_user)
        response = self.client.get(reverse('appointments:appointment_list'), {'scope': 'upcoming'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual([a['patient']['id'] for a in response.json()['data']], [self.patient.pk])

    def test_slots_endpoint_generates_the_day(self):
        self.client.force_login(self.patient_user)
        url = reverse('appointments:doctor_slots', kwargs={'doctor_id': self.doctor.pk})
        response = self.client.get(url, {'date': self.day.isoformat()})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['data']), 16)

        response = self.client.get(url, {'date': 'tomorrow'})
        self.assertEqual(response.status_code, 400)

    def test_manual_appointment_endpoint(self):
        self.client.force_login(self.receptionist)
        response = self.post_json('appointments:manual_appointment', {
            'patient_mobile': '+919812345678',
            'patient_name': 'Walk In',
            'doctor': self.doctor.pk,
            'appointment_date': self.day.isoformat(),
            'appointment_time': '09:00',
            'is_walk_in': True,
        })
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['appointment_type'], 'walk-in')
        self.assertEqual(response.json()['data']['status'], 'confirmed')

    def test_pending_queue_requires_permission(self):
        make_appointment(self.patient, self.doctor, self.day, 11, status='pending')
        self.client.force_login(self.patient_user)
        self.assertEqual(self.client.get(reverse('appointments:pending_appointments')).status_code, 403)

        self.client.force_login(self.receptionist)
        response = self.client.get(reverse('appointments:pending_appointments'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()['data']), 1)

    def test_block_slot_endpoint(self):
        slot = scheduling.generate_slots_for_date(self.doctor.pk, self.day)[0]
        self.client.force_login(self.receptionist)
        response = self.post_json('appointments:block_slot', {'reason': 'break'}, pk=slot.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['status'], 'blocked')
