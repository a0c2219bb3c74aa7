# staff/tests.py

from datetime import time
from decimal import Decimal
from unittest import mock

from django.test import TestCase, Client
from django.urls import reverse
from django.core.exceptions import ValidationError
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from phonenumber_field.phonenumber import PhoneNumber

from .models import ScheduleEntry, StaffMember
from . import directory
from .signals import assign_permissions, create_user_groups

User = get_user_model()


def make_doctor(username, specialization='GP', verified=True, fee='400.00'):
    user = User.objects.create_user(username=username, password='password123', first_name='Meera', last_name='Iyer')
    user.groups.add(Group.objects.get_or_create(name='Doctors')[0])
    return StaffMember.objects.create(
        user=user,
        specialization=specialization,
        consultation_fee=Decimal(fee),
        is_verified=verified,
    )


class StaffMemberModelTests(TestCase):

    def test_doctor_display_name_and_role(self):
        doctor = make_doctor('meera')
        self.assertTrue(doctor.is_doctor)
        self.assertEqual(doctor.name, 'Meera Iyer')
        self.assertEqual(str(doctor), 'Dr. Meera Iyer')

    def test_non_doctor_staff(self):
        user = User.objects.create_user(username='frontdesk', password='password123')
        staff = StaffMember.objects.create(user=user, contact_number=PhoneNumber.from_string('+919876543000'))
        self.assertFalse(staff.is_doctor)
        self.assertEqual(str(staff), 'frontdesk')

    def test_is_active_syncs_with_user(self):
        doctor = make_doctor('meera')
        doctor.is_active = False
        doctor.save()
        doctor.user.refresh_from_db()
        self.assertFalse(doctor.user.is_active)


class ScheduleEntryTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor('meera')

    def test_end_must_follow_start(self):
        with self.assertRaises(ValidationError):
            ScheduleEntry.objects.create(doctor=self.doctor, day='mon', start_time=time(17), end_time=time(9))

    def test_day_off_entry_may_have_any_times(self):
        entry = ScheduleEntry.objects.create(
            doctor=self.doctor, day='sun', start_time=time(0), end_time=time(0), is_available=False
        )
        self.assertEqual(str(entry), 'Sunday 00:00-00:00 (off)')


class DirectoryTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.gp = make_doctor('gp')
        ScheduleEntry.objects.create(doctor=cls.gp, day='mon', start_time=time(9), end_time=time(13))
        # A later entry for the same weekday is shadowed by the first available one.
        ScheduleEntry.objects.create(doctor=cls.gp, day='mon', start_time=time(14), end_time=time(18))
        cls.cardio = make_doctor('cardio', specialization='CARDIO')
        ScheduleEntry.objects.create(doctor=cls.cardio, day='mon', start_time=time(9), end_time=time(10), is_available=False)
        ScheduleEntry.objects.create(doctor=cls.cardio, day='mon', start_time=time(15), end_time=time(19))
        cls.unverified = make_doctor('new', verified=False)
        ScheduleEntry.objects.create(doctor=cls.unverified, day='mon', start_time=time(9), end_time=time(18))

    def test_snapshot_uses_minutes(self):
        snapshot = directory.get_doctor(self.gp.pk)
        self.assertTrue(snapshot.is_bookable)
        self.assertEqual(snapshot.consultation_fee, Decimal('400.00'))
        self.assertEqual(
            [(e.day, e.start_minute, e.end_minute) for e in snapshot.weekly_schedule],
            [('mon', 540, 780), ('mon', 840, 1080)],
        )

    def test_unknown_doctor_is_none(self):
        self.assertIsNone(directory.get_doctor(999999))
        self.assertIsNone(directory.get_doctor('not-a-number'))

    def test_find_available_doctors(self):
        self.assertEqual(list(directory.find_available_doctors('mon', '10:00')), [self.gp])
        self.assertEqual(list(directory.find_available_doctors('mon', '16:00')), [self.cardio])
        self.assertEqual(directory.find_available_doctors('tue', '10:00'), [])

    def test_find_by_specialization_skips_unverified(self):
        self.assertEqual(list(directory.find_doctors_by_specialization('cardio')), [self.cardio])
        self.assertNotIn(self.unverified, list(directory.find_doctors_by_specialization('GP')))


class RoleGroupTests(TestCase):

    def test_role_groups_are_configured(self):
        create_user_groups(sender=None)
        receptionists = Group.objects.get(name='Receptionists')
        codenames = set(receptionists.permissions.values_list('codename', flat=True))
        self.assertIn('change_appointment', codenames)
        self.assertIn('change_slot', codenames)
        self.assertTrue(Group.objects.filter(name='Patients').exists())

    def test_missing_permission_is_skipped_quietly(self):
        group = Group.objects.create(name='Interns')
        with mock.patch('staff.signals.logger') as logger:
            assign_permissions(group, ['appointments.view_appointment', 'lab.view_nothing'])
        self.assertEqual(list(group.permissions.values_list('codename', flat=True)), ['view_appointment'])
        logger.warning.assert_not_called()
        logger.debug.assert_called_once_with('permission_missing', permission='lab.view_nothing', group='Interns')


class DoctorDirectoryApiTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.doctor = make_doctor('gp')
        ScheduleEntry.objects.create(doctor=cls.doctor, day='wed', start_time=time(9), end_time=time(12))
        cls.user = User.objects.create_user(username='visitor', password='password123')

    def setUp(self):
        self.client = Client()
        self.client.force_login(self.user)

    def test_doctor_list(self):
        response = self.client.get(reverse('staff:doctor_list'))
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['specialization'], 'General Physician')
        self.assertEqual(data[0]['weekly_schedule'][0]['start_time'], '09:00')

    def test_available_doctors_validates_day(self):
        response = self.client.get(reverse('staff:available_doctors'), {'day': 'funday', 'time': '10:00'})
        self.assertEqual(response.status_code, 400)
        response = self.client.get(reverse('staff:available_doctors'), {'day': 'wed', 'time': '10:00'})
        self.assertEqual([d['id'] for d in response.json()['data']], [self.doctor.pk])

    def test_unknown_doctor_detail(self):
        response = self.client.get(reverse('staff:doctor_detail', kwargs={'pk': 999999}))
        self.assertEqual(response.status_code, 404)
