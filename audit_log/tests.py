# audit_log/tests.py

from datetime import date, time
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group, Permission
from django.test import TestCase, Client
from django.urls import reverse
from phonenumber_field.phonenumber import PhoneNumber

from appointments import policies
from appointments.models import Appointment
from patients.models import Patient
from staff.models import StaffMember
from .models import AppointmentStatusLog

User = get_user_model()


class AppointmentStatusLogTests(TestCase):

    @classmethod
    def setUpTestData(cls):
        doctor_user = User.objects.create_user(username='doctor', password='password123')
        doctor_user.groups.add(Group.objects.get_or_create(name='Doctors')[0])
        cls.doctor = StaffMember.objects.create(user=doctor_user, consultation_fee=Decimal('300.00'), is_verified=True)
        cls.patient = Patient.objects.create(name='John Doe', contact_number=PhoneNumber.from_string('+919876543210'))
        cls.manager = User.objects.create_user(username='manager', password='password123')
        cls.manager.user_permissions.add(
            Permission.objects.get(content_type__app_label='appointments', codename='view_appointment')
        )

    def make_appointment(self):
        return Appointment.objects.create(
            patient=self.patient,
            doctor=self.doctor,
            appointment_date=date(2030, 1, 8),
            appointment_time=time(10, 0),
        )

    def test_creation_and_transitions_are_logged(self):
        appointment = self.make_appointment()
        policies.confirm_appointment(appointment.pk, actor=self.manager)
        policies.start_consultation(appointment.pk, actor=self.manager, note='Patient arrived')

        history = list(
            AppointmentStatusLog.objects.filter(appointment=appointment).order_by('timestamp', 'pk')
        )
        self.assertEqual(
            [(log.from_status, log.to_status) for log in history],
            [('', 'pending'), ('pending', 'confirmed'), ('confirmed', 'in-progress')],
        )
        self.assertIsNone(history[0].actor)
        self.assertEqual(history[1].actor, self.manager)
        self.assertEqual(history[2].note, 'Patient arrived')

    def test_saves_without_status_change_are_not_logged(self):
        appointment = self.make_appointment()
        appointment.notes = 'Bring reports'
        appointment.save()
        self.assertEqual(AppointmentStatusLog.objects.filter(appointment=appointment).count(), 1)

    def test_history_endpoint(self):
        appointment = self.make_appointment()
        policies.confirm_appointment(appointment.pk, actor=self.manager)

        client = Client()
        client.force_login(self.manager)
        response = client.get(reverse('audit_log:appointment_history', kwargs={'appointment_id': appointment.pk}))
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.has_header('X-Request-ID'))
        data = response.json()['data']
        self.assertEqual([entry['to_status'] for entry in data], ['pending', 'confirmed'])
        self.assertEqual(data[1]['actor'], 'manager')

    def test_history_requires_permission(self):
        appointment = self.make_appointment()
        client = Client()
        client.force_login(self.patient_user())
        response = client.get(reverse('audit_log:appointment_history', kwargs={'appointment_id': appointment.pk}))
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'forbidden')

    def patient_user(self):
        return User.objects.create_user(username='someone', password='password123')
