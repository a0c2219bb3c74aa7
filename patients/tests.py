# patients/tests.py

from datetime import date

from django.db import IntegrityError
from django.test import TestCase
from django.contrib.auth import get_user_model
from phonenumber_field.phonenumber import PhoneNumber

from .models import Patient

User = get_user_model()


class PatientModelTests(TestCase):

    def test_contact_number_is_unique(self):
        Patient.objects.create(name='First', contact_number=PhoneNumber.from_string('+919876543003'))
        with self.assertRaises(IntegrityError):
            Patient.objects.create(name='Second', contact_number=PhoneNumber.from_string('+919876543003'))

    def test_lookup_by_national_number(self):
        patient = Patient.objects.create(name='Ravi', contact_number=PhoneNumber.from_string('+919876543004'))
        found = Patient.objects.get(contact_number=PhoneNumber.from_string('9876543004', region='IN'))
        self.assertEqual(found, patient)

    def test_age_and_profile_link(self):
        user = User.objects.create_user(username='ravi', password='password123')
        patient = Patient.objects.create(
            name='Ravi',
            contact_number=PhoneNumber.from_string('+919876543005'),
            date_of_birth=date(1990, 1, 1),
            user=user,
        )
        self.assertGreaterEqual(patient.age, 35)
        self.assertEqual(user.patient_profile, patient)

    def test_age_unknown_without_birth_date(self):
        patient = Patient.objects.create(name='Anon', contact_number=PhoneNumber.from_string('+919876543006'))
        self.assertIsNone(patient.age)
