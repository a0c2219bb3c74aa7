# patients/models.py

from datetime import date

from django.conf import settings
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField


class Patient(models.Model):
    name = models.CharField(max_length=100)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='patient_profile',
        help_text="Login account, when the patient books through the app."
    )
    contact_number = PhoneNumberField(
        unique=True,
        blank=False,
        null=False,
        help_text="Enter phone number with country code (e.g., +91)."
    )
    email = models.EmailField(blank=True, null=True)
    date_of_birth = models.DateField(null=True, blank=True)

    GENDER_CHOICES = [('M', 'Male'), ('F', 'Female'), ('O', 'Other')]
    gender = models.CharField(max_length=1, choices=GENDER_CHOICES, blank=True)

    BLOOD_GROUP_CHOICES = [
        ('A+', 'A+'), ('A-', 'A-'), ('B+', 'B+'), ('B-', 'B-'),
        ('AB+', 'AB+'), ('AB-', 'AB-'), ('O+', 'O+'), ('O-', 'O-'),
    ]
    blood_group = models.CharField(max_length=3, choices=BLOOD_GROUP_CHOICES, blank=True)
    address = models.TextField(blank=True, null=True)
    allergies = models.TextField(blank=True, null=True, help_text="e.g., Penicillin, Aspirin")
    chronic_conditions = models.TextField(blank=True, null=True, help_text="e.g., Diabetes, Hypertension")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def age(self):
        if self.date_of_birth:
            today = date.today()
            return (
                today.year
                - self.date_of_birth.year
                - ((today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day))
            )
        return None

    def __str__(self):
        return f"{self.name} (ID: {self.pk})"

    class Meta:
        ordering = ['name']
