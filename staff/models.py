# staff/models.py

from decimal import Decimal
from datetime import date

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from phonenumber_field.modelfields import PhoneNumberField

DOCTORS_GROUP = 'Doctors'


class StaffMember(models.Model):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='staff_profile'
    )

    # Doctor-specific fields; only meaningful for members of the "Doctors" group
    SPECIALIZATION_CHOICES = [
        ('GP', 'General Physician'), ('ORTHO', 'Orthopedics'),
        ('CARDIO', 'Cardiology'), ('DERMA', 'Dermatology'),
        ('PEDIA', 'Pediatrics'), ('ENT', 'ENT'),
        ('GYNAE', 'Gynaecology'), ('PHYSIO', 'Physiotherapy'),
        ('OTHER', 'Other'),
    ]
    specialization = models.CharField(
        max_length=10,
        choices=SPECIALIZATION_CHOICES,
        blank=True,
        null=True
    )
    qualification = models.CharField(max_length=200, blank=True, null=True)
    experience_years = models.PositiveSmallIntegerField(null=True, blank=True)
    registration_number = models.CharField(max_length=50, blank=True, null=True, unique=True)
    consultation_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))]
    )
    is_verified = models.BooleanField(
        default=False,
        help_text="Doctors can only be booked by patients once their credentials are verified."
    )

    contact_number = PhoneNumberField(unique=True, null=True, blank=True)
    address = models.TextField(blank=True, null=True)
    date_of_birth = models.DateField(null=True, blank=True)
    date_joined = models.DateField(default=timezone.now)
    is_active = models.BooleanField(default=True)

    @property
    def name(self):
        return self.user.get_full_name() or self.user.get_username()

    @property
    def is_doctor(self):
        return self.user.groups.filter(name=DOCTORS_GROUP).exists()

    @property
    def age(self):
        if self.date_of_birth:
            today = date.today()
            return today.year - self.date_of_birth.year - ((today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day))
        return None

    def __str__(self):
        if self.is_doctor:
            return f"Dr. {self.name}"
        return self.name

    def save(self, *args, **kwargs):
        # Sync is_active status with the user model
        if self.user.is_active != self.is_active:
            self.user.is_active = self.is_active
            self.user.save()

        super().save(*args, **kwargs)

    class Meta:
        ordering = ['user__first_name', 'user__last_name']


class ScheduleEntry(models.Model):
    """
    One row of a doctor's recurring weekly template.

    Entries are kept in insertion order; for a given weekday the first
    entry marked available is the one the booking engine uses.
    """
    DAY_CHOICES = [
        ('mon', 'Monday'),
        ('tue', 'Tuesday'),
        ('wed', 'Wednesday'),
        ('thu', 'Thursday'),
        ('fri', 'Friday'),
        ('sat', 'Saturday'),
        ('sun', 'Sunday'),
    ]

    doctor = models.ForeignKey(
        StaffMember,
        on_delete=models.CASCADE,
        related_name='weekly_schedule'
    )
    day = models.CharField(max_length=3, choices=DAY_CHOICES)
    start_time = models.TimeField()
    end_time = models.TimeField()
    is_available = models.BooleanField(default=True)

    class Meta:
        ordering = ['doctor', 'pk']
        verbose_name = "Schedule Entry"
        verbose_name_plural = "Weekly Schedule"
        constraints = [
            models.CheckConstraint(
                name='schedule_end_after_start',
                condition=Q(is_available=False) | Q(end_time__gt=F('start_time')),
            ),
        ]

    def __str__(self):
        state = '' if self.is_available else ' (off)'
        return f"{self.get_day_display()} {self.start_time:%H:%M}-{self.end_time:%H:%M}{state}"

    def clean(self):
        if self.is_available and self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({'end_time': "End time must be after start time."})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)
