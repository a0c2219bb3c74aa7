# appointments/models.py

from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from patients.models import Patient
from staff.models import DOCTORS_GROUP, StaffMember
from .timeutils import local_datetime, minutes_to_time, time_to_minutes

MIN_DURATION_MINUTES = 15
MAX_DURATION_MINUTES = 120


class Appointment(models.Model):

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        CONFIRMED = 'confirmed', 'Confirmed'
        REJECTED = 'rejected', 'Rejected'
        IN_PROGRESS = 'in-progress', 'In Progress'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'
        NO_SHOW = 'no-show', 'No Show'

    # Allowed moves out of every status. Terminal statuses map to an empty set.
    TRANSITIONS = {
        Status.PENDING: frozenset({Status.CONFIRMED, Status.REJECTED, Status.CANCELLED, Status.NO_SHOW}),
        Status.CONFIRMED: frozenset({Status.IN_PROGRESS, Status.CANCELLED, Status.NO_SHOW}),
        Status.IN_PROGRESS: frozenset({Status.COMPLETED, Status.NO_SHOW}),
        Status.COMPLETED: frozenset(),
        Status.CANCELLED: frozenset(),
        Status.REJECTED: frozenset(),
        Status.NO_SHOW: frozenset(),
    }

    # Statuses that give the doctor's time back to the calendar.
    RELEASING_STATUSES = (Status.CANCELLED, Status.NO_SHOW, Status.REJECTED)
    TERMINAL_STATUSES = (Status.CANCELLED, Status.COMPLETED, Status.NO_SHOW, Status.REJECTED)

    PURPOSE_CHOICES = [
        ('consultation', 'Consultation'),
        ('follow-up', 'Follow-up'),
        ('emergency', 'Emergency'),
        ('routine-checkup', 'Routine Checkup'),
        ('vaccination', 'Vaccination'),
        ('health-screening', 'Health Screening'),
    ]
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('emergency', 'Emergency'),
    ]
    TYPE_CHOICES = [
        ('consultation', 'Consultation'),
        ('follow-up', 'Follow-up'),
        ('emergency', 'Emergency'),
        ('routine-checkup', 'Routine Checkup'),
        ('walk-in', 'Walk-in'),
        ('manual', 'Manual'),
    ]
    PAYMENT_STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('paid', 'Paid'),
        ('partially-paid', 'Partially Paid'),
        ('refunded', 'Refunded'),
    ]
    PAYMENT_METHOD_CHOICES = [
        ('cash', 'Cash'),
        ('card', 'Card'),
        ('upi', 'UPI'),
        ('insurance', 'Insurance'),
    ]

    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name='appointments')
    doctor = models.ForeignKey(
        StaffMember,
        on_delete=models.PROTECT,
        limit_choices_to={'user__groups__name': DOCTORS_GROUP},
        related_name='appointments'
    )
    slot = models.ForeignKey(
        'Slot',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )

    appointment_date = models.DateField()
    appointment_time = models.TimeField()
    duration = models.PositiveSmallIntegerField(
        default=30,
        validators=[MinValueValidator(MIN_DURATION_MINUTES), MaxValueValidator(MAX_DURATION_MINUTES)],
        help_text="Length of the visit in minutes."
    )
    reason = models.CharField(max_length=500, blank=True)
    symptoms = models.CharField(max_length=1000, blank=True)
    notes = models.TextField(blank=True, null=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    purpose_of_visit = models.CharField(max_length=20, choices=PURPOSE_CHOICES, default='consultation')
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    appointment_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='consultation')

    # Payment, as reported by the external gateway.
    payment_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=0,
        validators=[MinValueValidator(0)]
    )
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default='pending')
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    payment_transaction_id = models.CharField(max_length=100, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    # Cancellation / rejection
    cancellation_reason = models.CharField(max_length=500, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='cancelled_appointments'
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_appointments'
    )
    last_modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='modified_appointments'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def start_minute(self):
        return time_to_minutes(self.appointment_time)

    @property
    def end_minute(self):
        return self.start_minute + self.duration

    @property
    def end_time(self):
        # Visits never run past midnight; clamp for display.
        return minutes_to_time(min(self.end_minute, 24 * 60 - 1))

    @property
    def appointment_datetime(self):
        return local_datetime(self.appointment_date, self.start_minute)

    @property
    def is_upcoming(self):
        return (
            self.appointment_datetime > timezone.now()
            and self.status in (self.Status.PENDING, self.Status.CONFIRMED)
        )

    @property
    def is_today(self):
        return self.appointment_date == timezone.localdate()

    @property
    def occupies_calendar(self):
        return self.status not in self.RELEASING_STATUSES

    def can_transition_to(self, new_status):
        return self.Status(new_status) in self.TRANSITIONS[self.Status(self.status)]

    def clean(self):
        super().clean()
        if self.appointment_time is not None and self.duration:
            if self.start_minute + self.duration > 24 * 60:
                raise ValidationError({'duration': "The visit must end on the same day it starts."})

    def __str__(self):
        return (
            f"Appointment for {self.patient.name} with {self.doctor} on "
            f"{self.appointment_date:%Y-%m-%d} {self.appointment_time:%H:%M}"
        )

    class Meta:
        ordering = ['-appointment_date', '-appointment_time']
        indexes = [
            models.Index(fields=['doctor', 'appointment_date'], name='appt_doctor_date_idx'),
            models.Index(fields=['patient', 'status'], name='appt_patient_status_idx'),
        ]
        constraints = [
            # One calendar-holding booking per doctor start time. Walk-ins are
            # squeezed in by reception and are exempt.
            models.UniqueConstraint(
                fields=['doctor', 'appointment_date', 'appointment_time'],
                condition=~Q(status__in=['cancelled', 'no-show', 'rejected']) & ~Q(appointment_type='walk-in'),
                name='unique_active_doctor_start',
            ),
            models.CheckConstraint(
                condition=Q(duration__gte=MIN_DURATION_MINUTES) & Q(duration__lte=MAX_DURATION_MINUTES),
                name='appointment_duration_range',
            ),
        ]


class Slot(models.Model):
    BLOCK_REASON_CHOICES = [
        ('break', 'Break'),
        ('emergency', 'Emergency'),
        ('maintenance', 'Maintenance'),
        ('personal', 'Personal'),
        ('other', 'Other'),
    ]
    SLOT_TYPE_CHOICES = [
        ('regular', 'Regular'),
        ('emergency', 'Emergency'),
        ('followup', 'Follow-up'),
        ('walkin', 'Walk-in'),
    ]

    doctor = models.ForeignKey(StaffMember, on_delete=models.CASCADE, related_name='slots')
    date = models.DateField()
    start_time = models.TimeField()
    end_time = models.TimeField()
    duration = models.PositiveSmallIntegerField(
        blank=True,
        validators=[MinValueValidator(MIN_DURATION_MINUTES), MaxValueValidator(MAX_DURATION_MINUTES)],
        help_text="Minutes. Derived from the start and end times when left blank."
    )
    max_patients = models.PositiveSmallIntegerField(
        default=1,
        validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    booked_patients = models.PositiveSmallIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    is_blocked = models.BooleanField(default=False)
    block_reason = models.CharField(max_length=20, choices=BLOCK_REASON_CHOICES, blank=True)
    appointment = models.ForeignKey(
        Appointment,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='held_slots'
    )
    slot_type = models.CharField(max_length=10, choices=SLOT_TYPE_CHOICES, default='regular')
    fee = models.DecimalField(max_digits=10, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    notes = models.CharField(max_length=200, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_slots'
    )
    last_modified_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='modified_slots'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def status(self):
        if self.is_blocked:
            return 'blocked'
        if not self.is_available:
            return 'unavailable'
        if self.booked_patients >= self.max_patients:
            return 'full'
        if self.appointment_id is not None:
            return 'booked'
        return 'available'

    @property
    def is_past(self):
        return local_datetime(self.date, time_to_minutes(self.start_time)) < timezone.now()

    @property
    def is_today(self):
        return self.date == timezone.localdate()

    @property
    def span_minutes(self):
        return time_to_minutes(self.end_time) - time_to_minutes(self.start_time)

    def clean(self):
        super().clean()
        if self.start_time is None or self.end_time is None:
            return
        if self.end_time <= self.start_time:
            raise ValidationError({'end_time': "End time must be after start time."})
        if self.duration is None:
            self.duration = self.span_minutes
        if self.duration != self.span_minutes:
            raise ValidationError({'duration': "Duration must match the gap between start and end time."})
        if self.booked_patients > self.max_patients:
            raise ValidationError({'booked_patients': "Cannot book more patients than the slot allows."})

    def save(self, *args, **kwargs):
        if self.duration is None and self.start_time and self.end_time:
            self.duration = self.span_minutes
        self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.doctor} {self.date:%Y-%m-%d} {self.start_time:%H:%M}-{self.end_time:%H:%M}"

    class Meta:
        ordering = ['date', 'start_time']
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'date', 'start_time'], name='unique_doctor_slot_start'),
            models.CheckConstraint(
                condition=Q(booked_patients__lte=F('max_patients')),
                name='slot_booked_within_capacity',
            ),
            models.CheckConstraint(
                condition=Q(end_time__gt=F('start_time')),
                name='slot_end_after_start',
            ),
        ]
