# audit_log/models.py

from django.db import models
from django.conf import settings

class AppointmentStatusLog(models.Model):
    """
    One entry per appointment status change, including the initial status
    an appointment is created with.
    """
    appointment = models.ForeignKey(
        'appointments.Appointment',
        on_delete=models.CASCADE,
        related_name='status_history'
    )
    # Blank when the appointment was created as-is.
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20)
    # The user who made the change. Can be null for system actions or deleted users.
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointment_status_changes',
        help_text="The user who changed the status."
    )
    note = models.CharField(max_length=500, blank=True)
    timestamp = models.DateTimeField(
        auto_now_add=True,
        help_text="The date and time the change occurred."
    )

    class Meta:
        ordering = ['-timestamp', '-pk']
        verbose_name = 'Appointment Status Log'
        verbose_name_plural = 'Appointment Status Logs'

    def __str__(self):
        origin = self.from_status or 'new'
        return f"Appointment {self.appointment_id}: {origin} -> {self.to_status}"
