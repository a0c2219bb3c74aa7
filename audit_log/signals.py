# audit_log/signals.py

import structlog
from django.db.models.signals import post_save, pre_save
from django.dispatch import receiver

from appointments.models import Appointment
from .models import AppointmentStatusLog
from .middleware import get_current_user

logger = structlog.get_logger(__name__)


@receiver(pre_save, sender=Appointment)
def cache_previous_status(sender, instance, **kwargs):
    """
    Remember the stored status before the save so post_save can tell
    whether it changed.
    """
    if instance.pk:
        instance._previous_status = (
            Appointment.objects.filter(pk=instance.pk).values_list('status', flat=True).first()
        )
    else:
        instance._previous_status = None


@receiver(post_save, sender=Appointment)
def log_status_change(sender, instance, created, raw=False, **kwargs):
    if raw:
        return

    previous = getattr(instance, '_previous_status', None)
    current = str(instance.status)
    if not created and previous == current:
        return

    actor = instance.last_modified_by or get_current_user()
    if actor is not None and not actor.is_authenticated:
        actor = None

    AppointmentStatusLog.objects.create(
        appointment=instance,
        from_status=previous or '',
        to_status=current,
        actor=actor,
        note=getattr(instance, '_status_note', '') or '',
    )
    logger.debug('status_logged', appointment_id=instance.pk, from_status=previous, to_status=current)
