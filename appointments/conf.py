# appointments/conf.py

from decimal import Decimal

from django.conf import settings

DEFAULTS = {
    'SLOT_MINUTES': 30,
    'DEFAULT_DURATION_MINUTES': 30,
    'BOOKING_HORIZON_MONTHS': 3,
    'CANCELLATION_CUTOFF_HOURS': 2,
    'FULL_REFUND_HOURS': 24,
    'PARTIAL_REFUND_RATE': '0.5',
    'TRANSIENT_RETRY_ATTEMPTS': 3,
}


def scheduling_setting(name):
    """Look up a knob from settings.SCHEDULING, falling back to the defaults above."""
    value = getattr(settings, 'SCHEDULING', {}).get(name, DEFAULTS[name])
    if name == 'PARTIAL_REFUND_RATE':
        return Decimal(str(value))
    return value
