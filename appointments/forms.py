# appointments/forms.py

from django import forms

from .models import Appointment, MAX_DURATION_MINUTES, MIN_DURATION_MINUTES, Slot

DATE_FORMATS = ['%Y-%m-%d']

SELF_SERVICE_TYPES = [
    choice for choice in Appointment.TYPE_CHOICES if choice[0] not in ('walk-in', 'manual')
]


class DurationMixin(forms.Form):
    # Time stays a string here; the engine owns HH:MM parsing.
    appointment_date = forms.DateField(input_formats=DATE_FORMATS)
    appointment_time = forms.CharField(max_length=5)
    duration = forms.IntegerField(
        required=False,
        min_value=MIN_DURATION_MINUTES,
        max_value=MAX_DURATION_MINUTES
    )


class BookingForm(DurationMixin):
    patient = forms.IntegerField(required=False)
    doctor = forms.IntegerField()
    reason = forms.CharField(max_length=500, required=False)
    symptoms = forms.CharField(max_length=1000, required=False)
    priority = forms.ChoiceField(choices=Appointment.PRIORITY_CHOICES, required=False)
    appointment_type = forms.ChoiceField(choices=SELF_SERVICE_TYPES, required=False)
    purpose_of_visit = forms.ChoiceField(choices=Appointment.PURPOSE_CHOICES, required=False)

    def clean(self):
        cleaned_data = super().clean()
        cleaned_data['priority'] = cleaned_data.get('priority') or 'medium'
        cleaned_data['appointment_type'] = cleaned_data.get('appointment_type') or 'consultation'
        cleaned_data['purpose_of_visit'] = cleaned_data.get('purpose_of_visit') or 'consultation'
        return cleaned_data


class ManualAppointmentForm(DurationMixin):
    patient_mobile = forms.CharField(max_length=20)
    patient_name = forms.CharField(max_length=100, required=False)
    doctor = forms.IntegerField()
    purpose_of_visit = forms.ChoiceField(choices=Appointment.PURPOSE_CHOICES, required=False)
    reason = forms.CharField(max_length=500, required=False)
    is_walk_in = forms.BooleanField(required=False)
    slot = forms.IntegerField(required=False)


class RescheduleForm(DurationMixin):
    pass


class ReasonForm(forms.Form):
    reason = forms.CharField(max_length=500, required=False)


class NoteForm(forms.Form):
    note = forms.CharField(max_length=500, required=False)


class PaymentForm(forms.Form):
    amount = forms.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    method = forms.ChoiceField(choices=Appointment.PAYMENT_METHOD_CHOICES)
    transaction_id = forms.CharField(max_length=100, required=False)


class BlockSlotForm(forms.Form):
    reason = forms.ChoiceField(choices=Slot.BLOCK_REASON_CHOICES)
    notes = forms.CharField(max_length=200, required=False)


class DayQueryForm(forms.Form):
    date = forms.DateField(input_formats=DATE_FORMATS)
