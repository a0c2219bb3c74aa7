import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('patients', '0001_initial'),
        ('staff', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Appointment',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('appointment_date', models.DateField()),
                ('appointment_time', models.TimeField()),
                ('duration', models.PositiveSmallIntegerField(default=30, help_text='Length of the visit in minutes.', validators=[django.core.validators.MinValueValidator(15), django.core.validators.MaxValueValidator(120)])),
                ('reason', models.CharField(blank=True, max_length=500)),
                ('symptoms', models.CharField(blank=True, max_length=1000)),
                ('notes', models.TextField(blank=True, null=True)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('confirmed', 'Confirmed'), ('rejected', 'Rejected'), ('in-progress', 'In Progress'), ('completed', 'Completed'), ('cancelled', 'Cancelled'), ('no-show', 'No Show')], default='pending', max_length=20)),
                ('purpose_of_visit', models.CharField(choices=[('consultation', 'Consultation'), ('follow-up', 'Follow-up'), ('emergency', 'Emergency'), ('routine-checkup', 'Routine Checkup'), ('vaccination', 'Vaccination'), ('health-screening', 'Health Screening')], default='consultation', max_length=20)),
                ('priority', models.CharField(choices=[('low', 'Low'), ('medium', 'Medium'), ('high', 'High'), ('emergency', 'Emergency')], default='medium', max_length=10)),
                ('appointment_type', models.CharField(choices=[('consultation', 'Consultation'), ('follow-up', 'Follow-up'), ('emergency', 'Emergency'), ('routine-checkup', 'Routine Checkup'), ('walk-in', 'Walk-in'), ('manual', 'Manual')], default='consultation', max_length=20)),
                ('payment_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10, validators=[django.core.validators.MinValueValidator(0)])),
                ('payment_status', models.CharField(choices=[('pending', 'Pending'), ('paid', 'Paid'), ('partially-paid', 'Partially Paid'), ('refunded', 'Refunded')], default='pending', max_length=20)),
                ('payment_method', models.CharField(blank=True, choices=[('cash', 'Cash'), ('card', 'Card'), ('upi', 'UPI'), ('insurance', 'Insurance')], max_length=20)),
                ('payment_transaction_id', models.CharField(blank=True, max_length=100)),
                ('paid_at', models.DateTimeField(blank=True, null=True)),
                ('cancellation_reason', models.CharField(blank=True, max_length=500)),
                ('cancelled_at', models.DateTimeField(blank=True, null=True)),
                ('refund_amount', models.DecimalField(decimal_places=2, default=0, max_digits=10)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('cancelled_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='cancelled_appointments', to=settings.AUTH_USER_MODEL)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_appointments', to=settings.AUTH_USER_MODEL)),
                ('doctor', models.ForeignKey(limit_choices_to={'user__groups__name': 'Doctors'}, on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='staff.staffmember')),
                ('last_modified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='modified_appointments', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name='appointments', to='patients.patient')),
            ],
            options={
                'ordering': ['-appointment_date', '-appointment_time'],
                'indexes': [
                    models.Index(fields=['doctor', 'appointment_date'], name='appt_doctor_date_idx'),
                    models.Index(fields=['patient', 'status'], name='appt_patient_status_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(
                        condition=~models.Q(status__in=['cancelled', 'no-show', 'rejected']) & ~models.Q(appointment_type='walk-in'),
                        fields=('doctor', 'appointment_date', 'appointment_time'),
                        name='unique_active_doctor_start',
                    ),
                    models.CheckConstraint(
                        condition=models.Q(duration__gte=15) & models.Q(duration__lte=120),
                        name='appointment_duration_range',
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name='Slot',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('date', models.DateField()),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField()),
                ('duration', models.PositiveSmallIntegerField(blank=True, help_text='Minutes. Derived from the start and end times when left blank.', validators=[django.core.validators.MinValueValidator(15), django.core.validators.MaxValueValidator(120)])),
                ('max_patients', models.PositiveSmallIntegerField(default=1, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(5)])),
                ('booked_patients', models.PositiveSmallIntegerField(default=0)),
                ('is_available', models.BooleanField(default=True)),
                ('is_blocked', models.BooleanField(default=False)),
                ('block_reason', models.CharField(blank=True, choices=[('break', 'Break'), ('emergency', 'Emergency'), ('maintenance', 'Maintenance'), ('personal', 'Personal'), ('other', 'Other')], max_length=20)),
                ('slot_type', models.CharField(choices=[('regular', 'Regular'), ('emergency', 'Emergency'), ('followup', 'Follow-up'), ('walkin', 'Walk-in')], default='regular', max_length=10)),
                ('fee', models.DecimalField(decimal_places=2, default=0, max_digits=10, validators=[django.core.validators.MinValueValidator(0)])),
                ('notes', models.CharField(blank=True, max_length=200)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('appointment', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='held_slots', to='appointments.appointment')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='created_slots', to=settings.AUTH_USER_MODEL)),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='slots', to='staff.staffmember')),
                ('last_modified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='modified_slots', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['date', 'start_time'],
                'constraints': [
                    models.UniqueConstraint(fields=('doctor', 'date', 'start_time'), name='unique_doctor_slot_start'),
                    models.CheckConstraint(condition=models.Q(booked_patients__lte=models.F('max_patients')), name='slot_booked_within_capacity'),
                    models.CheckConstraint(condition=models.Q(end_time__gt=models.F('start_time')), name='slot_end_after_start'),
                ],
            },
        ),
        migrations.AddField(
            model_name='appointment',
            name='slot',
            field=models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='appointments.slot'),
        ),
    ]
