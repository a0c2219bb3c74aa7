import decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
import phonenumber_field.modelfields
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='StaffMember',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('specialization', models.CharField(blank=True, choices=[('GP', 'General Physician'), ('ORTHO', 'Orthopedics'), ('CARDIO', 'Cardiology'), ('DERMA', 'Dermatology'), ('PEDIA', 'Pediatrics'), ('ENT', 'ENT'), ('GYNAE', 'Gynaecology'), ('PHYSIO', 'Physiotherapy'), ('OTHER', 'Other')], max_length=10, null=True)),
                ('qualification', models.CharField(blank=True, max_length=200, null=True)),
                ('experience_years', models.PositiveSmallIntegerField(blank=True, null=True)),
                ('registration_number', models.CharField(blank=True, max_length=50, null=True, unique=True)),
                ('consultation_fee', models.DecimalField(decimal_places=2, default=decimal.Decimal('0.00'), max_digits=10, validators=[django.core.validators.MinValueValidator(decimal.Decimal('0.00'))])),
                ('is_verified', models.BooleanField(default=False, help_text='Doctors can only be booked by patients once their credentials are verified.')),
                ('contact_number', phonenumber_field.modelfields.PhoneNumberField(blank=True, max_length=128, null=True, region=None, unique=True)),
                ('address', models.TextField(blank=True, null=True)),
                ('date_of_birth', models.DateField(blank=True, null=True)),
                ('date_joined', models.DateField(default=django.utils.timezone.now)),
                ('is_active', models.BooleanField(default=True)),
                ('user', models.OneToOneField(on_delete=django.db.models.deletion.CASCADE, related_name='staff_profile', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['user__first_name', 'user__last_name'],
            },
        ),
        migrations.CreateModel(
            name='ScheduleEntry',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('day', models.CharField(choices=[('mon', 'Monday'), ('tue', 'Tuesday'), ('wed', 'Wednesday'), ('thu', 'Thursday'), ('fri', 'Friday'), ('sat', 'Saturday'), ('sun', 'Sunday')], max_length=3)),
                ('start_time', models.TimeField()),
                ('end_time', models.TimeField()),
                ('is_available', models.BooleanField(default=True)),
                ('doctor', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='weekly_schedule', to='staff.staffmember')),
            ],
            options={
                'verbose_name': 'Schedule Entry',
                'verbose_name_plural': 'Weekly Schedule',
                'ordering': ['doctor', 'pk'],
                'constraints': [models.CheckConstraint(condition=models.Q(('is_available', False), ('end_time__gt', models.F('start_time')), _connector='OR'), name='schedule_end_after_start')],
            },
        ),
    ]
