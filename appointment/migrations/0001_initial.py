from decimal import Decimal
from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('patient', '0001_initial'),
        ('human_resource', '0001_initial'),
        ('laboratory', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='AppointmentModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('appointment_type', models.CharField(choices=[('general_consultation', 'GENERAL CONSULTATION'), ('consultation', 'CONSULTATION'), ('checkup', 'CHECKUP'), ('cbc', 'COMPLETE BLOOD COUNT (CBC)'), ('urinalysis', 'URINALYSIS'), ('fecalysis', 'FECALYSIS'), ('x-ray', 'X-RAY'), ('ultrasound', 'ULTRASOUND'), ('manual_transaction', 'MANUAL TRANSACTION')], default='general_consultation', max_length=50)),
                ('price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True, validators=[django.core.validators.MinValueValidator(0)])),
                ('total_lab_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), help_text='Lab charges recorded against this appointment', max_digits=10)),
                ('appointment_date', models.DateField()),
                ('appointment_time', models.TimeField(blank=True, null=True)),
                ('status', models.CharField(choices=[('pending', 'PENDING'), ('confirmed', 'CONFIRMED'), ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')], default='pending', max_length=20)),
                ('billing_status', models.CharField(blank=True, choices=[('not_billed', 'NOT BILLED'), ('pending', 'PENDING'), ('in_transaction', 'IN TRANSACTION'), ('paid', 'PAID')], default='not_billed', max_length=20)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointment_created_by', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='patient.patientmodel')),
                ('specialist', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointments', to='human_resource.staffmodel')),
            ],
            options={
                'db_table': 'appointments',
                'ordering': ['-appointment_date', '-appointment_time'],
                'indexes': [models.Index(fields=['patient', 'appointment_date', 'billing_status'], name='appt_patient_date_billing_idx')],
            },
        ),
        migrations.CreateModel(
            name='AppointmentLabTestModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('unit_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('total_price', models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ('status', models.CharField(choices=[('pending', 'PENDING'), ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')], default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('appointment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lab_tests', to='appointment.appointmentmodel')),
                ('lab_test', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='appointment_lab_tests', to='laboratory.labtestmodel')),
            ],
            options={
                'db_table': 'appointment_lab_tests',
                'ordering': ['id'],
            },
        ),
    ]
