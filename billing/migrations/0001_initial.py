from decimal import Decimal
from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ('patient', '0001_initial'),
        ('human_resource', '0001_initial'),
        ('laboratory', '0001_initial'),
        ('appointment', '0001_initial'),
    ]

    operations = [
        migrations.CreateModel(
            name='BillingTransactionIDGeneratorModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('last_id', models.BigIntegerField(default=0)),
                ('last_transaction_code', models.CharField(blank=True, max_length=30, null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='BillingTransactionModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('transaction_code', models.CharField(blank=True, max_length=30, unique=True)),
                ('amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('payment_method', models.CharField(choices=[('cash', 'CASH'), ('hmo', 'HMO')], default='cash', max_length=20)),
                ('payment_reference', models.CharField(blank=True, default='', max_length=255)),
                ('hmo_provider', models.CharField(blank=True, default='', max_length=255)),
                ('hmo_reference_number', models.CharField(blank=True, default='', max_length=255)),
                ('status', models.CharField(choices=[('draft', 'DRAFT'), ('pending', 'PENDING'), ('paid', 'PAID'), ('cancelled', 'CANCELLED'), ('refunded', 'REFUNDED')], default='pending', max_length=20)),
                ('is_senior_citizen', models.BooleanField(default=False)),
                ('senior_discount_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=12)),
                ('senior_discount_percentage', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=5)),
                ('is_itemized', models.BooleanField(default=False, help_text='Line items are trustworthy')),
                ('notes', models.TextField(blank=True, default='')),
                ('transaction_date', models.DateTimeField(default=django.utils.timezone.now)),
                ('transaction_date_only', models.DateField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('appointment', models.ForeignKey(blank=True, help_text='Appointment the transaction was raised for, when known', null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='direct_billing_transactions', to='appointment.appointmentmodel')),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='billing_created_by', to=settings.AUTH_USER_MODEL)),
                ('patient', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='billing_transactions', to='patient.patientmodel')),
                ('specialist', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='billing_transactions', to='human_resource.staffmodel')),
                ('updated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='billing_updated_by', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'db_table': 'billing_transactions',
                'ordering': ['-transaction_date', '-id'],
                'indexes': [
                    models.Index(fields=['status', 'payment_method'], name='billing_status_method_idx'),
                    models.Index(fields=['transaction_date'], name='billing_txn_date_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='BillingTransactionItemModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('item_type', models.CharField(choices=[('consultation', 'CONSULTATION'), ('laboratory', 'LABORATORY'), ('medicine', 'MEDICINE'), ('procedure', 'PROCEDURE'), ('other', 'OTHER')], max_length=20)),
                ('item_name', models.CharField(max_length=255)),
                ('item_description', models.TextField(blank=True, default='')),
                ('quantity', models.PositiveIntegerField(default=1)),
                ('unit_price', models.DecimalField(decimal_places=2, max_digits=12, validators=[django.core.validators.MinValueValidator(0)])),
                ('total_price', models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('billing_transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='items', to='billing.billingtransactionmodel')),
                ('lab_test', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='billing_items', to='laboratory.labtestmodel')),
            ],
            options={
                'db_table': 'billing_transaction_items',
                'ordering': ['id'],
            },
        ),
        migrations.CreateModel(
            name='AppointmentBillingLinkModel',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('appointment_type', models.CharField(blank=True, choices=[('general_consultation', 'GENERAL CONSULTATION'), ('consultation', 'CONSULTATION'), ('checkup', 'CHECKUP'), ('cbc', 'COMPLETE BLOOD COUNT (CBC)'), ('urinalysis', 'URINALYSIS'), ('fecalysis', 'FECALYSIS'), ('x-ray', 'X-RAY'), ('ultrasound', 'ULTRASOUND'), ('manual_transaction', 'MANUAL TRANSACTION')], default='', max_length=50)),
                ('appointment_price', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=10)),
                ('status', models.CharField(choices=[('pending', 'PENDING'), ('paid', 'PAID'), ('cancelled', 'CANCELLED')], default='pending', max_length=20)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('appointment', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='billing_links', to='appointment.appointmentmodel')),
                ('billing_transaction', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='appointment_links', to='billing.billingtransactionmodel')),
            ],
            options={
                'db_table': 'appointment_billing_links',
                'ordering': ['id'],
                'constraints': [models.UniqueConstraint(fields=('appointment', 'billing_transaction'), name='unique_appointment_billing_link')],
            },
        ),
    ]
