import logging
import uuid
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.utils import timezone

from admin_site.model_info import (
    BILLING_STATUS, OPEN_BILLING_STATUS, PAYMENT_METHOD, ITEM_TYPE, LINK_STATUS, APPOINTMENT_TYPE,
    DOCTOR_PAYMENT_STATUS
)

logger = logging.getLogger(__name__)


class BillingTransactionModel(models.Model):
    """A single payment record; amount is the final, post-discount total"""
    transaction_code = models.CharField(max_length=30, unique=True, blank=True)

    patient = models.ForeignKey(
        'patient.PatientModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='billing_transactions'
    )
    specialist = models.ForeignKey(
        'human_resource.StaffModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='billing_transactions'
    )
    appointment = models.ForeignKey(
        'appointment.AppointmentModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='direct_billing_transactions',
        help_text="Appointment the transaction was raised for, when known"
    )

    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD, default='cash')
    payment_reference = models.CharField(max_length=255, blank=True, default='')
    hmo_provider = models.CharField(max_length=255, blank=True, default='')
    hmo_reference_number = models.CharField(max_length=255, blank=True, default='')

    status = models.CharField(max_length=20, choices=BILLING_STATUS, default='pending')

    # Senior citizen discount
    is_senior_citizen = models.BooleanField(default=False)
    senior_discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    senior_discount_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('0.00'))

    is_itemized = models.BooleanField(default=False, help_text="Line items are trustworthy")
    notes = models.TextField(blank=True, default='')

    transaction_date = models.DateTimeField(default=timezone.now)
    transaction_date_only = models.DateField(blank=True, null=True)

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='billing_created_by')
    updated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='billing_updated_by')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'billing_transactions'
        ordering = ['-transaction_date', '-id']
        indexes = [
            models.Index(fields=['status', 'payment_method'], name='billing_status_method_idx'),
            models.Index(fields=['transaction_date'], name='billing_txn_date_idx'),
        ]

    def __str__(self):
        return f"{self.transaction_code} - ₱{self.amount}"

    def save(self, *args, **kwargs):
        if not self.transaction_code:
            self.transaction_code = self.generate_transaction_code()
        super(BillingTransactionModel, self).save(*args, **kwargs)

    @transaction.atomic
    def generate_transaction_code(self):
        """
        Sequential TXN-000001 style codes issued from a single locked counter row
        """
        last_entry, created = BillingTransactionIDGeneratorModel.objects.select_for_update().get_or_create(
            id=1,  # Always use same record
            defaults={'last_id': 0}
        )

        max_attempts = 50
        for attempt in range(max_attempts):
            last_entry.last_id += 1
            code = f"TXN-{str(last_entry.last_id).zfill(6)}"

            # codes entered by hand may already occupy the next number
            if not BillingTransactionModel.objects.filter(transaction_code=code).exists():
                last_entry.last_transaction_code = code
                last_entry.save()
                return code

        logger.warning(f"Transaction code counter exhausted {max_attempts} attempts, using uuid fallback")
        return f"TXN-{uuid.uuid4().hex[:8].upper()}"

    @property
    def gross_amount(self):
        """Total before the senior citizen discount"""
        return (self.amount or Decimal('0.00')) + (self.senior_discount_amount or Decimal('0.00'))

    @property
    def billing_date(self):
        if self.transaction_date_only:
            return self.transaction_date_only
        if self.transaction_date:
            transaction_date = self.transaction_date
            if timezone.is_aware(transaction_date):
                transaction_date = timezone.localtime(transaction_date)
            return transaction_date.date()
        return None

    def can_be_edited(self):
        return self.status in OPEN_BILLING_STATUS

    def can_be_cancelled(self):
        return self.status in OPEN_BILLING_STATUS

    def can_be_paid(self):
        return self.status == 'pending'


class BillingTransactionItemModel(models.Model):
    """One priced line within a billing transaction"""
    billing_transaction = models.ForeignKey(BillingTransactionModel, on_delete=models.CASCADE, related_name='items')
    item_type = models.CharField(max_length=20, choices=ITEM_TYPE)
    item_name = models.CharField(max_length=255)
    item_description = models.TextField(blank=True, default='')
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    total_price = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)
    lab_test = models.ForeignKey(
        'laboratory.LabTestModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='billing_items'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'billing_transaction_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.item_name} x{self.quantity} - ₱{self.total_price}"

    def save(self, *args, **kwargs):
        if self.total_price is None:
            self.total_price = self.unit_price * self.quantity
        super().save(*args, **kwargs)


class AppointmentBillingLinkModel(models.Model):
    """Associates an appointment with the billing transaction that pays for it"""
    appointment = models.ForeignKey(
        'appointment.AppointmentModel',
        on_delete=models.CASCADE,
        related_name='billing_links'
    )
    billing_transaction = models.ForeignKey(
        BillingTransactionModel,
        on_delete=models.CASCADE,
        related_name='appointment_links'
    )

    # snapshot taken when the link is created
    appointment_type = models.CharField(max_length=50, choices=APPOINTMENT_TYPE, blank=True, default='')
    appointment_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    status = models.CharField(max_length=20, choices=LINK_STATUS, default='pending')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointment_billing_links'
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(
                fields=['appointment', 'billing_transaction'],
                name='unique_appointment_billing_link'
            )
        ]

    def __str__(self):
        return f"Appointment #{self.appointment_id} -> {self.billing_transaction}"


class BillingTransactionIDGeneratorModel(models.Model):
    last_id = models.BigIntegerField(default=0)
    last_transaction_code = models.CharField(max_length=30, null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)


class DoctorPaymentModel(models.Model):
    """Payout to a doctor; net_payment is recomputed from its parts on every save"""
    doctor = models.ForeignKey('human_resource.StaffModel', on_delete=models.CASCADE, related_name='doctor_payments')

    basic_salary = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(0)])
    deductions = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                     validators=[MinValueValidator(0)])
    holiday_pay = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                      validators=[MinValueValidator(0)])
    incentives = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'),
                                     validators=[MinValueValidator(0)])
    net_payment = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    payment_date = models.DateField()
    status = models.CharField(max_length=20, choices=DOCTOR_PAYMENT_STATUS, default='pending')
    paid_at = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='doctor_payment_created_by')
    updated_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='doctor_payment_updated_by')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'doctor_payments'
        ordering = ['-payment_date', '-id']
        indexes = [
            models.Index(fields=['payment_date', 'status'], name='doctor_payment_date_idx'),
        ]

    def __str__(self):
        return f"{self.doctor} - ₱{self.net_payment} ({self.payment_date})"

    def save(self, *args, **kwargs):
        self.net_payment = self.calculate_net_payment()
        super(DoctorPaymentModel, self).save(*args, **kwargs)

    def calculate_net_payment(self):
        return (
            (self.basic_salary or Decimal('0.00'))
            + (self.holiday_pay or Decimal('0.00'))
            + (self.incentives or Decimal('0.00'))
            - (self.deductions or Decimal('0.00'))
        )

    def can_be_paid(self):
        return self.status == 'pending'

    def can_be_cancelled(self):
        return self.status == 'pending'
