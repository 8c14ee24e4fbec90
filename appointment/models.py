import logging
from decimal import Decimal

from django.contrib.auth.models import User
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import Sum

from admin_site.model_info import (
    APPOINTMENT_TYPE, APPOINTMENT_STATUS, APPOINTMENT_BILLING_STATUS, LAB_TEST_STATUS
)

logger = logging.getLogger(__name__)

# standard price per appointment type, anything unlisted is billed at the default
APPOINTMENT_TYPE_PRICES = {
    'consultation': Decimal('350.00'),
    'general_consultation': Decimal('350.00'),
    'checkup': Decimal('300.00'),
    'fecalysis': Decimal('90.00'),
    'cbc': Decimal('245.00'),
    'urinalysis': Decimal('140.00'),
    'x-ray': Decimal('700.00'),
    'ultrasound': Decimal('800.00'),
}
DEFAULT_APPOINTMENT_PRICE = Decimal('300.00')


class AppointmentModel(models.Model):
    """A clinical appointment that a billing transaction pays for"""
    patient = models.ForeignKey(
        'patient.PatientModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )
    specialist = models.ForeignKey(
        'human_resource.StaffModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointments'
    )

    appointment_type = models.CharField(max_length=50, choices=APPOINTMENT_TYPE, default='general_consultation')
    price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True,
                                validators=[MinValueValidator(0)])
    total_lab_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        help_text="Lab charges recorded against this appointment"
    )

    appointment_date = models.DateField()
    appointment_time = models.TimeField(blank=True, null=True)

    status = models.CharField(max_length=20, choices=APPOINTMENT_STATUS, default='pending')
    billing_status = models.CharField(max_length=20, choices=APPOINTMENT_BILLING_STATUS, blank=True,
                                      default='not_billed')

    notes = models.TextField(blank=True, default='')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='appointment_created_by')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'appointments'
        ordering = ['-appointment_date', '-appointment_time']
        indexes = [
            models.Index(fields=['patient', 'appointment_date', 'billing_status'], name='appt_patient_date_billing_idx'),
        ]

    def __str__(self):
        return f"{self.get_appointment_type_display()} - {self.patient_name} ({self.appointment_date})"

    def save(self, *args, **kwargs):
        if self.price is None:
            self.price = self.calculate_price()
        super().save(*args, **kwargs)

    def calculate_price(self):
        """Standard price for the appointment type"""
        return APPOINTMENT_TYPE_PRICES.get(self.appointment_type, DEFAULT_APPOINTMENT_PRICE)

    @property
    def patient_name(self):
        if self.patient:
            return str(self.patient)
        return 'Unknown Patient'

    @property
    def final_total_amount(self):
        """Appointment price plus any recorded lab charges"""
        return (self.price or Decimal('0.00')) + (self.total_lab_amount or Decimal('0.00'))

    def recalculate_lab_total(self):
        """Recompute total_lab_amount from the lab test rows and persist it"""
        total = Decimal('0.00')
        for lab_test in self.lab_tests.select_related('lab_test'):
            total += lab_test.effective_price
        self.total_lab_amount = total
        self.save(update_fields=['total_lab_amount', 'updated_at'])
        return total

    @classmethod
    def latest_in_transaction(cls, patient, day):
        """
        Most recently created appointment of a patient on a date that is
        already attached to a billing transaction.
        """
        if not patient or not day:
            return None
        return cls.objects.filter(
            patient=patient,
            appointment_date=day,
            billing_status='in_transaction'
        ).order_by('-created_at', '-id').first()


class AppointmentLabTestModel(models.Model):
    """Lab test requested as part of an appointment"""
    appointment = models.ForeignKey(AppointmentModel, on_delete=models.CASCADE, related_name='lab_tests')
    lab_test = models.ForeignKey(
        'laboratory.LabTestModel',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='appointment_lab_tests'
    )

    # per-appointment price overrides; the catalog price applies when empty
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    total_price = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)

    status = models.CharField(max_length=20, choices=LAB_TEST_STATUS, default='pending')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'appointment_lab_tests'
        ordering = ['id']

    def __str__(self):
        name = self.lab_test.name if self.lab_test else 'Lab Test'
        return f"{name} for appointment #{self.appointment_id}"

    @property
    def effective_price(self):
        if self.unit_price is not None:
            return self.unit_price
        if self.lab_test:
            return self.lab_test.price
        return Decimal('0.00')
