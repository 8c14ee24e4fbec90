import logging
import uuid
from datetime import date

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from admin_site.model_info import GENDER

logger = logging.getLogger(__name__)


class PatientModel(models.Model):
    """This model handles patient"""
    first_name = models.CharField(max_length=50)
    middle_name = models.CharField(max_length=50, null=True, blank=True, default='')
    last_name = models.CharField(max_length=50)
    card_number = models.CharField(max_length=50, unique=True, blank=True, null=True, db_index=True)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=GENDER, blank=True, default='')
    mobile = models.CharField(max_length=20, null=True, blank=True, default='')
    email = models.EmailField(max_length=100, null=True, blank=True, default='')

    status = models.CharField(max_length=15, blank=True, default='active')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='patient_created_by')
    created_at = models.DateTimeField(auto_now_add=True, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, blank=True, null=True)

    class Meta:
        ordering = ['last_name', 'first_name']

    def __str__(self):
        if self.middle_name:
            return "{} {} {}".format(self.first_name, self.middle_name, self.last_name)
        else:
            return "{} {}".format(self.first_name, self.last_name)

    def save(self, *args, **kwargs):
        if not self.first_name or not self.last_name:
            raise ValidationError("First name and last name are required")

        # Only generate ID if it doesn't exist
        if not self.card_number:
            self.card_number = self.generate_unique_patient_id()

        super(PatientModel, self).save(*args, **kwargs)

    @transaction.atomic
    def generate_unique_patient_id(self):
        """
        Sequential card number generation on a single locked counter row
        """
        setting = PatientSettingModel.objects.first()

        if setting and not setting.auto_generate_patient_id:
            return self._generate_manual_fallback()

        last_entry, created = PatientIDGeneratorModel.objects.select_for_update().get_or_create(
            id=1,  # Always use same record
            defaults={'last_id': 0, 'last_patient_id': '0000'}
        )

        max_attempts = 50
        for attempt in range(max_attempts):
            last_entry.last_id += 1
            new_id = str(last_entry.last_id).zfill(4)
            full_id = self._build_patient_id(setting, new_id)

            if not PatientModel.objects.filter(card_number=full_id).exists():
                last_entry.last_patient_id = new_id
                last_entry.save()
                return full_id

        logger.warning(f"Patient card number counter exhausted {max_attempts} attempts, using uuid fallback")
        return self._generate_uuid_fallback()

    def _build_patient_id(self, setting, counter):
        """Build patient ID from components"""
        prefix = (setting.patient_id_prefix if setting else None) or 'PAT'
        return f"{prefix}{counter}"

    def _generate_manual_fallback(self):
        """Simple fallback for manual mode"""
        timestamp = timezone.now().strftime('%y%m%d%H%M%S')
        return f"PAT-{timestamp}"

    def _generate_uuid_fallback(self):
        return f"PAT-{str(uuid.uuid4())[:8].upper()}"

    def age(self):
        """Calculate patient age safely"""
        if self.date_of_birth:
            today = date.today()
            return today.year - self.date_of_birth.year - (
                    (today.month, today.day) < (self.date_of_birth.month, self.date_of_birth.day)
            )
        return ''


class PatientIDGeneratorModel(models.Model):
    last_id = models.BigIntegerField(default=0)
    last_patient_id = models.CharField(max_length=100, null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)


class PatientSettingModel(models.Model):
    """This model handles all setting related to patient"""
    auto_generate_patient_id = models.BooleanField(default=True)
    patient_id_prefix = models.CharField(max_length=10, blank=True, null=True, default='PAT')

    def save(self, *args, **kwargs):
        # Ensure only one settings record exists
        if not self.pk and PatientSettingModel.objects.exists():
            raise ValidationError("Only one patient settings record is allowed")
        super().save(*args, **kwargs)
