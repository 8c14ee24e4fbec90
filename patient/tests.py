from django.core.exceptions import ValidationError
from django.test import TestCase

from patient.models import PatientModel, PatientSettingModel


class PatientModelTest(TestCase):

    def test_card_numbers_are_sequential(self):
        first = PatientModel.objects.create(first_name='Juan', last_name='Dela Cruz')
        second = PatientModel.objects.create(first_name='Pedro', last_name='Penduko')

        self.assertEqual(first.card_number, 'PAT0001')
        self.assertEqual(second.card_number, 'PAT0002')

    def test_custom_prefix(self):
        PatientSettingModel.objects.create(patient_id_prefix='CLN')
        patient = PatientModel.objects.create(first_name='Juan', last_name='Dela Cruz')
        self.assertTrue(patient.card_number.startswith('CLN'))

    def test_manual_mode_fallback(self):
        PatientSettingModel.objects.create(auto_generate_patient_id=False)
        patient = PatientModel.objects.create(first_name='Juan', last_name='Dela Cruz')
        self.assertTrue(patient.card_number.startswith('PAT-'))

    def test_names_required(self):
        with self.assertRaises(ValidationError):
            PatientModel.objects.create(first_name='Juan', last_name='')

    def test_single_settings_record(self):
        PatientSettingModel.objects.create()
        with self.assertRaises(ValidationError):
            PatientSettingModel.objects.create()
