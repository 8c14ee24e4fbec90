from datetime import date, time
from decimal import Decimal

from django.test import TestCase

from appointment.models import AppointmentModel, AppointmentLabTestModel, DEFAULT_APPOINTMENT_PRICE
from laboratory.models import LabTestModel
from patient.models import PatientModel


class AppointmentModelTest(TestCase):

    def setUp(self):
        self.patient = PatientModel.objects.create(first_name='Ana', middle_name='Reyes', last_name='Lopez')
        self.cbc = LabTestModel.objects.create(name='Complete Blood Count (CBC)', code='CBC', price=Decimal('245.00'))

    def test_price_defaults_to_type_price(self):
        appointment = AppointmentModel.objects.create(
            patient=self.patient, appointment_type='urinalysis', appointment_date=date(2024, 3, 1)
        )
        self.assertEqual(appointment.price, Decimal('140.00'))

    def test_unlisted_type_uses_default_price(self):
        appointment = AppointmentModel.objects.create(
            patient=self.patient, appointment_type='manual_transaction', appointment_date=date(2024, 3, 1)
        )
        self.assertEqual(appointment.price, DEFAULT_APPOINTMENT_PRICE)

    def test_recorded_price_kept(self):
        appointment = AppointmentModel.objects.create(
            patient=self.patient, price=Decimal('500.00'), appointment_date=date(2024, 3, 1)
        )
        self.assertEqual(appointment.price, Decimal('500.00'))

    def test_patient_name(self):
        appointment = AppointmentModel.objects.create(patient=self.patient, appointment_date=date(2024, 3, 1))
        self.assertEqual(appointment.patient_name, 'Ana Reyes Lopez')

        appointment.patient = None
        self.assertEqual(appointment.patient_name, 'Unknown Patient')

    def test_recalculate_lab_total(self):
        appointment = AppointmentModel.objects.create(
            patient=self.patient, appointment_date=date(2024, 3, 1), appointment_time=time(9, 30)
        )
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.cbc)
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.cbc, unit_price=Decimal('200.00'))

        self.assertEqual(appointment.recalculate_lab_total(), Decimal('445.00'))
        appointment.refresh_from_db()
        self.assertEqual(appointment.total_lab_amount, Decimal('445.00'))
        self.assertEqual(appointment.final_total_amount, Decimal('795.00'))

    def test_effective_price_without_test(self):
        appointment = AppointmentModel.objects.create(patient=self.patient, appointment_date=date(2024, 3, 1))
        lab_row = AppointmentLabTestModel.objects.create(appointment=appointment)
        self.assertEqual(lab_row.effective_price, Decimal('0.00'))

    def test_latest_in_transaction(self):
        day = date(2024, 3, 1)
        AppointmentModel.objects.create(patient=self.patient, appointment_date=day, billing_status='in_transaction')
        latest = AppointmentModel.objects.create(
            patient=self.patient, appointment_date=day, billing_status='in_transaction'
        )
        AppointmentModel.objects.create(patient=self.patient, appointment_date=day, billing_status='paid')

        self.assertEqual(AppointmentModel.latest_in_transaction(self.patient, day), latest)
        self.assertIsNone(AppointmentModel.latest_in_transaction(self.patient, date(2024, 3, 2)))
        self.assertIsNone(AppointmentModel.latest_in_transaction(None, day))
