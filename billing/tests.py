import json
import os
import tempfile
from datetime import timedelta
from decimal import Decimal
from io import StringIO
from unittest import mock

import openpyxl
from django.contrib.auth.models import User
from django.core.management import call_command
from django.db import DatabaseError
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from appointment.models import AppointmentModel, AppointmentLabTestModel
from billing.exceptions import ReconciliationError, TransactionStateError, AppointmentSelectionError, BillingError
from billing.models import BillingTransactionModel, BillingTransactionItemModel, AppointmentBillingLinkModel, \
    DoctorPaymentModel
from billing.pricing import BillingPolicy, KnownLabTest, base_consultation_price, compute_senior_discount, \
    appointment_type_label
from billing.reconciliation import resolve_links, needs_itemization, infer_lab_items, synthesize_items, \
    reconcile_transaction, link_appointment
from billing.reports import daily_report, hmo_report, doctor_summary
from billing.services import create_transaction_from_appointments, create_manual_transaction, \
    mark_transaction_paid, cancel_transaction, update_transaction_status, delete_transaction, \
    create_doctor_payment, mark_doctor_payment_paid, cancel_doctor_payment
from human_resource.models import StaffModel
from laboratory.models import LabTestModel
from patient.models import PatientModel


class BillingTestMixin:

    def setUp(self):
        self.today = timezone.localdate()
        self.patient = PatientModel.objects.create(first_name='Juan', last_name='Dela Cruz')
        self.doctor = StaffModel.objects.create(first_name='Maria', last_name='Santos', role='doctor')
        self.cbc = LabTestModel.objects.create(name='Complete Blood Count (CBC)', code='CBC', price=Decimal('245.00'))
        self.urinalysis = LabTestModel.objects.create(name='Urinalysis', code='URI', price=Decimal('140.00'),
                                                      sample_type='urine')

    def create_appointment(self, **kwargs):
        values = {
            'patient': self.patient,
            'specialist': self.doctor,
            'appointment_type': 'general_consultation',
            'appointment_date': self.today,
            'status': 'confirmed',
        }
        values.update(kwargs)
        return AppointmentModel.objects.create(**values)

    def create_transaction(self, amount, **kwargs):
        values = {
            'patient': self.patient,
            'specialist': self.doctor,
            'amount': Decimal(amount),
            'transaction_date_only': self.today,
        }
        values.update(kwargs)
        return BillingTransactionModel.objects.create(**values)

    def add_item(self, billing_transaction, price, item_type='other', name='Payment'):
        return BillingTransactionItemModel.objects.create(
            billing_transaction=billing_transaction,
            item_type=item_type,
            item_name=name,
            unit_price=Decimal(price),
        )

    def item_summary(self, billing_transaction):
        return [
            (item.item_type, item.item_name, item.total_price)
            for item in billing_transaction.items.order_by('id')
        ]


class BillingPolicyTest(TestCase):

    def test_defaults(self):
        policy = BillingPolicy()
        self.assertEqual(policy.consultation_price, Decimal('350.00'))
        self.assertEqual([t.name for t in policy.known_lab_tests],
                         ['Complete Blood Count (CBC)', 'Urinalysis', 'Fecalysis'])
        self.assertEqual(policy.senior_discount_percentage, Decimal('20.00'))

    @override_settings(BILLING_POLICY={
        'CONSULTATION_PRICE': '400',
        'KNOWN_LAB_TESTS': [('Lipid Profile', '600.00')],
        'SENIOR_DISCOUNT_RATE': '0.10',
    })
    def test_from_settings(self):
        policy = BillingPolicy.from_settings()
        self.assertEqual(policy.consultation_price, Decimal('400.00'))
        self.assertEqual(policy.known_lab_tests, (KnownLabTest('Lipid Profile', Decimal('600.00')),))
        self.assertEqual(policy.senior_discount_rate, Decimal('0.10'))
        self.assertEqual(policy.generic_lab_item_name, 'Laboratory Tests')

    def test_senior_discount_not_for_hmo(self):
        policy = BillingPolicy()
        self.assertEqual(compute_senior_discount(Decimal('825.00'), True, 'cash', policy), Decimal('165.00'))
        self.assertEqual(compute_senior_discount(Decimal('825.00'), True, 'hmo', policy), Decimal('0.00'))
        self.assertEqual(compute_senior_discount(Decimal('825.00'), False, 'cash', policy), Decimal('0.00'))

    def test_appointment_type_label(self):
        self.assertEqual(appointment_type_label('general_consultation'), 'Consultation')
        self.assertEqual(appointment_type_label(''), 'Consultation')
        self.assertEqual(appointment_type_label('manual_transaction'), 'Manual Transaction')
        self.assertEqual(appointment_type_label('x-ray'), 'X Ray')


class InferLabItemsTest(TestCase):

    def test_exact_match_of_all_known_tests(self):
        self.assertEqual(infer_lab_items(Decimal('475.00')), [
            ('Complete Blood Count (CBC)', Decimal('245.00')),
            ('Urinalysis', Decimal('140.00')),
            ('Fecalysis', Decimal('90.00')),
        ])

    def test_small_remainder_becomes_generic_item(self):
        self.assertEqual(infer_lab_items(Decimal('1.00')), [('Laboratory Tests', Decimal('1.00'))])

    def test_remainder_after_known_tests(self):
        self.assertEqual(infer_lab_items(Decimal('476.00'))[-1], ('Laboratory Tests', Decimal('1.00')))

    def test_skips_tests_that_do_not_fit(self):
        self.assertEqual(infer_lab_items(Decimal('140.00')), [('Urinalysis', Decimal('140.00'))])
        self.assertEqual(infer_lab_items(Decimal('230.00')), [
            ('Urinalysis', Decimal('140.00')),
            ('Fecalysis', Decimal('90.00')),
        ])

    def test_each_test_used_once(self):
        self.assertEqual(infer_lab_items(Decimal('490.00')), [
            ('Complete Blood Count (CBC)', Decimal('245.00')),
            ('Urinalysis', Decimal('140.00')),
            ('Fecalysis', Decimal('90.00')),
            ('Laboratory Tests', Decimal('15.00')),
        ])

    def test_nothing_within_tolerance(self):
        self.assertEqual(infer_lab_items(Decimal('0.00')), [])
        self.assertEqual(infer_lab_items(Decimal('0.01')), [])


class ResolveLinksTest(BillingTestMixin, TestCase):

    def test_existing_links_returned_unchanged(self):
        appointment = self.create_appointment()
        billing_transaction = self.create_transaction('350.00')
        link = link_appointment(billing_transaction, appointment)

        self.assertEqual(resolve_links(billing_transaction), [link])
        self.assertEqual(AppointmentBillingLinkModel.objects.count(), 1)

    def test_links_direct_appointment(self):
        appointment = self.create_appointment(price=Decimal('500.00'))
        billing_transaction = self.create_transaction('500.00', appointment=appointment)

        links = resolve_links(billing_transaction)

        self.assertEqual(len(links), 1)
        self.assertEqual(links[0].appointment, appointment)
        self.assertEqual(links[0].appointment_price, Decimal('500.00'))
        self.assertEqual(links[0].appointment_type, 'general_consultation')

    def test_falls_back_to_latest_appointment_in_transaction_on_billing_date(self):
        self.create_appointment(billing_status='in_transaction')
        latest = self.create_appointment(billing_status='in_transaction', appointment_type='checkup')
        self.create_appointment(billing_status='not_billed')
        self.create_appointment(billing_status='in_transaction', appointment_date=self.today - timedelta(days=1))
        billing_transaction = self.create_transaction('300.00')

        links = resolve_links(billing_transaction)

        self.assertEqual([link.appointment for link in links], [latest])

    def test_no_appointment_found(self):
        self.create_appointment(billing_status='not_billed')
        billing_transaction = self.create_transaction('490.00')

        self.assertEqual(resolve_links(billing_transaction), [])
        self.assertFalse(AppointmentBillingLinkModel.objects.exists())

    def test_repeated_resolution_creates_one_link(self):
        appointment = self.create_appointment()
        billing_transaction = self.create_transaction('350.00', appointment=appointment)

        resolve_links(billing_transaction)
        resolve_links(billing_transaction)

        self.assertEqual(billing_transaction.appointment_links.count(), 1)


class NeedsItemizationTest(BillingTestMixin, TestCase):

    def detect(self, billing_transaction):
        links = list(billing_transaction.appointment_links.all())
        items = list(billing_transaction.items.all())
        return needs_itemization(billing_transaction, items, links)

    def test_consultation_already_itemized(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        billing_transaction = self.create_transaction('350.00')
        link_appointment(billing_transaction, appointment)
        self.add_item(billing_transaction, '350.00', item_type='consultation', name='Consultation Appointment')

        self.assertFalse(self.detect(billing_transaction))

    def test_linked_without_consultation_item(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        billing_transaction = self.create_transaction('350.00')
        link_appointment(billing_transaction, appointment)

        self.assertTrue(self.detect(billing_transaction))

    def test_single_item_absorbing_lab_charges(self):
        billing_transaction = self.create_transaction('490.00')
        self.add_item(billing_transaction, '490.00')

        self.assertTrue(self.detect(billing_transaction))

    def test_single_item_at_consultation_price(self):
        billing_transaction = self.create_transaction('350.00')
        self.add_item(billing_transaction, '350.00')

        self.assertFalse(self.detect(billing_transaction))

    def test_linked_appointment_with_lab_rows_and_no_lab_item(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.cbc)
        billing_transaction = self.create_transaction('350.00')
        link_appointment(billing_transaction, appointment)
        # single consultation item that does not match the payment
        self.add_item(billing_transaction, '300.00', item_type='consultation', name='Consultation Appointment')

        self.assertTrue(self.detect(billing_transaction))

    def test_several_items_are_trusted(self):
        billing_transaction = self.create_transaction('700.00')
        self.add_item(billing_transaction, '350.00')
        self.add_item(billing_transaction, '350.00')

        self.assertFalse(self.detect(billing_transaction))

    def test_no_items_and_no_links(self):
        billing_transaction = self.create_transaction('490.00')
        self.assertFalse(self.detect(billing_transaction))


class SynthesizeItemsTest(BillingTestMixin, TestCase):

    def test_manual_transaction_split_into_consultation_and_known_lab_tests(self):
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('825.00'))
        billing_transaction = self.create_transaction('825.00', appointment=appointment)

        result = reconcile_transaction(billing_transaction.pk)

        self.assertTrue(result['reitemized'])
        self.assertEqual(self.item_summary(billing_transaction), [
            ('consultation', 'Manual Transaction Appointment', Decimal('350.00')),
            ('laboratory', 'Complete Blood Count (CBC)', Decimal('245.00')),
            ('laboratory', 'Urinalysis', Decimal('140.00')),
            ('laboratory', 'Fecalysis', Decimal('90.00')),
        ])
        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.amount, Decimal('825.00'))
        self.assertTrue(billing_transaction.is_itemized)

    def test_transaction_without_appointment(self):
        billing_transaction = self.create_transaction('490.00')

        items = synthesize_items(billing_transaction, [])

        self.assertEqual([(i.item_name, i.total_price) for i in items], [
            ('Consultation', Decimal('350.00')),
            ('Urinalysis', Decimal('140.00')),
        ])
        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.amount, Decimal('490.00'))

    def test_senior_citizen_discount_after_synthesis(self):
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('825.00'))
        billing_transaction = self.create_transaction('825.00', appointment=appointment, is_senior_citizen=True,
                                                      payment_method='cash')

        reconcile_transaction(billing_transaction.pk)

        billing_transaction.refresh_from_db()
        self.assertEqual(sum(i.total_price for i in billing_transaction.items.all()), Decimal('825.00'))
        self.assertEqual(billing_transaction.amount, Decimal('660.00'))
        self.assertEqual(billing_transaction.senior_discount_amount, Decimal('165.00'))
        self.assertEqual(billing_transaction.senior_discount_percentage, Decimal('20.00'))

    def test_hmo_senior_gets_no_discount(self):
        billing_transaction = self.create_transaction('490.00', is_senior_citizen=True, payment_method='hmo',
                                                      hmo_provider='Maxicare')

        synthesize_items(billing_transaction, [])

        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.amount, Decimal('490.00'))
        self.assertEqual(billing_transaction.senior_discount_amount, Decimal('0.00'))

    def test_recorded_lab_tests_are_itemized(self):
        appointment = self.create_appointment(price=Decimal('350.00'), total_lab_amount=Decimal('395.00'))
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.cbc)
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.urinalysis,
                                               unit_price=Decimal('150.00'))
        billing_transaction = self.create_transaction('745.00', appointment=appointment)
        self.add_item(billing_transaction, '745.00')

        reconcile_transaction(billing_transaction.pk)

        self.assertEqual(self.item_summary(billing_transaction), [
            ('consultation', 'Consultation Appointment', Decimal('350.00')),
            ('laboratory', 'Complete Blood Count (CBC)', Decimal('245.00')),
            ('laboratory', 'Urinalysis', Decimal('150.00')),
        ])
        self.assertEqual(billing_transaction.items.filter(lab_test=self.cbc).count(), 1)

    def test_unrecorded_lab_charges_are_inferred(self):
        appointment = self.create_appointment(price=Decimal('350.00'), total_lab_amount=Decimal('331.00'))
        AppointmentLabTestModel.objects.create(appointment=appointment, lab_test=self.cbc)
        billing_transaction = self.create_transaction('681.00', appointment=appointment)

        reconcile_transaction(billing_transaction.pk)

        # 331 - 245 recorded leaves 86, below every known test
        self.assertEqual(self.item_summary(billing_transaction)[-1],
                         ('laboratory', 'Laboratory Tests', Decimal('86.00')))

    def test_lab_row_without_test_or_price_is_skipped(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        AppointmentLabTestModel.objects.create(appointment=appointment)
        billing_transaction = self.create_transaction('350.00', appointment=appointment)

        reconcile_transaction(billing_transaction.pk)

        self.assertEqual(self.item_summary(billing_transaction), [
            ('consultation', 'Consultation Appointment', Decimal('350.00')),
        ])

    def test_one_consultation_item_per_linked_appointment(self):
        first = self.create_appointment(price=Decimal('350.00'))
        second = self.create_appointment(appointment_type='checkup', price=Decimal('300.00'))
        billing_transaction = self.create_transaction('650.00')
        links = [link_appointment(billing_transaction, first), link_appointment(billing_transaction, second)]

        items = synthesize_items(billing_transaction, links)

        self.assertEqual([i.item_name for i in items if i.item_type == 'consultation'],
                         ['Consultation Appointment', 'Checkup Appointment'])

    def test_item_sum_matches_amount_plus_discount(self):
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('1000.00'))
        billing_transaction = self.create_transaction('1000.00', appointment=appointment, is_senior_citizen=True)

        reconcile_transaction(billing_transaction.pk)

        billing_transaction.refresh_from_db()
        item_total = sum(i.total_price for i in billing_transaction.items.all())
        self.assertEqual(item_total, billing_transaction.amount + billing_transaction.senior_discount_amount)


class ReconcileTransactionTest(BillingTestMixin, TestCase):

    def test_itemized_consultation_left_alone(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        billing_transaction = self.create_transaction('350.00')
        link_appointment(billing_transaction, appointment)
        item = self.add_item(billing_transaction, '350.00', item_type='consultation', name='Consultation')

        result = reconcile_transaction(billing_transaction.pk)

        self.assertFalse(result['reitemized'])
        self.assertEqual(result['items'], [item])

    def test_second_run_is_a_no_op(self):
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('825.00'))
        billing_transaction = self.create_transaction('825.00', appointment=appointment, is_senior_citizen=True)

        reconcile_transaction(billing_transaction.pk)
        first_items = self.item_summary(billing_transaction)
        first_amount = BillingTransactionModel.objects.get(pk=billing_transaction.pk).amount

        result = reconcile_transaction(billing_transaction.pk)

        self.assertFalse(result['reitemized'])
        self.assertEqual(self.item_summary(billing_transaction), first_items)
        self.assertEqual(result['transaction'].amount, first_amount)

    def test_repeated_synthesis_gives_same_items(self):
        billing_transaction = self.create_transaction('825.00', is_senior_citizen=True)

        synthesize_items(billing_transaction, [])
        first_items = self.item_summary(billing_transaction)
        synthesize_items(billing_transaction, [])

        self.assertEqual(self.item_summary(billing_transaction), first_items)
        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.amount, Decimal('660.00'))

    def test_unknown_transaction(self):
        with self.assertRaises(BillingTransactionModel.DoesNotExist):
            reconcile_transaction(999999)

    def test_database_failure_part_way_through_synthesis_rolls_back(self):
        billing_transaction = self.create_transaction('490.00')
        self.add_item(billing_transaction, '490.00')

        real_create = BillingTransactionItemModel.objects.create
        created = []

        def create_then_fail(**kwargs):
            if created:
                raise DatabaseError('disk I/O error')
            created.append(real_create(**kwargs))
            return created[-1]

        with mock.patch.object(BillingTransactionItemModel.objects, 'create', side_effect=create_then_fail):
            with self.assertRaises(ReconciliationError) as context:
                reconcile_transaction(billing_transaction.pk)

        self.assertEqual(len(created), 1)
        self.assertEqual(context.exception.transaction_id, billing_transaction.pk)
        self.assertIsInstance(context.exception.cause, DatabaseError)
        self.assertEqual(self.item_summary(billing_transaction), [('other', 'Payment', Decimal('490.00'))])
        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.amount, Decimal('490.00'))
        self.assertFalse(billing_transaction.is_itemized)

    def test_unpriceable_lab_row_does_not_trigger_rebuild_again(self):
        appointment = self.create_appointment(price=Decimal('350.00'))
        AppointmentLabTestModel.objects.create(appointment=appointment)
        billing_transaction = self.create_transaction('350.00', appointment=appointment)

        first = reconcile_transaction(billing_transaction.pk)
        first_items = self.item_summary(billing_transaction)
        second = reconcile_transaction(billing_transaction.pk)

        self.assertTrue(first['reitemized'])
        self.assertFalse(second['reitemized'])
        self.assertEqual(self.item_summary(billing_transaction), first_items)

    def test_manual_base_price_below_consultation_price(self):
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('200.00'))
        self.assertEqual(base_consultation_price(appointment, BillingPolicy()), Decimal('200.00'))


class BillingServicesTest(BillingTestMixin, TestCase):

    def test_create_from_appointments(self):
        first = self.create_appointment(price=Decimal('350.00'), total_lab_amount=Decimal('245.00'))
        AppointmentLabTestModel.objects.create(appointment=first, lab_test=self.cbc)
        second = self.create_appointment(appointment_type='checkup')

        billing_transaction = create_transaction_from_appointments([first.id, second.id], 'cash')

        self.assertTrue(billing_transaction.transaction_code.startswith('TXN-'))
        self.assertEqual(billing_transaction.amount, Decimal('895.00'))
        self.assertEqual(billing_transaction.appointment_links.count(), 2)
        self.assertEqual(
            set(AppointmentModel.objects.values_list('billing_status', flat=True)), {'in_transaction'}
        )
        self.assertEqual(self.item_summary(billing_transaction), [
            ('consultation', 'Consultation Appointment', Decimal('350.00')),
            ('laboratory', 'Complete Blood Count (CBC)', Decimal('245.00')),
            ('consultation', 'Checkup Appointment', Decimal('300.00')),
        ])

    def test_create_from_appointments_with_senior_discount(self):
        appointment = self.create_appointment(price=Decimal('350.00'))

        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash', is_senior_citizen=True)

        self.assertEqual(billing_transaction.amount, Decimal('280.00'))
        self.assertEqual(billing_transaction.senior_discount_amount, Decimal('70.00'))

    def test_unapproved_appointments_rejected(self):
        appointment = self.create_appointment(status='pending')

        with self.assertRaisesMessage(AppointmentSelectionError, 'have not been approved yet'):
            create_transaction_from_appointments([appointment.id], 'cash')

    def test_already_billed_appointments_rejected(self):
        appointment = self.create_appointment(billing_status='in_transaction')

        with self.assertRaisesMessage(AppointmentSelectionError, 'No valid pending appointments selected.'):
            create_transaction_from_appointments([appointment.id], 'cash')

    def test_transaction_codes_are_sequential(self):
        first = self.create_transaction('100.00')
        second = self.create_transaction('100.00')
        self.assertEqual(int(second.transaction_code[4:]), int(first.transaction_code[4:]) + 1)

    def test_manual_transaction(self):
        billing_transaction = create_manual_transaction(
            self.patient,
            [
                {'item_type': 'medicine', 'item_name': 'Paracetamol', 'quantity': 2, 'unit_price': Decimal('25.00')},
                {'item_type': 'procedure', 'item_name': 'Wound dressing', 'quantity': 1,
                 'unit_price': Decimal('150.00')},
            ],
            is_senior_citizen=True,
        )

        self.assertTrue(billing_transaction.is_itemized)
        self.assertEqual(billing_transaction.amount, Decimal('160.00'))
        self.assertEqual(billing_transaction.senior_discount_amount, Decimal('40.00'))
        self.assertEqual(billing_transaction.items.get(item_name='Paracetamol').total_price, Decimal('50.00'))

    def test_manual_transaction_needs_items(self):
        with self.assertRaises(BillingError):
            create_manual_transaction(self.patient, [])

    def test_mark_paid_updates_links_and_appointments(self):
        appointment = self.create_appointment()
        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash')

        mark_transaction_paid(billing_transaction, 'cash', payment_reference='OR-1001')

        billing_transaction.refresh_from_db()
        appointment.refresh_from_db()
        self.assertEqual(billing_transaction.status, 'paid')
        self.assertEqual(billing_transaction.payment_reference, 'OR-1001')
        self.assertEqual(appointment.billing_status, 'paid')
        self.assertEqual(billing_transaction.appointment_links.get().status, 'paid')

        with self.assertRaises(TransactionStateError):
            mark_transaction_paid(billing_transaction, 'cash')

    def test_cancel(self):
        appointment = self.create_appointment()
        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash')

        cancel_transaction(billing_transaction)

        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.status, 'cancelled')
        self.assertEqual(billing_transaction.appointment_links.get().status, 'cancelled')
        with self.assertRaises(TransactionStateError):
            cancel_transaction(billing_transaction)

    def test_update_status(self):
        billing_transaction = self.create_transaction('350.00')
        update_transaction_status(billing_transaction, 'draft')
        billing_transaction.refresh_from_db()
        self.assertEqual(billing_transaction.status, 'draft')

        with self.assertRaises(BillingError):
            update_transaction_status(billing_transaction, 'lost')

    def test_update_status_to_paid_settles_appointments(self):
        appointment = self.create_appointment()
        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash')

        update_transaction_status(billing_transaction, 'paid')

        appointment.refresh_from_db()
        self.assertEqual(appointment.billing_status, 'paid')
        self.assertEqual(billing_transaction.appointment_links.get().status, 'paid')

    def test_update_status_to_cancelled_keeps_appointment_billing_status(self):
        appointment = self.create_appointment()
        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash')

        update_transaction_status(billing_transaction, 'cancelled')

        appointment.refresh_from_db()
        self.assertEqual(appointment.billing_status, 'in_transaction')
        self.assertEqual(billing_transaction.appointment_links.get().status, 'cancelled')

    def test_delete_releases_appointments(self):
        appointment = self.create_appointment()
        billing_transaction = create_transaction_from_appointments([appointment.id], 'cash')

        delete_transaction(billing_transaction)

        appointment.refresh_from_db()
        self.assertFalse(BillingTransactionModel.objects.filter(pk=billing_transaction.pk).exists())
        self.assertEqual(appointment.billing_status, 'pending')
        self.assertFalse(AppointmentBillingLinkModel.objects.exists())

    def test_paid_transaction_cannot_be_deleted(self):
        billing_transaction = self.create_transaction('350.00', status='paid')
        with self.assertRaises(TransactionStateError):
            delete_transaction(billing_transaction)


class DoctorPaymentServicesTest(BillingTestMixin, TestCase):

    def test_net_payment(self):
        payment = create_doctor_payment(
            self.doctor, '15000.00', self.today,
            deductions='1250.50', holiday_pay='800.00', incentives='2000.00',
        )

        payment.refresh_from_db()
        self.assertEqual(payment.net_payment, Decimal('16549.50'))
        self.assertEqual(payment.status, 'pending')
        self.assertIsNone(payment.paid_at)

    def test_net_payment_recomputed_on_save(self):
        payment = create_doctor_payment(self.doctor, '10000.00', self.today)
        payment.deductions = Decimal('500.00')
        payment.save()

        payment.refresh_from_db()
        self.assertEqual(payment.net_payment, Decimal('9500.00'))

    def test_negative_amounts_rejected(self):
        with self.assertRaises(BillingError):
            create_doctor_payment(self.doctor, '-1.00', self.today)
        with self.assertRaises(BillingError):
            create_doctor_payment(self.doctor, '1000.00', self.today, deductions='1000.01')
        self.assertFalse(DoctorPaymentModel.objects.exists())

    def test_unknown_status_rejected(self):
        with self.assertRaises(BillingError):
            create_doctor_payment(self.doctor, '1000.00', self.today, status='refunded')

    def test_created_as_paid(self):
        payment = create_doctor_payment(self.doctor, '1000.00', self.today, status='paid')
        self.assertIsNotNone(payment.paid_at)

    def test_mark_paid(self):
        payment = create_doctor_payment(self.doctor, '12000.00', self.today)

        mark_doctor_payment_paid(payment)

        payment.refresh_from_db()
        self.assertEqual(payment.status, 'paid')
        self.assertIsNotNone(payment.paid_at)
        with self.assertRaises(TransactionStateError):
            mark_doctor_payment_paid(payment)

    def test_cancel(self):
        payment = create_doctor_payment(self.doctor, '12000.00', self.today)

        cancel_doctor_payment(payment)

        payment.refresh_from_db()
        self.assertEqual(payment.status, 'cancelled')
        with self.assertRaises(TransactionStateError):
            mark_doctor_payment_paid(payment)
        with self.assertRaises(TransactionStateError):
            cancel_doctor_payment(payment)


class BillingReportsTest(BillingTestMixin, TestCase):

    def test_daily_report(self):
        paid = self.create_transaction('350.00', status='paid')
        self.add_item(paid, '350.00', item_type='consultation', name='Consultation')
        self.create_transaction('280.00', status='pending', is_senior_citizen=True,
                                senior_discount_amount=Decimal('70.00'))
        self.create_transaction('500.00', status='cancelled')
        self.create_transaction('900.00', status='paid', transaction_date_only=self.today - timedelta(days=1))

        report = daily_report(self.today)

        self.assertEqual(report['transaction_count'], 2)
        self.assertEqual(report['cancelled_count'], 1)
        self.assertEqual(report['total_amount'], Decimal('630.00'))
        self.assertEqual(report['total_senior_discount'], Decimal('70.00'))
        self.assertEqual(report['total_collected'], Decimal('350.00'))
        self.assertEqual(report['by_item_type']['consultation']['total'], Decimal('350.00'))
        self.assertEqual(report['by_status']['cancelled']['count'], 1)

    def test_daily_report_takes_paid_doctor_payouts_off_collections(self):
        self.create_transaction('1350.00', status='paid')
        create_doctor_payment(self.doctor, '1000.00', self.today, incentives='100.00', status='paid')
        create_doctor_payment(self.doctor, '5000.00', self.today)
        create_doctor_payment(self.doctor, '700.00', self.today - timedelta(days=1), status='paid')

        report = daily_report(self.today)

        self.assertEqual(report['total_collected'], Decimal('1350.00'))
        self.assertEqual(report['doctor_payments_paid'], Decimal('1100.00'))
        self.assertEqual(report['net_collected'], Decimal('250.00'))

    def test_hmo_report_groups_provider_spellings(self):
        self.create_transaction('350.00', payment_method='hmo', hmo_provider='Maxicare', status='paid')
        self.create_transaction('490.00', payment_method='hmo', hmo_provider='  maxicare ')
        self.create_transaction('700.00', payment_method='hmo', hmo_provider='Intellicare')
        self.create_transaction('800.00', payment_method='hmo', hmo_provider='Maxicare', status='cancelled')
        self.create_transaction('300.00', payment_method='cash')

        report = hmo_report(self.today, self.today)

        self.assertEqual([g['provider'] for g in report['providers']], ['Intellicare', 'Maxicare'])
        maxicare = report['providers'][1]
        self.assertEqual(maxicare['transaction_count'], 2)
        self.assertEqual(maxicare['paid_amount'], Decimal('350.00'))
        self.assertEqual(maxicare['pending_amount'], Decimal('490.00'))
        self.assertEqual(report['total_amount'], Decimal('1540.00'))

        filtered = hmo_report(self.today, self.today, provider='MAXICARE')
        self.assertEqual(len(filtered['providers']), 1)

    def test_doctor_summary(self):
        other_doctor = StaffModel.objects.create(first_name='Jose', last_name='Rizal')
        self.create_transaction('350.00', status='paid')
        self.create_transaction('490.00', status='paid')
        self.create_transaction('700.00', status='paid', specialist=other_doctor)
        self.create_transaction('999.00', status='pending')

        rows = doctor_summary(self.today, self.today)

        self.assertEqual([(r['specialist_name'], r['total_amount']) for r in rows], [
            ('Maria Santos', Decimal('840.00')),
            ('Jose Rizal', Decimal('700.00')),
        ])


class BillingViewsTest(BillingTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        self.user = User.objects.create_user(username='cashier', password='cashier-pass-123')
        self.client.force_login(self.user)

    def test_login_required(self):
        self.client.logout()
        billing_transaction = self.create_transaction('350.00')
        response = self.client.get(reverse('billing_transaction_detail', args=[billing_transaction.pk]))
        self.assertEqual(response.status_code, 302)

    def test_detail_reconciles(self):
        billing_transaction = self.create_transaction('490.00')
        self.add_item(billing_transaction, '490.00')

        response = self.client.get(reverse('billing_transaction_detail', args=[billing_transaction.pk]))

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertTrue(data['reitemized'])
        self.assertEqual([i['item_name'] for i in data['transaction']['items']], ['Consultation', 'Urinalysis'])
        self.assertEqual(data['transaction']['amount'], 490.0)

    def test_detail_not_found(self):
        response = self.client.get(reverse('billing_transaction_detail', args=[424242]))
        self.assertEqual(response.status_code, 404)

    def test_detail_reports_reconciliation_failure(self):
        billing_transaction = self.create_transaction('490.00')
        with mock.patch('billing.views.reconcile_transaction',
                        side_effect=ReconciliationError('Reconciliation failed')):
            response = self.client.get(reverse('billing_transaction_detail', args=[billing_transaction.pk]))
        self.assertEqual(response.status_code, 500)
        self.assertFalse(response.json()['success'])

    def test_create_from_appointments(self):
        appointment = self.create_appointment()

        response = self.client.post(
            reverse('billing_create_from_appointments'),
            data=json.dumps({'appointment_ids': [appointment.id], 'payment_method': 'cash'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 201)
        billing_transaction = BillingTransactionModel.objects.get()
        self.assertEqual(billing_transaction.created_by, self.user)
        self.assertEqual(response.json()['transaction']['transaction_code'], billing_transaction.transaction_code)

    def test_create_from_unapproved_appointments(self):
        appointment = self.create_appointment(status='pending')

        response = self.client.post(
            reverse('billing_create_from_appointments'),
            data=json.dumps({'appointment_ids': [appointment.id], 'payment_method': 'cash'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('approved', response.json()['error'])

    def test_hmo_requires_provider(self):
        appointment = self.create_appointment()

        response = self.client.post(
            reverse('billing_create_from_appointments'),
            data=json.dumps({'appointment_ids': [appointment.id], 'payment_method': 'hmo'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('hmo_provider', response.json()['errors'])

    def test_manual_transaction(self):
        response = self.client.post(
            reverse('billing_manual_transaction_create'),
            data=json.dumps({
                'patient': self.patient.id,
                'payment_method': 'cash',
                'items': [{'item_type': 'medicine', 'item_name': 'Amoxicillin', 'quantity': 3, 'unit_price': '12.50'}],
            }),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['transaction']['amount'], 37.5)

    def test_manual_transaction_invalid_item(self):
        response = self.client.post(
            reverse('billing_manual_transaction_create'),
            data=json.dumps({
                'patient': self.patient.id,
                'payment_method': 'cash',
                'items': [{'item_type': 'medicine', 'item_name': 'Amoxicillin', 'quantity': 0, 'unit_price': '12.50'}],
            }),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('items', response.json()['errors'])

    def test_non_object_json_body_rejected(self):
        for body in ([1, 2], 'items', 42):
            response = self.client.post(
                reverse('billing_manual_transaction_create'),
                data=json.dumps(body),
                content_type='application/json',
            )
            self.assertEqual(response.status_code, 400)
            self.assertEqual(response.json()['error'], 'Invalid JSON body')

    def test_doctor_payment_lifecycle(self):
        response = self.client.post(
            reverse('billing_doctor_payment_create'),
            data=json.dumps({
                'doctor': self.doctor.id,
                'basic_salary': '8000.00',
                'deductions': '500.00',
                'payment_date': self.today.isoformat(),
            }),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 201)
        payment = response.json()['payment']
        self.assertEqual(payment['net_payment'], 7500.0)
        self.assertEqual(payment['status'], 'pending')

        url = reverse('billing_doctor_payment_mark_paid', args=[payment['id']])
        self.assertEqual(self.client.post(url).status_code, 200)
        self.assertEqual(self.client.post(url).status_code, 409)

        response = self.client.get(reverse('billing_daily_report'), {'date': self.today.isoformat()})
        self.assertEqual(response.json()['doctor_payments_paid'], 7500.0)
        self.assertEqual(response.json()['net_collected'], -7500.0)

    def test_doctor_payment_deductions_above_gross(self):
        response = self.client.post(
            reverse('billing_doctor_payment_create'),
            data=json.dumps({
                'doctor': self.doctor.id,
                'basic_salary': '100.00',
                'deductions': '500.00',
                'payment_date': self.today.isoformat(),
            }),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)
        self.assertFalse(DoctorPaymentModel.objects.exists())

    def test_mark_paid_twice(self):
        billing_transaction = self.create_transaction('350.00')
        url = reverse('billing_mark_paid', args=[billing_transaction.pk])

        first = self.client.post(url, data=json.dumps({'payment_method': 'cash'}), content_type='application/json')
        second = self.client.post(url, data=json.dumps({'payment_method': 'cash'}), content_type='application/json')

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 409)

    def test_cancel_and_delete(self):
        billing_transaction = self.create_transaction('350.00')

        response = self.client.post(reverse('billing_cancel', args=[billing_transaction.pk]))
        self.assertEqual(response.status_code, 200)

        response = self.client.post(reverse('billing_delete', args=[billing_transaction.pk]))
        self.assertEqual(response.status_code, 409)

    def test_update_status(self):
        billing_transaction = self.create_transaction('350.00')
        response = self.client.post(
            reverse('billing_update_status', args=[billing_transaction.pk]),
            data=json.dumps({'status': 'draft'}),
            content_type='application/json',
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], 'draft')

    def test_reports(self):
        self.create_transaction('350.00', status='paid', payment_method='hmo', hmo_provider='Maxicare')
        day = self.today.isoformat()

        daily = self.client.get(reverse('billing_daily_report'), {'date': day})
        hmo = self.client.get(reverse('billing_hmo_report'), {'start_date': day, 'end_date': day})
        doctors = self.client.get(reverse('billing_doctor_summary'), {'start_date': day, 'end_date': day})

        self.assertEqual(daily.json()['total_collected'], 350.0)
        self.assertEqual(hmo.json()['providers'][0]['provider'], 'Maxicare')
        self.assertEqual(doctors.json()['doctors'][0]['total_amount'], 350.0)

    def test_report_rejects_inverted_range(self):
        response = self.client.get(reverse('billing_hmo_report'), {
            'start_date': self.today.isoformat(),
            'end_date': (self.today - timedelta(days=1)).isoformat(),
        })
        self.assertEqual(response.status_code, 400)


class FixTransactionItemizationCommandTest(BillingTestMixin, TestCase):

    def setUp(self):
        super().setUp()
        appointment = self.create_appointment(appointment_type='manual_transaction', price=Decimal('825.00'))
        self.billing_transaction = self.create_transaction('825.00')
        link_appointment(self.billing_transaction, appointment)
        self.add_item(self.billing_transaction, '825.00')

    def test_dry_run_changes_nothing(self):
        out = StringIO()
        call_command('fix_transaction_itemization', dry_run=True, stdout=out)

        self.assertIn('Would rebuild 1 of 1', out.getvalue())
        self.assertEqual(self.item_summary(self.billing_transaction), [('other', 'Payment', Decimal('825.00'))])

    def test_rebuilds_linked_transactions(self):
        out = StringIO()
        call_command('fix_transaction_itemization', stdout=out)

        self.assertIn('Successfully rebuilt 1 of 1', out.getvalue())
        self.assertEqual(self.billing_transaction.items.count(), 4)

    def test_single_transaction_by_code(self):
        other = self.create_transaction('490.00')
        self.add_item(other, '490.00')

        call_command('fix_transaction_itemization', other.transaction_code, stdout=StringIO())

        self.assertEqual(other.items.count(), 2)
        self.assertEqual(self.billing_transaction.items.count(), 1)

    def test_failure_does_not_stop_the_scan(self):
        out = StringIO()
        err = StringIO()
        with mock.patch('billing.management.commands.fix_transaction_itemization.reconcile_transaction',
                        side_effect=ReconciliationError('Reconciliation failed', cause=DatabaseError('locked'))):
            call_command('fix_transaction_itemization', stdout=out, stderr=err)

        self.assertIn('failed', err.getvalue())
        self.assertIn('1 transactions failed', out.getvalue())

    def test_writes_report(self):
        with tempfile.TemporaryDirectory() as directory:
            path = os.path.join(directory, 'itemization.xlsx')
            call_command('fix_transaction_itemization', report=path, stdout=StringIO())

            worksheet = openpyxl.load_workbook(path).active
            self.assertEqual(worksheet.cell(row=1, column=3).value, 'Transaction Code')
            self.assertEqual(worksheet.cell(row=2, column=3).value, self.billing_transaction.transaction_code)
            self.assertEqual(worksheet.cell(row=2, column=7).value, 'Yes')
