"""
Billing transaction lifecycle: creation from appointments or manual entry,
payment, cancellation, status changes and removal; doctor payouts.
"""
import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from admin_site.model_info import BILLING_STATUS, ITEM_TYPE, BILLABLE_APPOINTMENT_STATUS, DOCTOR_PAYMENT_STATUS
from appointment.models import AppointmentModel
from billing.exceptions import BillingError, TransactionStateError, AppointmentSelectionError
from billing.models import BillingTransactionModel, BillingTransactionItemModel, DoctorPaymentModel
from billing.pricing import get_billing_policy, compute_senior_discount, quantize
from billing.reconciliation import link_appointment, synthesize_items

logger = logging.getLogger(__name__)


def _lock(billing_transaction):
    return BillingTransactionModel.objects.select_for_update().get(pk=billing_transaction.pk)


def _settle_appointments(billing_transaction):
    billing_transaction.appointment_links.update(status='paid')
    AppointmentModel.objects.filter(
        billing_links__billing_transaction=billing_transaction
    ).update(billing_status='paid')


def create_transaction_from_appointments(appointment_ids, payment_method, created_by=None, is_senior_citizen=False,
                                         hmo_provider='', hmo_reference_number='', payment_reference='',
                                         notes='', policy=None):
    """
    Bill a batch of confirmed appointments in one transaction.

    Every appointment is linked to the new transaction and marked as in a
    transaction; items, amount and senior discount are then built by the
    reconciliation synthesizer.

    Raises:
        AppointmentSelectionError: none of the appointments can be billed
    """
    policy = get_billing_policy(policy)

    with transaction.atomic():
        appointments = list(
            AppointmentModel.objects.select_for_update().filter(
                id__in=appointment_ids,
                status='confirmed',
                billing_status__in=BILLABLE_APPOINTMENT_STATUS,
            ).order_by('appointment_date', 'appointment_time', 'id')
        )

        if not appointments:
            requested = AppointmentModel.objects.filter(id__in=appointment_ids)
            logger.warning(
                f"No billable appointments among {list(appointment_ids)}: "
                f"{list(requested.values_list('id', 'status', 'billing_status'))}"
            )
            if requested.exclude(status='confirmed').exists():
                raise AppointmentSelectionError(
                    'Selected appointments have not been approved yet. '
                    'Please approve them first before creating billing transactions.'
                )
            raise AppointmentSelectionError('No valid pending appointments selected.')

        first_appointment = appointments[0]
        now = timezone.now()
        gross_amount = sum((quantize(a.final_total_amount) for a in appointments), Decimal('0.00'))

        billing_transaction = BillingTransactionModel.objects.create(
            patient_id=first_appointment.patient_id,
            specialist_id=first_appointment.specialist_id,
            appointment=first_appointment,
            amount=gross_amount,
            payment_method=payment_method,
            payment_reference=payment_reference or '',
            hmo_provider=hmo_provider or '',
            hmo_reference_number=hmo_reference_number or '',
            is_senior_citizen=is_senior_citizen,
            status='pending',
            notes=notes or f"Payment for {len(appointments)} appointment(s)",
            transaction_date=now,
            transaction_date_only=timezone.localdate(now),
            created_by=created_by,
        )

        links = [link_appointment(billing_transaction, appointment) for appointment in appointments]
        AppointmentModel.objects.filter(id__in=[a.id for a in appointments]).update(billing_status='in_transaction')

        synthesize_items(billing_transaction, links, policy)

    logger.info(
        f"Created transaction {billing_transaction.transaction_code} for {len(appointments)} appointment(s), "
        f"amount {billing_transaction.amount}"
    )
    return billing_transaction


def create_manual_transaction(patient, items, payment_method='cash', specialist=None, created_by=None,
                              is_senior_citizen=False, hmo_provider='', hmo_reference_number='',
                              payment_reference='', notes='', transaction_date=None, policy=None):
    """
    Record a payment entered by hand with explicit line items.

    Args:
        items: list of dicts with item_type, item_name, quantity, unit_price and
            optionally item_description and lab_test

    Raises:
        BillingError: no items, or an item with an unknown type or invalid amount
    """
    policy = get_billing_policy(policy)
    if not items:
        raise BillingError('At least one item is required.')

    valid_types = dict(ITEM_TYPE)
    subtotal = Decimal('0.00')
    for item in items:
        if item.get('item_type') not in valid_types:
            raise BillingError(f"Unknown item type: {item.get('item_type')}")
        quantity = int(item.get('quantity') or 1)
        unit_price = quantize(item.get('unit_price') or 0)
        if quantity < 1 or unit_price < 0:
            raise BillingError(f"Invalid quantity or price for item {item.get('item_name')}")
        subtotal += unit_price * quantity

    discount = compute_senior_discount(subtotal, is_senior_citizen, payment_method, policy)
    transaction_date = transaction_date or timezone.now()

    with transaction.atomic():
        billing_transaction = BillingTransactionModel.objects.create(
            patient=patient,
            specialist=specialist,
            amount=subtotal - discount,
            payment_method=payment_method,
            payment_reference=payment_reference or '',
            hmo_provider=hmo_provider or '',
            hmo_reference_number=hmo_reference_number or '',
            is_senior_citizen=is_senior_citizen,
            senior_discount_amount=discount,
            senior_discount_percentage=policy.senior_discount_percentage if discount > 0 else Decimal('0.00'),
            is_itemized=True,
            status='pending',
            notes=notes or '',
            transaction_date=transaction_date,
            transaction_date_only=timezone.localdate(transaction_date),
            created_by=created_by,
        )

        for item in items:
            quantity = int(item.get('quantity') or 1)
            unit_price = quantize(item.get('unit_price') or 0)
            BillingTransactionItemModel.objects.create(
                billing_transaction=billing_transaction,
                item_type=item['item_type'],
                item_name=item['item_name'],
                item_description=item.get('item_description') or '',
                quantity=quantity,
                unit_price=unit_price,
                total_price=unit_price * quantity,
                lab_test=item.get('lab_test'),
            )

    logger.info(
        f"Created manual transaction {billing_transaction.transaction_code} with {len(items)} item(s), "
        f"amount {billing_transaction.amount}"
    )
    return billing_transaction


def mark_transaction_paid(billing_transaction, payment_method, payment_reference='', notes='', user=None):
    """Settle a pending transaction together with its appointment links and appointments"""
    with transaction.atomic():
        billing_transaction = _lock(billing_transaction)
        if not billing_transaction.can_be_paid():
            raise TransactionStateError(
                f"Transaction {billing_transaction.transaction_code} is {billing_transaction.status} "
                f"and cannot be paid."
            )

        billing_transaction.status = 'paid'
        billing_transaction.payment_method = payment_method
        billing_transaction.payment_reference = payment_reference or ''
        if notes:
            billing_transaction.notes = notes
        billing_transaction.updated_by = user
        billing_transaction.save()
        _settle_appointments(billing_transaction)

    logger.info(f"Transaction {billing_transaction.transaction_code} marked as paid via {payment_method}")
    return billing_transaction


def cancel_transaction(billing_transaction, user=None):
    with transaction.atomic():
        billing_transaction = _lock(billing_transaction)
        if not billing_transaction.can_be_cancelled():
            raise TransactionStateError(
                f"Transaction {billing_transaction.transaction_code} is {billing_transaction.status} "
                f"and cannot be cancelled."
            )

        billing_transaction.status = 'cancelled'
        billing_transaction.updated_by = user
        billing_transaction.save()
        billing_transaction.appointment_links.update(status='cancelled')

    logger.info(f"Transaction {billing_transaction.transaction_code} cancelled")
    return billing_transaction


def update_transaction_status(billing_transaction, status, user=None):
    if status not in dict(BILLING_STATUS):
        raise BillingError(f"Unknown transaction status: {status}")

    with transaction.atomic():
        billing_transaction = _lock(billing_transaction)
        previous_status = billing_transaction.status
        billing_transaction.status = status
        billing_transaction.updated_by = user
        billing_transaction.save()

        if status == 'paid':
            _settle_appointments(billing_transaction)
        elif status == 'cancelled':
            billing_transaction.appointment_links.update(status='cancelled')

    logger.info(f"Transaction {billing_transaction.transaction_code} status {previous_status} -> {status}")
    return billing_transaction


def delete_transaction(billing_transaction):
    """
    Remove an open transaction. Its appointments go back to pending billing so
    they can be billed again.
    """
    with transaction.atomic():
        billing_transaction = _lock(billing_transaction)
        if not billing_transaction.can_be_cancelled():
            raise TransactionStateError(
                f"Transaction {billing_transaction.transaction_code} is {billing_transaction.status} "
                f"and cannot be deleted."
            )

        transaction_code = billing_transaction.transaction_code
        AppointmentModel.objects.filter(
            billing_links__billing_transaction=billing_transaction,
            billing_status='in_transaction'
        ).update(billing_status='pending')
        billing_transaction.delete()

    logger.info(f"Transaction {transaction_code} deleted")


def create_doctor_payment(doctor, basic_salary, payment_date, deductions=0, holiday_pay=0, incentives=0,
                          status='pending', notes='', created_by=None):
    """
    Record a payout to a doctor. The net payment is salary plus holiday pay and
    incentives, less deductions.

    Raises:
        BillingError: a negative amount, an unknown status or a negative net payment
    """
    if status not in dict(DOCTOR_PAYMENT_STATUS):
        raise BillingError(f"Unknown doctor payment status: {status}")

    amounts = {
        'basic_salary': quantize(basic_salary or 0),
        'deductions': quantize(deductions or 0),
        'holiday_pay': quantize(holiday_pay or 0),
        'incentives': quantize(incentives or 0),
    }
    for field, value in amounts.items():
        if value < 0:
            raise BillingError(f"{field.replace('_', ' ').capitalize()} cannot be negative.")

    payment = DoctorPaymentModel(
        doctor=doctor,
        payment_date=payment_date,
        status=status,
        paid_at=timezone.now() if status == 'paid' else None,
        notes=notes or '',
        created_by=created_by,
        **amounts
    )
    if payment.calculate_net_payment() < 0:
        raise BillingError('Deductions cannot exceed the gross payment.')
    payment.save()

    logger.info(f"Recorded {status} payment of {payment.net_payment} for doctor {doctor} on {payment_date}")
    return payment


def mark_doctor_payment_paid(payment, user=None):
    with transaction.atomic():
        payment = DoctorPaymentModel.objects.select_for_update().get(pk=payment.pk)
        if not payment.can_be_paid():
            raise TransactionStateError(f"Doctor payment #{payment.pk} is {payment.status} and cannot be paid.")

        payment.status = 'paid'
        payment.paid_at = timezone.now()
        payment.updated_by = user
        payment.save()

    logger.info(f"Doctor payment #{payment.pk} for {payment.doctor} marked as paid")
    return payment


def cancel_doctor_payment(payment, user=None):
    with transaction.atomic():
        payment = DoctorPaymentModel.objects.select_for_update().get(pk=payment.pk)
        if not payment.can_be_cancelled():
            raise TransactionStateError(f"Doctor payment #{payment.pk} is {payment.status} and cannot be cancelled.")

        payment.status = 'cancelled'
        payment.updated_by = user
        payment.save()

    logger.info(f"Doctor payment #{payment.pk} for {payment.doctor} cancelled")
    return payment
