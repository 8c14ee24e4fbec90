"""
Itemized billing reconciliation.

Billing transactions are frequently recorded with line items that do not
explain their amount (a single item absorbing consultation and lab charges,
or no consultation line at all). Reconciliation repairs them in three steps:

1. resolve_links: find or create the appointment links of a transaction
2. needs_itemization: decide whether the stored items can be trusted
3. synthesize_items: rebuild consultation and laboratory items, inferring lab
   charges from the known lab test price table when no lab records exist

reconcile_transaction composes the three inside one database transaction with
the billing transaction row locked.
"""
import logging
from decimal import Decimal

from django.db import DatabaseError, transaction
from django.db.models import Q

from appointment.models import AppointmentModel, AppointmentLabTestModel
from billing.exceptions import LookupFailure, ReconciliationError
from billing.models import BillingTransactionModel, BillingTransactionItemModel, AppointmentBillingLinkModel
from billing.pricing import (
    get_billing_policy, base_consultation_price, appointment_type_label, compute_senior_discount, quantize
)

logger = logging.getLogger(__name__)


def link_appointment(billing_transaction, appointment):
    """Create (or return the existing) link between an appointment and a transaction"""
    link, created = AppointmentBillingLinkModel.objects.get_or_create(
        appointment=appointment,
        billing_transaction=billing_transaction,
        defaults={
            'appointment_type': appointment.appointment_type,
            'appointment_price': appointment.price or Decimal('0.00'),
            'status': 'pending',
        }
    )
    if created:
        logger.info(
            f"Linked appointment #{appointment.pk} to transaction {billing_transaction.transaction_code}"
        )
    return link


def resolve_links(billing_transaction):
    """
    Return the appointment links of a billing transaction, creating one when
    none exist yet.

    Existing links are returned untouched. Otherwise the transaction's direct
    appointment reference is linked, and failing that the most recently created
    appointment of the same patient on the billing date that is already marked
    as in a transaction. An empty list means the transaction has no clinical
    appointment behind it.
    """
    links = list(billing_transaction.appointment_links.order_by('id'))
    if links:
        return links

    appointment = None
    if billing_transaction.appointment_id:
        appointment = AppointmentModel.objects.filter(pk=billing_transaction.appointment_id).first()
        if appointment is None:
            logger.warning(
                f"Transaction {billing_transaction.transaction_code} references missing "
                f"appointment #{billing_transaction.appointment_id}"
            )

    if appointment is None:
        appointment = AppointmentModel.latest_in_transaction(
            billing_transaction.patient_id, billing_transaction.billing_date
        )

    if appointment is None:
        logger.debug(f"No appointment found for transaction {billing_transaction.transaction_code}")
        return []

    return [link_appointment(billing_transaction, appointment)]


def _linked_appointment(link):
    try:
        return link.appointment
    except AppointmentModel.DoesNotExist as e:
        raise LookupFailure(f"Appointment #{link.appointment_id} of link #{link.pk} not found") from e


def _linked_appointments(links):
    appointments = []
    for link in links:
        try:
            appointments.append(_linked_appointment(link))
        except LookupFailure as e:
            logger.warning(str(e))
    return appointments


def _fetch_lab_tests(appointment):
    # always hit the table, a prefetched relation may be stale
    return list(
        AppointmentLabTestModel.objects.filter(appointment_id=appointment.pk).select_related('lab_test').order_by('id')
    )


def _has_lab_charges(appointment):
    if appointment.total_lab_amount and appointment.total_lab_amount > 0:
        return True
    # rows without a catalog test or a recorded price never become lab items
    return AppointmentLabTestModel.objects.filter(
        Q(lab_test__isnull=False) | Q(unit_price__isnull=False),
        appointment_id=appointment.pk,
    ).exists()


def needs_itemization(billing_transaction, items, links, policy=None):
    """
    Decide whether the stored items of a transaction must be rebuilt.

    Checks run in order and the first hit wins:
      1. an appointment is linked but there is no consultation item
      2. there is exactly one item, and either
         a. it absorbs the whole payment while the payment exceeds the base
            consultation price and no laboratory item exists, or
         b. a linked appointment carries lab charges and no laboratory item
            exists, whether or not the single item matches the payment

    Reads only; never writes.
    """
    policy = get_billing_policy(policy)

    has_consultation = any(item.item_type == 'consultation' for item in items)
    has_laboratory = any(item.item_type == 'laboratory' for item in items)

    if not has_consultation and links:
        logger.info(f"Transaction {billing_transaction.transaction_code} is linked but has no consultation item")
        return True

    if len(items) != 1:
        if not items and billing_transaction.amount > 0:
            logger.warning(
                f"Transaction {billing_transaction.transaction_code} has no items for amount "
                f"{billing_transaction.amount}"
            )
        return False

    appointments = _linked_appointments(links)
    single_item = items[0]
    payment = quantize(billing_transaction.gross_amount)

    if abs(quantize(single_item.total_price) - payment) < policy.tolerance:
        if appointments:
            base_price = sum((base_consultation_price(a, policy) for a in appointments), Decimal('0.00'))
        else:
            base_price = policy.consultation_price

        if payment - base_price > policy.tolerance and not has_laboratory:
            logger.info(
                f"Transaction {billing_transaction.transaction_code}: single item of {payment} exceeds "
                f"consultation price {base_price}"
            )
            return True

    if not has_laboratory and any(_has_lab_charges(a) for a in appointments):
        logger.info(
            f"Transaction {billing_transaction.transaction_code}: appointment has lab charges but no lab item"
        )
        return True

    return False


def infer_lab_items(remaining, policy=None):
    """
    Greedy match of an unexplained lab amount against the known lab tests.

    Known tests are taken in policy order, each at most once, whenever its price
    fits in what is left. Whatever still exceeds the tolerance afterwards becomes
    one generic laboratory charge.

    Returns:
        list of (name, price) tuples
    """
    policy = get_billing_policy(policy)
    remaining = quantize(remaining)
    inferred = []

    for known_test in policy.known_lab_tests:
        if remaining <= policy.tolerance:
            break
        if known_test.price <= remaining or abs(known_test.price - remaining) < policy.tolerance:
            inferred.append((known_test.name, known_test.price))
            remaining -= known_test.price

    if remaining > policy.tolerance:
        inferred.append((policy.generic_lab_item_name, remaining))

    return inferred


def _create_item(billing_transaction, item_type, name, description, price, lab_test=None):
    price = quantize(price)
    return BillingTransactionItemModel.objects.create(
        billing_transaction=billing_transaction,
        item_type=item_type,
        item_name=name,
        item_description=description,
        quantity=1,
        unit_price=price,
        total_price=price,
        lab_test=lab_test,
    )


def _create_inferred_items(billing_transaction, remaining, policy):
    items = []
    for name, price in infer_lab_items(remaining, policy):
        if name == policy.generic_lab_item_name:
            description = 'Laboratory charges not matched to a specific test'
        else:
            description = f"Lab test: {name}"
        items.append(_create_item(billing_transaction, 'laboratory', name, description, price))
    return items


def _consultation_description(appointment):
    day = appointment.appointment_date.strftime('%b %d, %Y') if appointment.appointment_date else 'N/A'
    time = appointment.appointment_time.strftime('%I:%M %p').lstrip('0') if appointment.appointment_time else 'N/A'
    return f"Appointment for {appointment.patient_name} on {day} at {time}"


def _lab_item_values(lab_row):
    if lab_row.lab_test is None and lab_row.unit_price is None:
        raise LookupFailure(f"Lab test of appointment lab row #{lab_row.pk} not found and no price recorded")
    name = lab_row.lab_test.name if lab_row.lab_test else 'Laboratory Test'
    return name, lab_row.effective_price, lab_row.lab_test


def _appointment_items(billing_transaction, appointment, policy):
    items = []
    base_price = base_consultation_price(appointment, policy)
    label = appointment_type_label(appointment.appointment_type)

    items.append(_create_item(
        billing_transaction, 'consultation', f"{label} Appointment", _consultation_description(appointment),
        base_price
    ))

    remaining = quantize(appointment.final_total_amount) - base_price

    for lab_row in _fetch_lab_tests(appointment):
        try:
            name, price, lab_test = _lab_item_values(lab_row)
        except LookupFailure as e:
            logger.warning(str(e))
            continue
        items.append(_create_item(
            billing_transaction, 'laboratory', name, f"Lab test: {name}", price, lab_test=lab_test
        ))
        remaining -= price

    if remaining > policy.tolerance:
        logger.info(
            f"Appointment #{appointment.pk}: inferring {remaining} of unrecorded lab charges"
        )
        items.extend(_create_inferred_items(billing_transaction, remaining, policy))

    return items


def synthesize_items(billing_transaction, links, policy=None):
    """
    Replace every item of a billing transaction with consultation and
    laboratory items rebuilt from its linked appointments, then recompute the
    amount and senior citizen discount.

    Without a resolvable appointment the transaction is billed as one
    consultation at the policy price, with the rest of its gross amount
    inferred as lab charges.

    Returns:
        list of the created BillingTransactionItemModel
    """
    policy = get_billing_policy(policy)
    gross_amount = quantize(billing_transaction.gross_amount)

    billing_transaction.items.all().delete()

    appointments = _linked_appointments(links)
    items = []
    if appointments:
        for appointment in appointments:
            items.extend(_appointment_items(billing_transaction, appointment, policy))
    else:
        items.append(_create_item(
            billing_transaction, 'consultation', 'Consultation', 'Consultation', policy.consultation_price
        ))
        remaining = gross_amount - policy.consultation_price
        if remaining > policy.tolerance:
            items.extend(_create_inferred_items(billing_transaction, remaining, policy))

    subtotal = sum((item.total_price for item in items), Decimal('0.00'))
    discount = compute_senior_discount(
        subtotal, billing_transaction.is_senior_citizen, billing_transaction.payment_method, policy
    )

    billing_transaction.is_itemized = True
    billing_transaction.amount = subtotal - discount
    billing_transaction.senior_discount_amount = discount
    billing_transaction.senior_discount_percentage = (
        policy.senior_discount_percentage if discount > 0 else Decimal('0.00')
    )
    billing_transaction.save(update_fields=[
        'is_itemized', 'amount', 'senior_discount_amount', 'senior_discount_percentage', 'updated_at'
    ])

    logger.info(
        f"Rebuilt {len(items)} items for transaction {billing_transaction.transaction_code}: "
        f"subtotal {subtotal}, discount {discount}, amount {billing_transaction.amount}"
    )
    return items


def reconcile_transaction(transaction_id, policy=None):
    """
    Return a billing transaction with trustworthy line items, rebuilding them
    when needed.

    Link resolution, detection and synthesis share one database transaction
    with the billing transaction row locked, so a failure leaves the stored
    items as they were.

    Returns:
        dict with:
            - transaction: the BillingTransactionModel, amounts up to date
            - items: list of its items
            - links: list of its appointment links
            - reitemized: whether the items were rebuilt

    Raises:
        BillingTransactionModel.DoesNotExist: unknown transaction
        ReconciliationError: the database rejected a read or write
    """
    policy = get_billing_policy(policy)

    try:
        with transaction.atomic():
            billing_transaction = BillingTransactionModel.objects.select_for_update().get(pk=transaction_id)
            links = resolve_links(billing_transaction)
            items = list(billing_transaction.items.order_by('id'))

            reitemized = needs_itemization(billing_transaction, items, links, policy)
            if reitemized:
                items = synthesize_items(billing_transaction, links, policy)
    except DatabaseError as e:
        logger.exception(f"Reconciliation of billing transaction #{transaction_id} failed")
        raise ReconciliationError(
            'Reconciliation failed', transaction_id=transaction_id, cause=e
        ) from e

    return {
        'transaction': billing_transaction,
        'items': items,
        'links': links,
        'reitemized': reitemized,
    }
