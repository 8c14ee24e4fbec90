"""
Read-only billing summaries: the daily collection report, HMO receivables per
provider and collections per attending doctor.
"""
import logging
from decimal import Decimal

from django.db.models import Q, Sum, Count

from billing.models import BillingTransactionModel, BillingTransactionItemModel, DoctorPaymentModel

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def _on_day(day):
    return Q(transaction_date_only=day) | Q(transaction_date_only__isnull=True, transaction_date__date=day)


def _in_range(start_date, end_date):
    return (
        Q(transaction_date_only__range=(start_date, end_date)) |
        Q(transaction_date_only__isnull=True, transaction_date__date__range=(start_date, end_date))
    )


def normalize_provider(name):
    """Collapse case and whitespace so 'Maxicare ' and 'MAXICARE' group together"""
    return ' '.join((name or '').split()).upper()


def daily_report(day):
    """
    Totals of every transaction billed on a day, broken down by status, payment
    method and item type. Cancelled transactions are counted but excluded from
    collections and item totals. Doctor payouts paid out that day are expenses
    taken off the collections.
    """
    transactions = BillingTransactionModel.objects.filter(_on_day(day))
    active = transactions.exclude(status='cancelled')

    totals = active.aggregate(
        total_amount=Sum('amount'),
        total_discount=Sum('senior_discount_amount'),
        count=Count('id'),
    )
    collected = transactions.filter(status='paid').aggregate(total=Sum('amount'))['total'] or ZERO

    by_status = {
        row['status']: {'count': row['count'], 'total': row['total'] or ZERO}
        for row in transactions.values('status').annotate(count=Count('id'), total=Sum('amount')).order_by('status')
    }
    by_payment_method = {
        row['payment_method']: {'count': row['count'], 'total': row['total'] or ZERO}
        for row in active.values('payment_method').annotate(
            count=Count('id'), total=Sum('amount')
        ).order_by('payment_method')
    }
    by_item_type = {
        row['item_type']: {'count': row['count'], 'total': row['total'] or ZERO}
        for row in BillingTransactionItemModel.objects.filter(
            billing_transaction__in=active
        ).values('item_type').annotate(count=Count('id'), total=Sum('total_price')).order_by('item_type')
    }
    doctor_payments_paid = DoctorPaymentModel.objects.filter(
        payment_date=day, status='paid'
    ).aggregate(total=Sum('net_payment'))['total'] or ZERO

    return {
        'date': day,
        'transaction_count': totals['count'],
        'cancelled_count': transactions.filter(status='cancelled').count(),
        'total_amount': totals['total_amount'] or ZERO,
        'total_senior_discount': totals['total_discount'] or ZERO,
        'total_collected': collected,
        'doctor_payments_paid': doctor_payments_paid,
        'net_collected': collected - doctor_payments_paid,
        'by_status': by_status,
        'by_payment_method': by_payment_method,
        'by_item_type': by_item_type,
    }


def hmo_report(start_date, end_date, provider=None):
    """
    HMO transactions in a date range grouped per provider.

    Provider names are typed in by hand, so grouping ignores case and extra
    whitespace; the first spelling seen is kept for display.
    """
    transactions = BillingTransactionModel.objects.filter(
        _in_range(start_date, end_date),
        payment_method='hmo',
    ).exclude(status='cancelled').exclude(hmo_provider='').order_by('transaction_date', 'id')

    wanted = normalize_provider(provider) if provider else None

    groups = {}
    for billing_transaction in transactions:
        key = normalize_provider(billing_transaction.hmo_provider)
        if wanted and key != wanted:
            continue

        group = groups.setdefault(key, {
            'provider': ' '.join(billing_transaction.hmo_provider.split()),
            'transaction_count': 0,
            'total_amount': ZERO,
            'paid_amount': ZERO,
            'pending_amount': ZERO,
            'transactions': [],
        })
        group['transaction_count'] += 1
        group['total_amount'] += billing_transaction.amount
        if billing_transaction.status == 'paid':
            group['paid_amount'] += billing_transaction.amount
        else:
            group['pending_amount'] += billing_transaction.amount
        group['transactions'].append({
            'transaction_code': billing_transaction.transaction_code,
            'reference_number': billing_transaction.hmo_reference_number,
            'patient': str(billing_transaction.patient) if billing_transaction.patient else 'N/A',
            'date': billing_transaction.billing_date,
            'amount': billing_transaction.amount,
            'status': billing_transaction.status,
        })

    providers = sorted(groups.values(), key=lambda g: g['provider'].upper())
    logger.debug(f"HMO report {start_date} to {end_date}: {len(providers)} provider(s)")

    return {
        'start_date': start_date,
        'end_date': end_date,
        'providers': providers,
        'total_amount': sum((g['total_amount'] for g in providers), ZERO),
        'paid_amount': sum((g['paid_amount'] for g in providers), ZERO),
        'pending_amount': sum((g['pending_amount'] for g in providers), ZERO),
    }


def doctor_summary(start_date, end_date):
    """Paid transactions per attending doctor, highest collection first"""
    rows = BillingTransactionModel.objects.filter(
        _in_range(start_date, end_date),
        status='paid',
        specialist__isnull=False,
    ).values(
        'specialist_id', 'specialist__first_name', 'specialist__last_name'
    ).annotate(
        transaction_count=Count('id'),
        total_amount=Sum('amount'),
        total_senior_discount=Sum('senior_discount_amount'),
    ).order_by('-total_amount', 'specialist__last_name')

    return [
        {
            'specialist_id': row['specialist_id'],
            'specialist_name': f"{row['specialist__first_name']} {row['specialist__last_name']}".strip(),
            'transaction_count': row['transaction_count'],
            'total_amount': row['total_amount'] or ZERO,
            'total_senior_discount': row['total_senior_discount'] or ZERO,
        }
        for row in rows
    ]
