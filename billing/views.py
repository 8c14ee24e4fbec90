import json
import logging

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from billing.exceptions import BillingError, ReconciliationError, TransactionStateError
from billing.forms import AppointmentTransactionForm, ManualTransactionForm, TransactionItemForm, MarkPaidForm, \
    TransactionStatusForm, DateRangeForm, DoctorPaymentForm
from billing.models import BillingTransactionModel, DoctorPaymentModel
from billing.reconciliation import reconcile_transaction
from billing.reports import daily_report, hmo_report, doctor_summary
from billing.services import create_transaction_from_appointments, create_manual_transaction, \
    mark_transaction_paid, cancel_transaction, update_transaction_status, delete_transaction, \
    create_doctor_payment, mark_doctor_payment_paid, cancel_doctor_payment

logger = logging.getLogger(__name__)


def _request_data(request):
    """JSON body when sent as JSON, form data otherwise"""
    if request.content_type == 'application/json':
        data = json.loads(request.body or b'{}')
        if not isinstance(data, dict):
            raise ValueError('JSON body must be an object')
        return data
    return request.POST


def _form_errors(form):
    return {
        field: [error['message'] for error in errors]
        for field, errors in form.errors.get_json_data().items()
    }


def _money(value):
    return float(value) if value is not None else 0.0


def _serialize_item(item):
    return {
        'id': item.id,
        'item_type': item.item_type,
        'item_name': item.item_name,
        'item_description': item.item_description,
        'quantity': item.quantity,
        'unit_price': _money(item.unit_price),
        'total_price': _money(item.total_price),
        'lab_test_id': item.lab_test_id,
    }


def _serialize_transaction(billing_transaction, items=None, links=None):
    if items is None:
        items = billing_transaction.items.order_by('id')
    if links is None:
        links = billing_transaction.appointment_links.order_by('id')

    return {
        'id': billing_transaction.id,
        'transaction_code': billing_transaction.transaction_code,
        'patient_id': billing_transaction.patient_id,
        'patient_name': str(billing_transaction.patient) if billing_transaction.patient else None,
        'specialist_id': billing_transaction.specialist_id,
        'specialist_name': str(billing_transaction.specialist) if billing_transaction.specialist else None,
        'amount': _money(billing_transaction.amount),
        'gross_amount': _money(billing_transaction.gross_amount),
        'payment_method': billing_transaction.payment_method,
        'payment_reference': billing_transaction.payment_reference,
        'hmo_provider': billing_transaction.hmo_provider,
        'hmo_reference_number': billing_transaction.hmo_reference_number,
        'status': billing_transaction.status,
        'is_senior_citizen': billing_transaction.is_senior_citizen,
        'senior_discount_amount': _money(billing_transaction.senior_discount_amount),
        'senior_discount_percentage': _money(billing_transaction.senior_discount_percentage),
        'is_itemized': billing_transaction.is_itemized,
        'transaction_date': billing_transaction.transaction_date,
        'billing_date': billing_transaction.billing_date,
        'items': [_serialize_item(item) for item in items],
        'appointments': [
            {
                'appointment_id': link.appointment_id,
                'appointment_type': link.appointment_type,
                'appointment_price': _money(link.appointment_price),
                'status': link.status,
            }
            for link in links
        ],
    }


def _serialize_totals(rows):
    return {key: {'count': row['count'], 'total': _money(row['total'])} for key, row in rows.items()}


@login_required
@require_http_methods(["GET"])
def billing_transaction_detail(request, pk):
    """Transaction with its line items, repaired first when they do not explain the amount"""
    try:
        result = reconcile_transaction(pk)
    except BillingTransactionModel.DoesNotExist:
        return JsonResponse({'success': False, 'error': 'Transaction not found'}, status=404)
    except ReconciliationError:
        return JsonResponse({
            'success': False,
            'error': 'Failed to load transaction. Please try again.'
        }, status=500)

    return JsonResponse({
        'success': True,
        'reitemized': result['reitemized'],
        'transaction': _serialize_transaction(result['transaction'], result['items'], result['links']),
    })


@login_required
@require_http_methods(["POST"])
def billing_create_from_appointments(request):
    try:
        data = _request_data(request)
    except ValueError:
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)

    form = AppointmentTransactionForm(data)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    try:
        billing_transaction = create_transaction_from_appointments(
            [appointment.id for appointment in form.cleaned_data['appointment_ids']],
            form.cleaned_data['payment_method'],
            created_by=request.user,
            is_senior_citizen=form.cleaned_data['is_senior_citizen'],
            hmo_provider=form.cleaned_data['hmo_provider'],
            hmo_reference_number=form.cleaned_data['hmo_reference_number'],
            payment_reference=form.cleaned_data['payment_reference'],
            notes=form.cleaned_data['notes'],
        )
    except BillingError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    return JsonResponse({
        'success': True,
        'message': f'Transaction {billing_transaction.transaction_code} created',
        'transaction': _serialize_transaction(billing_transaction),
    }, status=201)


@login_required
@require_http_methods(["POST"])
def billing_manual_transaction_create(request):
    try:
        data = _request_data(request)
    except ValueError:
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)

    form = ManualTransactionForm(data)
    raw_items = data.get('items') or []
    if isinstance(raw_items, str):
        try:
            raw_items = json.loads(raw_items)
        except ValueError:
            return JsonResponse({'success': False, 'error': 'Invalid items'}, status=400)

    item_forms = [TransactionItemForm(item) for item in raw_items]
    if not form.is_valid() or not all(item_form.is_valid() for item_form in item_forms):
        errors = _form_errors(form)
        item_errors = [_form_errors(item_form) for item_form in item_forms]
        if any(item_errors):
            errors['items'] = item_errors
        return JsonResponse({'success': False, 'errors': errors}, status=400)

    try:
        billing_transaction = create_manual_transaction(
            form.cleaned_data['patient'],
            [item_form.cleaned_data for item_form in item_forms],
            payment_method=form.cleaned_data['payment_method'],
            specialist=form.cleaned_data['specialist'],
            created_by=request.user,
            is_senior_citizen=form.cleaned_data['is_senior_citizen'],
            hmo_provider=form.cleaned_data['hmo_provider'],
            hmo_reference_number=form.cleaned_data['hmo_reference_number'],
            payment_reference=form.cleaned_data['payment_reference'],
            notes=form.cleaned_data['notes'],
            transaction_date=form.cleaned_data['transaction_date'],
        )
    except BillingError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    return JsonResponse({
        'success': True,
        'message': f'Transaction {billing_transaction.transaction_code} created',
        'transaction': _serialize_transaction(billing_transaction),
    }, status=201)


@login_required
@require_http_methods(["POST"])
def billing_mark_paid(request, pk):
    billing_transaction = get_object_or_404(BillingTransactionModel, pk=pk)
    try:
        form = MarkPaidForm(_request_data(request))
    except ValueError:
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    try:
        billing_transaction = mark_transaction_paid(
            billing_transaction,
            form.cleaned_data['payment_method'],
            payment_reference=form.cleaned_data['payment_reference'],
            notes=form.cleaned_data['notes'],
            user=request.user,
        )
    except TransactionStateError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=409)

    return JsonResponse({
        'success': True,
        'message': f'Transaction {billing_transaction.transaction_code} marked as paid',
        'transaction': _serialize_transaction(billing_transaction),
    })


@login_required
@require_http_methods(["POST"])
def billing_cancel(request, pk):
    billing_transaction = get_object_or_404(BillingTransactionModel, pk=pk)
    try:
        billing_transaction = cancel_transaction(billing_transaction, user=request.user)
    except TransactionStateError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=409)

    return JsonResponse({
        'success': True,
        'message': f'Transaction {billing_transaction.transaction_code} cancelled',
    })


@login_required
@require_http_methods(["POST"])
def billing_update_status(request, pk):
    billing_transaction = get_object_or_404(BillingTransactionModel, pk=pk)
    try:
        form = TransactionStatusForm(_request_data(request))
    except ValueError:
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    billing_transaction = update_transaction_status(
        billing_transaction, form.cleaned_data['status'], user=request.user
    )
    return JsonResponse({
        'success': True,
        'status': billing_transaction.status,
    })


@login_required
@require_http_methods(["POST", "DELETE"])
def billing_delete(request, pk):
    billing_transaction = get_object_or_404(BillingTransactionModel, pk=pk)
    transaction_code = billing_transaction.transaction_code
    try:
        delete_transaction(billing_transaction)
    except TransactionStateError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=409)

    return JsonResponse({'success': True, 'message': f'Transaction {transaction_code} deleted'})


@login_required
@require_http_methods(["GET"])
def billing_daily_report(request):
    day = timezone.localdate()
    if request.GET.get('date'):
        form = DateRangeForm({'start_date': request.GET['date'], 'end_date': request.GET['date']})
        if not form.is_valid():
            return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)
        day = form.cleaned_data['start_date']

    report = daily_report(day)
    return JsonResponse({
        'success': True,
        'date': report['date'],
        'transaction_count': report['transaction_count'],
        'cancelled_count': report['cancelled_count'],
        'total_amount': _money(report['total_amount']),
        'total_senior_discount': _money(report['total_senior_discount']),
        'total_collected': _money(report['total_collected']),
        'doctor_payments_paid': _money(report['doctor_payments_paid']),
        'net_collected': _money(report['net_collected']),
        'by_status': _serialize_totals(report['by_status']),
        'by_payment_method': _serialize_totals(report['by_payment_method']),
        'by_item_type': _serialize_totals(report['by_item_type']),
    })


@login_required
@require_http_methods(["GET"])
def billing_hmo_report(request):
    form = DateRangeForm(request.GET)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    report = hmo_report(
        form.cleaned_data['start_date'], form.cleaned_data['end_date'], form.cleaned_data['provider'] or None
    )
    return JsonResponse({
        'success': True,
        'start_date': report['start_date'],
        'end_date': report['end_date'],
        'total_amount': _money(report['total_amount']),
        'paid_amount': _money(report['paid_amount']),
        'pending_amount': _money(report['pending_amount']),
        'providers': [
            {
                'provider': group['provider'],
                'transaction_count': group['transaction_count'],
                'total_amount': _money(group['total_amount']),
                'paid_amount': _money(group['paid_amount']),
                'pending_amount': _money(group['pending_amount']),
                'transactions': [
                    dict(row, amount=_money(row['amount'])) for row in group['transactions']
                ],
            }
            for group in report['providers']
        ],
    })


@login_required
@require_http_methods(["GET"])
def billing_doctor_summary(request):
    form = DateRangeForm(request.GET)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    rows = doctor_summary(form.cleaned_data['start_date'], form.cleaned_data['end_date'])
    return JsonResponse({
        'success': True,
        'doctors': [
            dict(row, total_amount=_money(row['total_amount']),
                 total_senior_discount=_money(row['total_senior_discount']))
            for row in rows
        ],
    })


def _serialize_doctor_payment(payment):
    return {
        'id': payment.id,
        'doctor_id': payment.doctor_id,
        'doctor_name': str(payment.doctor),
        'basic_salary': _money(payment.basic_salary),
        'deductions': _money(payment.deductions),
        'holiday_pay': _money(payment.holiday_pay),
        'incentives': _money(payment.incentives),
        'net_payment': _money(payment.net_payment),
        'payment_date': payment.payment_date,
        'status': payment.status,
        'paid_at': payment.paid_at,
    }


@login_required
@require_http_methods(["POST"])
def billing_doctor_payment_create(request):
    try:
        form = DoctorPaymentForm(_request_data(request))
    except ValueError:
        return JsonResponse({'success': False, 'error': 'Invalid JSON body'}, status=400)
    if not form.is_valid():
        return JsonResponse({'success': False, 'errors': _form_errors(form)}, status=400)

    try:
        payment = create_doctor_payment(
            form.cleaned_data['doctor'],
            form.cleaned_data['basic_salary'],
            form.cleaned_data['payment_date'],
            deductions=form.cleaned_data['deductions'],
            holiday_pay=form.cleaned_data['holiday_pay'],
            incentives=form.cleaned_data['incentives'],
            status=form.cleaned_data['status'] or 'pending',
            notes=form.cleaned_data['notes'],
            created_by=request.user,
        )
    except BillingError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=400)

    return JsonResponse({
        'success': True,
        'message': 'Doctor payment recorded',
        'payment': _serialize_doctor_payment(payment),
    }, status=201)


@login_required
@require_http_methods(["POST"])
def billing_doctor_payment_mark_paid(request, pk):
    payment = get_object_or_404(DoctorPaymentModel, pk=pk)
    try:
        payment = mark_doctor_payment_paid(payment, user=request.user)
    except TransactionStateError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=409)

    return JsonResponse({'success': True, 'payment': _serialize_doctor_payment(payment)})


@login_required
@require_http_methods(["POST"])
def billing_doctor_payment_cancel(request, pk):
    payment = get_object_or_404(DoctorPaymentModel, pk=pk)
    try:
        payment = cancel_doctor_payment(payment, user=request.user)
    except TransactionStateError as e:
        return JsonResponse({'success': False, 'error': str(e)}, status=409)

    return JsonResponse({'success': True, 'payment': _serialize_doctor_payment(payment)})
