from django.urls import path
from billing.views import *

urlpatterns = [

    # Transactions
    path('transaction/from-appointments', billing_create_from_appointments, name='billing_create_from_appointments'),
    path('transaction/manual', billing_manual_transaction_create, name='billing_manual_transaction_create'),
    path('transaction/<int:pk>/detail', billing_transaction_detail, name='billing_transaction_detail'),
    path('transaction/<int:pk>/mark-paid', billing_mark_paid, name='billing_mark_paid'),
    path('transaction/<int:pk>/cancel', billing_cancel, name='billing_cancel'),
    path('transaction/<int:pk>/status', billing_update_status, name='billing_update_status'),
    path('transaction/<int:pk>/delete', billing_delete, name='billing_delete'),

    # Doctor payments
    path('doctor-payment/create', billing_doctor_payment_create, name='billing_doctor_payment_create'),
    path('doctor-payment/<int:pk>/mark-paid', billing_doctor_payment_mark_paid,
         name='billing_doctor_payment_mark_paid'),
    path('doctor-payment/<int:pk>/cancel', billing_doctor_payment_cancel, name='billing_doctor_payment_cancel'),

    # Reports
    path('report/daily', billing_daily_report, name='billing_daily_report'),
    path('report/hmo', billing_hmo_report, name='billing_hmo_report'),
    path('report/doctors', billing_doctor_summary, name='billing_doctor_summary'),
]
