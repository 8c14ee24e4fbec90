from django.contrib import admin
from billing.models import BillingTransactionModel, BillingTransactionItemModel, AppointmentBillingLinkModel, \
    BillingTransactionIDGeneratorModel, DoctorPaymentModel


admin.site.register(BillingTransactionModel)
admin.site.register(BillingTransactionItemModel)
admin.site.register(AppointmentBillingLinkModel)
admin.site.register(BillingTransactionIDGeneratorModel)
admin.site.register(DoctorPaymentModel)
