from django import forms
from django.core.exceptions import ValidationError

from admin_site.model_info import PAYMENT_METHOD, ITEM_TYPE, BILLING_STATUS, DOCTOR_PAYMENT_STATUS
from appointment.models import AppointmentModel
from human_resource.models import StaffModel
from laboratory.models import LabTestModel
from patient.models import PatientModel


class PaymentDetailsForm(forms.Form):
    payment_method = forms.ChoiceField(choices=PAYMENT_METHOD)
    payment_reference = forms.CharField(max_length=255, required=False)
    hmo_provider = forms.CharField(max_length=255, required=False)
    hmo_reference_number = forms.CharField(max_length=255, required=False)
    is_senior_citizen = forms.BooleanField(required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3}))

    def clean_hmo_provider(self):
        return ' '.join((self.cleaned_data.get('hmo_provider') or '').split())

    def clean(self):
        cleaned_data = super().clean()
        if cleaned_data.get('payment_method') == 'hmo' and not cleaned_data.get('hmo_provider'):
            self.add_error('hmo_provider', "HMO provider is required for HMO payments.")
        return cleaned_data


class AppointmentTransactionForm(PaymentDetailsForm):
    appointment_ids = forms.ModelMultipleChoiceField(queryset=AppointmentModel.objects.all())


class TransactionItemForm(forms.Form):
    item_type = forms.ChoiceField(choices=ITEM_TYPE)
    item_name = forms.CharField(max_length=255)
    item_description = forms.CharField(required=False)
    quantity = forms.IntegerField(min_value=1, initial=1)
    unit_price = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2)
    lab_test = forms.ModelChoiceField(queryset=LabTestModel.objects.filter(is_active=True), required=False)

    def clean_item_name(self):
        name = ' '.join((self.cleaned_data.get('item_name') or '').split())
        if not name:
            raise ValidationError("Item name is required.")
        return name


class ManualTransactionForm(PaymentDetailsForm):
    patient = forms.ModelChoiceField(queryset=PatientModel.objects.all())
    specialist = forms.ModelChoiceField(queryset=StaffModel.objects.filter(is_active=True), required=False)
    transaction_date = forms.DateTimeField(required=False)


class MarkPaidForm(forms.Form):
    payment_method = forms.ChoiceField(choices=PAYMENT_METHOD)
    payment_reference = forms.CharField(max_length=255, required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3}))


class TransactionStatusForm(forms.Form):
    status = forms.ChoiceField(choices=BILLING_STATUS)


class DoctorPaymentForm(forms.Form):
    doctor = forms.ModelChoiceField(queryset=StaffModel.objects.filter(role='doctor'))
    basic_salary = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2)
    deductions = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    holiday_pay = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    incentives = forms.DecimalField(min_value=0, max_digits=12, decimal_places=2, required=False)
    payment_date = forms.DateField()
    status = forms.ChoiceField(choices=DOCTOR_PAYMENT_STATUS, required=False)
    notes = forms.CharField(required=False, widget=forms.Textarea(attrs={'rows': 3}))


class DateRangeForm(forms.Form):
    start_date = forms.DateField()
    end_date = forms.DateField()
    provider = forms.CharField(max_length=255, required=False)

    def clean(self):
        cleaned_data = super().clean()
        start_date = cleaned_data.get('start_date')
        end_date = cleaned_data.get('end_date')
        if start_date and end_date and end_date < start_date:
            raise ValidationError("End date cannot be before start date.")
        return cleaned_data
