from django.contrib import admin
from patient.models import PatientModel, PatientIDGeneratorModel, PatientSettingModel


admin.site.register(PatientModel)
admin.site.register(PatientIDGeneratorModel)
admin.site.register(PatientSettingModel)
