from django.contrib import admin
from appointment.models import AppointmentModel, AppointmentLabTestModel


admin.site.register(AppointmentModel)
admin.site.register(AppointmentLabTestModel)
