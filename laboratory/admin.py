from django.contrib import admin
from laboratory.models import LabTestModel


admin.site.register(LabTestModel)
