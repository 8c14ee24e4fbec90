from django.contrib import admin
from human_resource.models import StaffModel


admin.site.register(StaffModel)
