import uuid

from django.contrib.auth.models import User
from django.db import models

from admin_site.model_info import STAFF_ROLE


class StaffModel(models.Model):
    """Doctors, medtechs and nurses that appointments and payments are attributed to"""
    first_name = models.CharField(max_length=50)
    middle_name = models.CharField(max_length=50, null=True, blank=True, default='')
    last_name = models.CharField(max_length=50)
    staff_id = models.CharField(max_length=100, unique=True, blank=True)
    role = models.CharField(max_length=20, choices=STAFF_ROLE, default='doctor')
    specialization = models.CharField(max_length=100, blank=True, default='')
    mobile = models.CharField(max_length=20, blank=True, default='')
    is_active = models.BooleanField(default=True)

    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='staff_created_by')
    created_at = models.DateTimeField(auto_now_add=True, blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True, blank=True, null=True)

    class Meta:
        ordering = ['role', 'last_name', 'first_name']

    def __str__(self):
        if self.middle_name:
            return "{} {} {}".format(self.first_name, self.middle_name, self.last_name)

        return "{} {}".format(self.first_name, self.last_name)

    def save(self, *args, **kwargs):
        if not self.staff_id:
            self.staff_id = f"STF-{uuid.uuid4().hex[:6].upper()}"
        super(StaffModel, self).save(*args, **kwargs)
