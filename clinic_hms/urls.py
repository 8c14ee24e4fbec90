from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('portal/billing/', include('billing.urls')),
    path('django-admin/', admin.site.urls),
]
