from django.db import models
from django.core.validators import MinValueValidator


class LabTestModel(models.Model):
    """Catalog of lab tests with their standard price"""
    name = models.CharField(max_length=200, unique=True)
    code = models.CharField(max_length=20, unique=True)

    # Pricing
    price = models.DecimalField(max_digits=10, decimal_places=2, validators=[MinValueValidator(0)])

    sample_type = models.CharField(
        max_length=50,
        choices=[
            ('blood', 'Blood'),
            ('urine', 'Urine'),
            ('stool', 'Stool'),
            ('other', 'Other'),
        ],
        default='blood'
    )

    # Status
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'lab_tests'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"
