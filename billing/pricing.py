"""
Billing policy: consultation pricing, the known lab test price table used to
infer lab charges, and the senior citizen discount rule.

The policy is an immutable value built from ``settings.BILLING_POLICY`` so that
deployments can carry their own price tables and tests can inject their own.
"""
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings


def quantize(amount):
    """Safely quantize a decimal amount to 2 decimal places."""
    return Decimal(str(amount)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class KnownLabTest:
    name: str
    price: Decimal


DEFAULT_KNOWN_LAB_TESTS = (
    KnownLabTest('Complete Blood Count (CBC)', Decimal('245.00')),
    KnownLabTest('Urinalysis', Decimal('140.00')),
    KnownLabTest('Fecalysis', Decimal('90.00')),
)


@dataclass(frozen=True)
class BillingPolicy:
    consultation_price: Decimal = Decimal('350.00')
    manual_transaction_type: str = 'manual_transaction'
    # walked in order when inferring un-itemized lab charges
    known_lab_tests: tuple = field(default=DEFAULT_KNOWN_LAB_TESTS)
    generic_lab_item_name: str = 'Laboratory Tests'
    senior_discount_rate: Decimal = Decimal('0.20')
    hmo_payment_method: str = 'hmo'
    tolerance: Decimal = Decimal('0.01')

    @classmethod
    def from_settings(cls):
        """Build the policy from settings.BILLING_POLICY, keeping defaults for missing keys"""
        config = getattr(settings, 'BILLING_POLICY', None) or {}
        kwargs = {}

        if config.get('CONSULTATION_PRICE') is not None:
            kwargs['consultation_price'] = quantize(config['CONSULTATION_PRICE'])
        if config.get('MANUAL_TRANSACTION_TYPE'):
            kwargs['manual_transaction_type'] = config['MANUAL_TRANSACTION_TYPE']
        if config.get('KNOWN_LAB_TESTS'):
            kwargs['known_lab_tests'] = tuple(
                KnownLabTest(name, quantize(price)) for name, price in config['KNOWN_LAB_TESTS']
            )
        if config.get('GENERIC_LAB_ITEM_NAME'):
            kwargs['generic_lab_item_name'] = config['GENERIC_LAB_ITEM_NAME']
        if config.get('SENIOR_DISCOUNT_RATE') is not None:
            kwargs['senior_discount_rate'] = Decimal(str(config['SENIOR_DISCOUNT_RATE']))
        if config.get('HMO_PAYMENT_METHOD'):
            kwargs['hmo_payment_method'] = config['HMO_PAYMENT_METHOD']
        if config.get('TOLERANCE') is not None:
            kwargs['tolerance'] = Decimal(str(config['TOLERANCE']))

        return cls(**kwargs)

    @property
    def senior_discount_percentage(self):
        return quantize(self.senior_discount_rate * 100)


def get_billing_policy(policy=None):
    return policy if policy is not None else BillingPolicy.from_settings()


def base_consultation_price(appointment, policy):
    """
    Consultation portion of an appointment's price.

    The raw price is the appointment's recorded price (or its type price when
    none was recorded). Manual transactions record the whole payment as the
    price, so their consultation portion is capped at the policy consultation
    price.
    """
    raw_price = appointment.price
    if raw_price is None:
        raw_price = appointment.calculate_price()
    raw_price = quantize(raw_price)

    if appointment.appointment_type == policy.manual_transaction_type and raw_price >= policy.consultation_price:
        return policy.consultation_price
    return raw_price


def appointment_type_label(appointment_type):
    """Human readable label used to name consultation items"""
    if not appointment_type or appointment_type == 'general_consultation':
        return 'Consultation'
    return appointment_type.replace('_', ' ').replace('-', ' ').title()


def compute_senior_discount(total, is_senior_citizen, payment_method, policy):
    """Senior citizen discount on a pre-discount total; HMO payments get none"""
    if not is_senior_citizen or payment_method == policy.hmo_payment_method:
        return Decimal('0.00')
    return quantize(Decimal(str(total)) * policy.senior_discount_rate)
