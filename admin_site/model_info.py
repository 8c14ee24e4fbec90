GENDER = (
    ('male', 'MALE'), ('female', 'FEMALE')
)

STAFF_ROLE = (
    ('doctor', 'DOCTOR'), ('medtech', 'MEDTECH'), ('nurse', 'NURSE')
)

BILLING_STATUS = (
    ('draft', 'DRAFT'), ('pending', 'PENDING'), ('paid', 'PAID'), ('cancelled', 'CANCELLED'),
    ('refunded', 'REFUNDED')
)

# statuses in which a transaction may still be edited, cancelled or removed
OPEN_BILLING_STATUS = ('pending', 'draft')

PAYMENT_METHOD = (
    ('cash', 'CASH'), ('hmo', 'HMO')
)

ITEM_TYPE = (
    ('consultation', 'CONSULTATION'),
    ('laboratory', 'LABORATORY'),
    ('medicine', 'MEDICINE'),
    ('procedure', 'PROCEDURE'),
    ('other', 'OTHER'),
)

LINK_STATUS = (
    ('pending', 'PENDING'), ('paid', 'PAID'), ('cancelled', 'CANCELLED')
)

APPOINTMENT_STATUS = (
    ('pending', 'PENDING'), ('confirmed', 'CONFIRMED'), ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')
)

APPOINTMENT_BILLING_STATUS = (
    ('not_billed', 'NOT BILLED'),
    ('pending', 'PENDING'),
    ('in_transaction', 'IN TRANSACTION'),
    ('paid', 'PAID'),
    # always keep "not_billed" as the first item in the tuple
)

# billing statuses an appointment may carry and still be added to a new transaction
BILLABLE_APPOINTMENT_STATUS = ('', 'pending', 'not_billed')

APPOINTMENT_TYPE = (
    ('general_consultation', 'GENERAL CONSULTATION'),
    ('consultation', 'CONSULTATION'),
    ('checkup', 'CHECKUP'),
    ('cbc', 'COMPLETE BLOOD COUNT (CBC)'),
    ('urinalysis', 'URINALYSIS'),
    ('fecalysis', 'FECALYSIS'),
    ('x-ray', 'X-RAY'),
    ('ultrasound', 'ULTRASOUND'),
    ('manual_transaction', 'MANUAL TRANSACTION'),
)

LAB_TEST_STATUS = (
    ('pending', 'PENDING'), ('completed', 'COMPLETED'), ('cancelled', 'CANCELLED')
)

DOCTOR_PAYMENT_STATUS = (
    ('pending', 'PENDING'), ('paid', 'PAID'), ('cancelled', 'CANCELLED')
)
