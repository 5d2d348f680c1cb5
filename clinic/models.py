"""
Database models for the clinical workflow.

These models capture the appointment lifecycle and everything hanging off
it: the per-doctor daily queue, status transition history, prescriptions,
pharmacy inventory and dispensing, lab requests and invoices.  Identities
(patients, doctors and staff) are plain users distinguished by ``role``.
"""
from __future__ import annotations

from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator
from django.db import models


class User(AbstractUser):
    """Custom user model carrying the workflow role."""
    ROLE_PATIENT = 'patient'
    ROLE_DOCTOR = 'doctor'
    ROLE_PHARMACIST = 'pharmacist'
    ROLE_RECEPTIONIST = 'receptionist'
    ROLE_LAB_ASSISTANT = 'lab_assistant'
    ROLE_ADMIN = 'admin'
    ROLE_CHOICES = [
        (ROLE_PATIENT, 'Patient'),
        (ROLE_DOCTOR, 'Doctor'),
        (ROLE_PHARMACIST, 'Pharmacist'),
        (ROLE_RECEPTIONIST, 'Receptionist'),
        (ROLE_LAB_ASSISTANT, 'Lab assistant'),
        (ROLE_ADMIN, 'Administrator'),
    ]
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT, db_index=True)

    def __str__(self) -> str:
        return f"{self.username} ({self.role})"

    @property
    def display_name(self) -> str:
        return self.get_full_name() or self.username


class DoctorProfile(models.Model):
    """Doctor specific information, most importantly the consultation fee."""
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='doctor_profile')
    specialization = models.CharField(max_length=120, blank=True)
    registration_number = models.CharField(max_length=50, blank=True)
    consultation_fee = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    contact_number = models.CharField(max_length=20, blank=True)

    def __str__(self) -> str:
        return f"Dr. {self.user.display_name} ({self.specialization or 'general'})"


class PatientProfile(models.Model):
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='patient_profile')
    dob = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, blank=True)
    contact_number = models.CharField(max_length=20, blank=True)
    address = models.TextField(blank=True)

    def __str__(self) -> str:
        return self.user.display_name


class FamilyLink(models.Model):
    """A patient's request to be linked with another patient.

    Links only take effect once a receptionist approves them.
    """
    STATUS_PENDING = 'Pending'
    STATUS_APPROVED = 'Approved'
    STATUS_REJECTED = 'Rejected'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]
    RELATIONSHIP_CHOICES = [
        ('Parent', 'Parent'),
        ('Child', 'Child'),
        ('Spouse', 'Spouse'),
        ('Guardian', 'Guardian'),
    ]

    requester = models.ForeignKey(User, on_delete=models.CASCADE, related_name='family_requests_sent')
    target = models.ForeignKey(User, on_delete=models.CASCADE, related_name='family_requests_received')
    relationship = models.CharField(max_length=20, choices=RELATIONSHIP_CHOICES)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_PENDING, db_index=True)
    reviewed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='family_requests_reviewed'
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['requester', 'target'], name='uniq_family_link_pair'),
        ]

    def __str__(self) -> str:
        return f"FamilyLink({self.requester_id}->{self.target_id}, {self.relationship}, {self.status})"


class DailyQueue(models.Model):
    """Per doctor/day counter row.

    ``last_number`` is the last queue number handed out for the day and is
    only ever read and bumped while the row is locked, which serialises
    concurrent bookings for the same doctor and date.
    """
    STATUS_ACTIVE = 'Active'
    STATUS_CLOSED = 'Closed'
    STATUS_CHOICES = [(STATUS_ACTIVE, 'Active'), (STATUS_CLOSED, 'Closed')]

    doctor = models.ForeignKey(User, on_delete=models.CASCADE, related_name='daily_queues')
    date = models.DateField()
    last_number = models.PositiveIntegerField(default=0)
    current_number = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default=STATUS_ACTIVE)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['doctor', 'date'], name='uniq_daily_queue_doctor_date'),
        ]

    def __str__(self) -> str:
        return f"Queue(d={self.doctor_id}, {self.date}) last={self.last_number}"


class Appointment(models.Model):
    STATUS_BOOKED = 'Booked'
    STATUS_ARRIVED = 'Arrived'
    STATUS_IN_CONSULTATION = 'In_Consultation'
    STATUS_PHARMACY = 'Pharmacy'
    STATUS_LAB = 'Lab'
    STATUS_COMPLETED = 'Completed'
    STATUS_CANCELLED = 'Cancelled'
    STATUS_ABSENT = 'Absent'
    STATUS_CHOICES = [
        (STATUS_BOOKED, 'Booked'),
        (STATUS_ARRIVED, 'Arrived'),
        (STATUS_IN_CONSULTATION, 'In consultation'),
        (STATUS_PHARMACY, 'Pharmacy'),
        (STATUS_LAB, 'Lab'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_ABSENT, 'Absent'),
    ]
    TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_CANCELLED, STATUS_ABSENT})

    patient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='patient_appointments')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='doctor_appointments')
    date = models.DateField()
    time_slot = models.CharField(max_length=5, blank=True)
    queue_number = models.PositiveIntegerField()
    # 预约状态，用于各角色工作列表过滤
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_BOOKED, db_index=True)
    reason = models.TextField(blank=True)
    doctor_notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=['doctor', 'date', 'queue_number'], name='uniq_appointment_queue_number',
            ),
        ]
        indexes = [
            models.Index(fields=['doctor', 'date', 'status'], name='appt_doctor_date_status_idx'),
            models.Index(fields=['date', 'time_slot'], name='appt_date_slot_idx'),
        ]

    def __str__(self) -> str:
        return f"Appointment #{self.queue_number} d={self.doctor_id} {self.date} ({self.status})"


class AppointmentTransition(models.Model):
    """Records a status transition for an appointment."""
    appointment = models.ForeignKey(Appointment, related_name='transitions', on_delete=models.CASCADE)
    from_status = models.CharField(max_length=20, null=True, blank=True)
    to_status = models.CharField(max_length=20)
    operator = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='appointment_transitions'
    )
    timestamp = models.DateTimeField(auto_now_add=True)
    reason = models.CharField(max_length=255, blank=True)

    def __str__(self) -> str:
        return f"{self.appointment_id}: {self.from_status} → {self.to_status}"


# ---------------------------------------------------------------------------
# Pharmacy & inventory
# ---------------------------------------------------------------------------

class Medicine(models.Model):
    brand_name = models.CharField(max_length=255)
    generic_name = models.CharField(max_length=255, blank=True)
    manufacturer = models.CharField(max_length=255, blank=True)
    default_dosage = models.CharField(max_length=64, blank=True)
    default_frequency = models.CharField(max_length=32, blank=True)
    unit = models.CharField(max_length=32, default='tablet')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.brand_name


class InventoryBatch(models.Model):
    """A stocked batch of one medicine.  Batches are consumed soonest-expiry first."""
    medicine = models.ForeignKey(Medicine, on_delete=models.PROTECT, related_name='batches')
    batch_number = models.CharField(max_length=64, blank=True)
    expiry_date = models.DateField(null=True, blank=True)
    stock_level = models.PositiveIntegerField(default=0)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(stock_level__gte=0), name='inventory_stock_non_negative'),
        ]
        indexes = [
            models.Index(fields=['medicine', 'expiry_date'], name='inventory_medicine_expiry_idx'),
        ]

    def __str__(self) -> str:
        return f"{self.medicine_id}/{self.batch_number or self.pk} stock={self.stock_level}"


class Prescription(models.Model):
    appointment = models.OneToOneField(Appointment, on_delete=models.PROTECT, related_name='prescription')
    doctor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='prescriptions')
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Rx {self.pk} for appointment {self.appointment_id}"


class PrescriptionItem(models.Model):
    prescription = models.ForeignKey(Prescription, on_delete=models.CASCADE, related_name='items')
    medicine = models.ForeignKey(Medicine, on_delete=models.PROTECT, related_name='prescription_items')
    dosage = models.CharField(max_length=64, blank=True)
    frequency = models.CharField(max_length=32, blank=True)
    duration_days = models.PositiveIntegerField(default=1)
    quantity = models.PositiveIntegerField()
    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.medicine_id} x{self.quantity} ({self.frequency})"


class Dispensing(models.Model):
    STATUS_ISSUED = 'Issued'
    STATUS_CHOICES = [(STATUS_ISSUED, 'Issued')]

    prescription = models.OneToOneField(Prescription, on_delete=models.PROTECT, related_name='dispensing')
    pharmacist = models.ForeignKey(User, on_delete=models.PROTECT, related_name='dispensings')
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ISSUED)
    dispensed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"Dispensing {self.pk} rx={self.prescription_id}"


class DispensingItem(models.Model):
    dispensing = models.ForeignKey(Dispensing, on_delete=models.CASCADE, related_name='items')
    prescription_item = models.ForeignKey(
        PrescriptionItem, null=True, on_delete=models.SET_NULL, related_name='dispensing_items'
    )
    inventory = models.ForeignKey(
        InventoryBatch, null=True, on_delete=models.SET_NULL, related_name='dispensing_items'
    )
    quantity_issued = models.PositiveIntegerField()
    price_at_issue = models.DecimalField(max_digits=10, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def line_total(self) -> Decimal:
        return self.price_at_issue * self.quantity_issued

    def __str__(self) -> str:
        return f"{self.inventory_id} x{self.quantity_issued} @ {self.price_at_issue}"


# ---------------------------------------------------------------------------
# Laboratory
# ---------------------------------------------------------------------------

class LabTestType(models.Model):
    name = models.CharField(max_length=255, unique=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return self.name


class LabReport(models.Model):
    STATUS_REQUESTED = 'Requested'
    STATUS_PROCESSING = 'Processing'
    STATUS_COMPLETED = 'Completed'
    STATUS_CHOICES = [
        (STATUS_REQUESTED, 'Requested'),
        (STATUS_PROCESSING, 'Processing'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    appointment = models.ForeignKey(Appointment, on_delete=models.PROTECT, related_name='lab_reports')
    lab_test_type = models.ForeignKey(
        LabTestType, null=True, blank=True, on_delete=models.SET_NULL, related_name='reports'
    )
    test_name = models.CharField(max_length=255)
    price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))
    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_REQUESTED, db_index=True)
    requested_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_requests'
    )
    processed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name='lab_processed'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"{self.test_name} ({self.status}) appt={self.appointment_id}"


class LabReportFile(models.Model):
    lab_report = models.ForeignKey(LabReport, on_delete=models.CASCADE, related_name='files')
    file_url = models.URLField(max_length=512)
    file_type = models.CharField(max_length=32, blank=True)
    file_name = models.CharField(max_length=255, blank=True)
    uploaded_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"file {self.pk} report={self.lab_report_id}"


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------

class Invoice(models.Model):
    METHOD_CASH = 'Cash'
    METHOD_CARD = 'Card'
    METHOD_CHOICES = [(METHOD_CASH, 'Cash'), (METHOD_CARD, 'Card')]

    PAYMENT_PENDING = 'Pending'
    PAYMENT_PAID = 'Paid'
    PAYMENT_STATUS_CHOICES = [(PAYMENT_PENDING, 'Pending'), (PAYMENT_PAID, 'Paid')]

    appointment = models.OneToOneField(Appointment, on_delete=models.PROTECT, related_name='invoice')
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_method = models.CharField(max_length=8, choices=METHOD_CHOICES, null=True, blank=True)
    payment_status = models.CharField(max_length=8, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    issued_by = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name='invoices_issued')
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:
        return f"Invoice {self.pk} appt={self.appointment_id} {self.total_amount} ({self.payment_status})"


class InvoiceItem(models.Model):
    SOURCE_CONSULTATION = 'consultation'
    SOURCE_MEDICINE = 'medicine'
    SOURCE_LAB = 'lab'
    SOURCE_CHOICES = [
        (SOURCE_CONSULTATION, 'Consultation'),
        (SOURCE_MEDICINE, 'Medicine'),
        (SOURCE_LAB, 'Lab'),
    ]

    invoice = models.ForeignKey(Invoice, on_delete=models.CASCADE, related_name='items')
    description = models.CharField(max_length=255)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    source_type = models.CharField(max_length=16, choices=SOURCE_CHOICES, blank=True)
    source_ref = models.CharField(max_length=64, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self) -> str:
        return f"{self.description}: {self.amount}"
