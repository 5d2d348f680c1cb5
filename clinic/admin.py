"""
Django admin registrations for the clinic models.
"""
from django.contrib import admin

from .models import (
    Appointment,
    AppointmentTransition,
    DailyQueue,
    Dispensing,
    DispensingItem,
    DoctorProfile,
    FamilyLink,
    InventoryBatch,
    Invoice,
    InvoiceItem,
    LabReport,
    LabReportFile,
    LabTestType,
    Medicine,
    PatientProfile,
    Prescription,
    PrescriptionItem,
    User,
)


@admin.register(User)
class UserAdmin(admin.ModelAdmin):
    list_display = ('username', 'role', 'first_name', 'last_name', 'is_staff', 'is_superuser')
    list_filter = ('role',)
    search_fields = ('username', 'first_name', 'last_name')


@admin.register(DoctorProfile)
class DoctorProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'specialization', 'consultation_fee')
    search_fields = ('user__username', 'specialization')


@admin.register(PatientProfile)
class PatientProfileAdmin(admin.ModelAdmin):
    list_display = ('user', 'gender', 'dob', 'contact_number')
    search_fields = ('user__username', 'contact_number')


@admin.register(DailyQueue)
class DailyQueueAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'date', 'last_number', 'current_number', 'status')
    list_filter = ('status', 'date')


class AppointmentTransitionInline(admin.TabularInline):
    model = AppointmentTransition
    extra = 0
    readonly_fields = ('from_status', 'to_status', 'operator', 'timestamp', 'reason')


@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'date', 'doctor', 'queue_number', 'time_slot', 'patient', 'status')
    list_filter = ('status', 'date')
    search_fields = ('patient__username', 'doctor__username')
    inlines = [AppointmentTransitionInline]


@admin.register(Medicine)
class MedicineAdmin(admin.ModelAdmin):
    list_display = ('brand_name', 'generic_name', 'manufacturer', 'unit')
    search_fields = ('brand_name', 'generic_name')


@admin.register(InventoryBatch)
class InventoryBatchAdmin(admin.ModelAdmin):
    list_display = ('medicine', 'batch_number', 'expiry_date', 'stock_level', 'unit_price')
    list_filter = ('expiry_date',)
    search_fields = ('medicine__brand_name', 'batch_number')


class PrescriptionItemInline(admin.TabularInline):
    model = PrescriptionItem
    extra = 0


@admin.register(Prescription)
class PrescriptionAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'doctor', 'created_at')
    inlines = [PrescriptionItemInline]


class DispensingItemInline(admin.TabularInline):
    model = DispensingItem
    extra = 0


@admin.register(Dispensing)
class DispensingAdmin(admin.ModelAdmin):
    list_display = ('id', 'prescription', 'pharmacist', 'status', 'dispensed_at')
    inlines = [DispensingItemInline]


@admin.register(LabTestType)
class LabTestTypeAdmin(admin.ModelAdmin):
    list_display = ('name', 'price')
    search_fields = ('name',)


class LabReportFileInline(admin.TabularInline):
    model = LabReportFile
    extra = 0


@admin.register(LabReport)
class LabReportAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'test_name', 'price', 'status', 'processed_by')
    list_filter = ('status',)
    inlines = [LabReportFileInline]


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('id', 'appointment', 'total_amount', 'payment_method', 'payment_status', 'paid_at')
    list_filter = ('payment_status', 'payment_method')
    inlines = [InvoiceItemInline]


@admin.register(FamilyLink)
class FamilyLinkAdmin(admin.ModelAdmin):
    list_display = ('id', 'requester', 'target', 'relationship', 'status', 'reviewed_by', 'created_at')
    list_filter = ('status', 'relationship')
    search_fields = ('requester__username', 'target__username', 'target__email')
