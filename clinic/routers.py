"""
URL mappings for the clinic API.

Trailing slashes are deliberately omitted (``APPEND_SLASH = False``).
"""
from django.urls import path, include

from .auth_views import jwt_logout_view, jwt_refresh_view, login_view, me_view
from .views import appointments, doctor, doctors, health, lab, patient, pharmacy, reception

urlpatterns = [
    path('metrics', include('django_prometheus.urls')),
    path('healthz', health.healthz),

    path('api/auth/login', login_view, name='login_view'),
    path('api/auth/refresh', jwt_refresh_view),
    path('api/auth/logout', jwt_logout_view),
    path('api/auth/me', me_view),

    path('api/appointments/availability', appointments.availability),
    path('api/appointments/book', appointments.book),
    path('api/appointments/cancel', appointments.cancel),
    path('api/appointments/update-status', appointments.update_status),
    path('api/appointments/mine', appointments.my_appointments),
    path('api/appointments/detail', appointments.appointment_detail),

    path('api/doctors', doctors.directory),
    path('api/doctors/specializations', doctors.specializations),

    path('api/doctor/queue', doctor.doctor_queue),
    path('api/doctor/consultation/save', doctor.consultation_save),
    path('api/doctor/patient-history', doctor.patient_history),
    path('api/doctor/medicines', doctor.medicine_search),

    path('api/patient/prescriptions', patient.my_prescriptions),
    path('api/patient/prescriptions/detail', patient.my_prescription_detail),
    path('api/patient/lab-reports', patient.my_lab_reports),
    path('api/patient/family', patient.family),
    path('api/patient/family/link', patient.family_link),

    path('api/lab/test-types', lab.test_types),
    path('api/lab/pending', lab.pending),
    path('api/lab/start', lab.start),
    path('api/lab/complete', lab.complete),

    path('api/pharmacy/pending', pharmacy.pending),
    path('api/pharmacy/prescription', pharmacy.prescription),
    path('api/pharmacy/dispense', pharmacy.dispense),
    path('api/pharmacy/inventory', pharmacy.inventory),

    path('api/reception/board', reception.board),
    path('api/reception/invoice/breakdown', reception.invoice_breakdown_view),
    path('api/reception/invoice/create', reception.invoice_create),
    path('api/reception/family-requests', reception.family_requests),
    path('api/reception/family-requests/review', reception.family_review),
]
