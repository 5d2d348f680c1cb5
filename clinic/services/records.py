"""
Read-only medical records: a patient's own prescriptions and lab reports,
and the history a doctor sees during a consultation.
"""
from __future__ import annotations

import logging
from typing import Optional

from clinic.exceptions import NotFound, Unauthorized
from clinic.models import Appointment, Dispensing, LabReport, Prescription, User

logger = logging.getLogger(__name__)

HISTORY_VISIT_LIMIT = 10
HISTORY_PRESCRIPTION_LIMIT = 5


def _prescriptions_for(patient: User):
    return (
        Prescription.objects.select_related('appointment', 'doctor__doctor_profile')
        .prefetch_related('items__medicine')
        .filter(appointment__patient=patient)
        .order_by('-created_at', '-id')
    )


def _prescription_row(prescription: Prescription, dispensed_ids: set) -> dict:
    profile = getattr(prescription.doctor, 'doctor_profile', None)
    return {
        'id': prescription.id,
        'appointmentId': prescription.appointment_id,
        'date': prescription.appointment.date.isoformat(),
        'doctorName': prescription.doctor.display_name,
        'specialization': profile.specialization if profile else '',
        'createdAt': prescription.created_at.strftime('%Y-%m-%d %H:%M'),
        'dispensed': prescription.id in dispensed_ids,
        'items': [
            {
                'id': i.id,
                'medicine': i.medicine.brand_name,
                'genericName': i.medicine.generic_name,
                'unit': i.medicine.unit,
                'dosage': i.dosage,
                'frequency': i.frequency,
                'durationDays': i.duration_days,
                'quantity': i.quantity,
                'notes': i.notes,
            }
            for i in prescription.items.all()
        ],
    }


def _rows(prescriptions) -> list[dict]:
    prescriptions = list(prescriptions)
    dispensed_ids = set(
        Dispensing.objects.filter(prescription__in=prescriptions).values_list('prescription_id', flat=True)
    )
    return [_prescription_row(p, dispensed_ids) for p in prescriptions]


def patient_prescriptions(patient: User, limit: Optional[int] = None) -> list[dict]:
    qs = _prescriptions_for(patient)
    if limit:
        qs = qs[:limit]
    return _rows(qs)


def patient_prescription(patient: User, prescription_id) -> dict:
    """One of the patient's own prescriptions; anyone else's reads as missing."""
    prescription = _prescriptions_for(patient).filter(id=prescription_id).first()
    if not prescription:
        raise NotFound('Prescription not found')
    return _rows([prescription])[0]


def patient_lab_reports(patient: User) -> list[dict]:
    qs = (
        LabReport.objects.select_related('appointment__doctor')
        .prefetch_related('files')
        .filter(appointment__patient=patient)
        .order_by('-created_at', '-id')
    )
    return [
        {
            'id': r.id,
            'appointmentId': r.appointment_id,
            'date': r.appointment.date.isoformat(),
            'doctorName': r.appointment.doctor.display_name,
            'testName': r.test_name,
            'status': r.status,
            'requestedAt': r.created_at.strftime('%Y-%m-%d %H:%M'),
            'files': [
                {'fileUrl': f.file_url, 'fileName': f.file_name, 'fileType': f.file_type}
                for f in r.files.all()
            ],
        }
        for r in qs
    ]


def patient_history(doctor: User, patient_id) -> dict:
    """Demographics, recent visits and prescriptions for a patient.

    Only doctors who have seen (or will see) the patient get the history.
    """
    if getattr(doctor, 'role', None) != User.ROLE_DOCTOR:
        raise Unauthorized('Only doctors can view patient history')
    patient = (
        User.objects.select_related('patient_profile')
        .filter(id=patient_id, role=User.ROLE_PATIENT)
        .first()
    )
    if not patient:
        raise NotFound('Patient not found')
    if not Appointment.objects.filter(patient=patient, doctor=doctor).exists():
        logger.warning('Doctor %s asked for history of patient %s without an appointment', doctor.id, patient.id)
        raise Unauthorized('Patient has no appointment with you')

    profile = getattr(patient, 'patient_profile', None)
    visits = (
        Appointment.objects.select_related('doctor__doctor_profile')
        .filter(patient=patient)
        .exclude(status__in=[Appointment.STATUS_BOOKED, Appointment.STATUS_CANCELLED])
        .order_by('-date', '-queue_number')[:HISTORY_VISIT_LIMIT]
    )
    return {
        'profile': {
            'id': patient.id,
            'name': patient.display_name,
            'email': patient.email,
            'dob': profile.dob.isoformat() if profile and profile.dob else None,
            'gender': profile.gender if profile else '',
            'contactNumber': profile.contact_number if profile else '',
        },
        'visits': [
            {
                'id': v.id,
                'date': v.date.isoformat(),
                'status': v.status,
                'doctorName': v.doctor.display_name,
                'specialization': getattr(getattr(v.doctor, 'doctor_profile', None), 'specialization', ''),
                'doctorNotes': v.doctor_notes,
            }
            for v in visits
        ],
        'prescriptions': patient_prescriptions(patient, limit=HISTORY_PRESCRIPTION_LIMIT),
        'labReports': patient_lab_reports(patient),
    }
