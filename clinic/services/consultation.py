"""
Consultation recording.

Saving a consultation writes the doctor's notes, the prescription and the
lab requests and hands the appointment over to the pharmacy, all in one
transaction: either everything is recorded or nothing is.
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import bleach
from django.db import DatabaseError, transaction
from rest_framework.exceptions import ValidationError

from clinic.exceptions import ConsultationSaveFailed, NotFound
from clinic.models import (
    Appointment, LabReport, LabTestType, Medicine, Prescription, PrescriptionItem, User,
)
from clinic.services.workflow import apply_transition, lock_appointment

logger = logging.getLogger(__name__)


def _clean(text: Optional[str]) -> str:
    return bleach.clean((text or '').strip(), strip=True)


def suggested_quantity(frequency: Optional[str], duration_days: int) -> int:
    """Units to dispense for a ``1-0-1`` style frequency over ``duration_days``.

    Mirrors the prescribing screen: the number of dash separated segments
    times the number of days.
    """
    segments = len(frequency.split('-')) if frequency else 1
    return max(1, segments) * max(1, duration_days)


def _resolve_medicines(items: list[dict]) -> dict:
    ids = {item['medicine_id'] for item in items}
    medicines = Medicine.objects.in_bulk(ids)
    missing = sorted(ids - set(medicines))
    if missing:
        raise NotFound('Unknown medicine', medicineIds=missing)
    return medicines


def _resolve_lab_tests(lab_test_ids: Iterable[int]) -> list[LabTestType]:
    ordered = list(dict.fromkeys(lab_test_ids))
    tests = LabTestType.objects.in_bulk(ordered)
    missing = [i for i in ordered if i not in tests]
    if missing:
        raise NotFound('Unknown lab test type', labTestIds=missing)
    return [tests[i] for i in ordered]


def save_consultation(
    doctor: User,
    appointment_id,
    notes: str,
    prescription_items: Optional[list[dict]] = None,
    lab_test_ids: Optional[Iterable[int]] = None,
    send_to_lab: bool = False,
) -> dict:
    """Record a finished consultation and move the appointment to ``Pharmacy``.

    ``prescription_items`` are dicts with ``medicine_id``, ``dosage``,
    ``frequency``, ``duration_days``, ``quantity`` and ``notes``.  The
    appointment goes to the pharmacy stage even when nothing is prescribed,
    unless ``send_to_lab`` is set: then it waits in ``Lab`` until every
    requested test is completed.
    """
    prescription_items = prescription_items or []
    lab_test_ids = list(lab_test_ids or [])
    if send_to_lab and not lab_test_ids:
        raise ValidationError({'labTestIds': ['At least one lab test is required to send the patient to the lab']})
    next_status = Appointment.STATUS_LAB if send_to_lab else Appointment.STATUS_PHARMACY

    try:
        with transaction.atomic():
            appointment: Appointment = lock_appointment(appointment_id)
            medicines = _resolve_medicines(prescription_items) if prescription_items else {}
            tests = _resolve_lab_tests(lab_test_ids) if lab_test_ids else []

            apply_transition(appointment, next_status, doctor, reason='consultation saved')
            appointment.doctor_notes = _clean(notes)
            appointment.save(update_fields=['doctor_notes', 'updated_at'])

            prescription = None
            if prescription_items:
                prescription = Prescription.objects.create(appointment=appointment, doctor=doctor)
                PrescriptionItem.objects.bulk_create([
                    PrescriptionItem(
                        prescription=prescription,
                        medicine=medicines[item['medicine_id']],
                        dosage=_clean(item.get('dosage')),
                        frequency=_clean(item.get('frequency')),
                        duration_days=item.get('duration_days') or 1,
                        quantity=item.get('quantity') or suggested_quantity(
                            item.get('frequency'), item.get('duration_days') or 1
                        ),
                        notes=_clean(item.get('notes')),
                    )
                    for item in prescription_items
                ])

            reports = [
                LabReport.objects.create(
                    appointment=appointment,
                    lab_test_type=test,
                    test_name=test.name,
                    price=test.price,
                    status=LabReport.STATUS_REQUESTED,
                    requested_by=doctor,
                )
                for test in tests
            ]
    except DatabaseError as exc:
        logger.exception('Saving consultation for appointment %s failed', appointment_id)
        raise ConsultationSaveFailed() from exc

    logger.info('Consultation saved: appointment=%s items=%s labs=%s',
                appointment.id, len(prescription_items), len(reports))
    return {
        'appointmentId': appointment.id,
        'status': appointment.status,
        'prescriptionId': prescription.id if prescription else None,
        'labReportIds': [r.id for r in reports],
    }
