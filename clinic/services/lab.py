"""
Lab request processing.
"""
from __future__ import annotations

import logging

from django.db import transaction

from clinic.exceptions import InvalidTransition, NotFound, Unauthorized
from clinic.models import Appointment, LabReport, LabReportFile, LabTestType, User
from clinic.services.workflow import apply_transition, lock_appointment

logger = logging.getLogger(__name__)

R = LabReport

REPORT_TRANSITIONS = {
    (R.STATUS_REQUESTED, R.STATUS_PROCESSING),
    (R.STATUS_REQUESTED, R.STATUS_COMPLETED),
    (R.STATUS_PROCESSING, R.STATUS_COMPLETED),
}


def _require_lab_assistant(actor: User) -> None:
    if getattr(actor, 'role', None) != User.ROLE_LAB_ASSISTANT:
        raise Unauthorized('Only lab assistants can process lab tests')


def _lock_report(report_id) -> LabReport:
    report = LabReport.objects.select_for_update().filter(id=report_id).first()
    if not report:
        raise NotFound('Lab report not found')
    return report


def _move(report: LabReport, new_status: str, actor: User) -> None:
    if (report.status, new_status) not in REPORT_TRANSITIONS:
        logger.warning('Rejected lab report %s: %s -> %s', report.id, report.status, new_status)
        raise InvalidTransition(
            f'Cannot move lab report from {report.status} to {new_status}',
            currentStatus=report.status,
        )
    report.status = new_status
    report.processed_by = actor
    report.save(update_fields=['status', 'processed_by', 'updated_at'])


def lab_test_catalogue() -> list[dict]:
    return [
        {'id': t.id, 'name': t.name, 'description': t.description, 'price': str(t.price)}
        for t in LabTestType.objects.order_by('name')
    ]


def start_lab_test(report_id, actor: User) -> LabReport:
    _require_lab_assistant(actor)
    with transaction.atomic():
        report = _lock_report(report_id)
        _move(report, R.STATUS_PROCESSING, actor)
    logger.info('Lab report %s processing by user %s', report.id, actor.id)
    return report


def complete_lab_test(report_id, actor: User, file_url: str, file_name: str = '', file_type: str = '') -> LabReport:
    """Attach the result file and mark the report completed.

    When this was the last open report of an appointment waiting in ``Lab``
    the appointment moves on to the pharmacy.
    """
    _require_lab_assistant(actor)
    with transaction.atomic():
        report = _lock_report(report_id)
        appointment = lock_appointment(report.appointment_id)
        _move(report, R.STATUS_COMPLETED, actor)
        LabReportFile.objects.create(
            lab_report=report,
            file_url=file_url,
            file_name=file_name or '',
            file_type=file_type or '',
            uploaded_by=actor,
        )
        open_reports = (
            LabReport.objects.filter(appointment_id=appointment.id)
            .exclude(status=R.STATUS_COMPLETED)
            .exists()
        )
        if appointment.status == Appointment.STATUS_LAB and not open_reports:
            apply_transition(appointment, Appointment.STATUS_PHARMACY, actor, reason='lab results ready')
    logger.info('Lab report %s completed by user %s', report.id, actor.id)
    return report


def pending_reports(date=None):
    qs = (
        LabReport.objects.select_related('appointment__patient', 'appointment__doctor')
        .exclude(status=R.STATUS_COMPLETED)
        .order_by('created_at', 'id')
    )
    if date:
        qs = qs.filter(appointment__date=date)
    return qs
