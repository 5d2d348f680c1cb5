"""
Queue allocation for a doctor's day.

The estimate shown before booking is advisory; the binding queue number is
handed out at booking time from the locked :class:`DailyQueue` row.
"""
from __future__ import annotations

import datetime
import logging
from typing import Optional

import bleach
from django.conf import settings
from django.db import IntegrityError, transaction

from clinic.exceptions import NotFound, PersistenceFailure, Unauthorized
from clinic.models import Appointment, AppointmentTransition, DailyQueue, User

logger = logging.getLogger(__name__)

LAST_MINUTE_OF_DAY = 24 * 60 - 1


def _day_start() -> tuple[int, int]:
    hours, minutes = settings.CLINIC_DAY_START.split(':')
    return int(hours), int(minutes)


def estimate_time_slot(queue_size: int) -> str:
    """Return the ``HH:MM`` slot of the patient after ``queue_size`` others.

    Slots that would fall past midnight are reported as ``23:59``; the
    queue number, not the slot, is what orders the day.
    """
    start_hour, start_minute = _day_start()
    total = start_hour * 60 + start_minute + queue_size * settings.CLINIC_SLOT_MINUTES
    total = min(total, LAST_MINUTE_OF_DAY)
    return f"{total // 60:02d}:{total % 60:02d}"


def active_queue_size(doctor_id: int, date: datetime.date) -> int:
    return (
        Appointment.objects.filter(doctor_id=doctor_id, date=date)
        .exclude(status=Appointment.STATUS_CANCELLED)
        .count()
    )


def get_doctor(doctor_id) -> User:
    doctor = (
        User.objects.select_related('doctor_profile')
        .filter(id=doctor_id, role=User.ROLE_DOCTOR)
        .first()
    )
    if not doctor:
        raise NotFound('Doctor not found')
    return doctor


def doctor_summary(doctor: User) -> dict:
    profile = getattr(doctor, 'doctor_profile', None)
    return {
        'id': doctor.id,
        'name': doctor.display_name,
        'specialization': profile.specialization if profile else '',
        'consultationFee': str(profile.consultation_fee) if profile else '0.00',
    }


def next_queue_number(last_number: int, queue_size: int) -> int:
    """Numbers never repeat within a day, even after cancellations."""
    return max(last_number, queue_size) + 1


def check_availability(doctor_id, date: datetime.date) -> dict:
    doctor = get_doctor(doctor_id)
    queue_size = active_queue_size(doctor.id, date)
    last_number = (
        DailyQueue.objects.filter(doctor=doctor, date=date)
        .values_list('last_number', flat=True)
        .first()
    ) or 0
    return {
        'doctor': doctor_summary(doctor),
        'date': date.isoformat(),
        'nextQueueNumber': next_queue_number(last_number, queue_size),
        'estimatedTime': estimate_time_slot(queue_size),
        'queueSize': queue_size,
    }


def _book_once(patient: User, doctor: User, date: datetime.date, reason: str) -> Appointment:
    with transaction.atomic():
        DailyQueue.objects.get_or_create(doctor=doctor, date=date)
        # Lock the counter row
        queue = DailyQueue.objects.select_for_update().get(doctor=doctor, date=date)
        queue_size = active_queue_size(doctor.id, date)
        number = next_queue_number(queue.last_number, queue_size)
        appointment = Appointment.objects.create(
            patient=patient,
            doctor=doctor,
            date=date,
            time_slot=estimate_time_slot(queue_size),
            queue_number=number,
            status=Appointment.STATUS_BOOKED,
            reason=reason,
        )
        queue.last_number = number
        queue.save(update_fields=['last_number'])
        AppointmentTransition.objects.create(
            appointment=appointment,
            from_status=None,
            to_status=Appointment.STATUS_BOOKED,
            operator=patient,
            reason='booked',
        )
    return appointment


def book_appointment(patient: User, doctor_id, date: datetime.date, reason: Optional[str] = None) -> Appointment:
    if getattr(patient, 'role', None) != User.ROLE_PATIENT:
        raise Unauthorized('Only patients can book appointments')
    doctor = get_doctor(doctor_id)
    reason = bleach.clean((reason or '').strip(), strip=True)

    attempts = max(1, settings.BOOKING_MAX_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            appointment = _book_once(patient, doctor, date, reason)
        except IntegrityError:
            # Lost a race on the counter row or the (doctor, date, number) constraint
            logger.warning('Queue number conflict for doctor=%s date=%s (attempt %s/%s)',
                           doctor.id, date, attempt, attempts)
            continue
        logger.info('Booked appointment %s: doctor=%s date=%s queue=%s slot=%s',
                    appointment.id, doctor.id, date, appointment.queue_number, appointment.time_slot)
        return appointment
    raise PersistenceFailure('Could not allocate a queue number, please try again')
