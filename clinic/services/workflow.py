"""
Appointment status state machine.

Every status change goes through :func:`apply_transition` on a row that
is locked for update, so the table below is the only way an appointment
moves between stages.  Each allowed ``(from, to)`` pair names the check
the acting user has to pass.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from django.db import transaction

from clinic.exceptions import InvalidTransition, NotFound, Unauthorized
from clinic.models import Appointment, AppointmentTransition, DailyQueue, User

logger = logging.getLogger(__name__)

A = Appointment


def _owning_patient(actor: User, appointment: Appointment) -> bool:
    return actor.role == User.ROLE_PATIENT and appointment.patient_id == actor.id


def _assigned_doctor(actor: User, appointment: Appointment) -> bool:
    return actor.role == User.ROLE_DOCTOR and appointment.doctor_id == actor.id


def _role(role: str) -> Callable[[User, Appointment], bool]:
    def check(actor: User, appointment: Appointment) -> bool:
        return actor.role == role
    check.__name__ = f'role_{role}'
    return check


TRANSITIONS: dict[tuple[str, str], Callable[[User, Appointment], bool]] = {
    (A.STATUS_BOOKED, A.STATUS_CANCELLED): _owning_patient,
    (A.STATUS_BOOKED, A.STATUS_ARRIVED): _role(User.ROLE_RECEPTIONIST),
    (A.STATUS_BOOKED, A.STATUS_ABSENT): _role(User.ROLE_RECEPTIONIST),
    (A.STATUS_ARRIVED, A.STATUS_IN_CONSULTATION): _assigned_doctor,
    (A.STATUS_IN_CONSULTATION, A.STATUS_PHARMACY): _assigned_doctor,
    (A.STATUS_IN_CONSULTATION, A.STATUS_LAB): _assigned_doctor,
    (A.STATUS_LAB, A.STATUS_PHARMACY): _role(User.ROLE_LAB_ASSISTANT),
    (A.STATUS_PHARMACY, A.STATUS_COMPLETED): _role(User.ROLE_PHARMACIST),
}

_UNAUTHORIZED_MESSAGES = {
    _owning_patient: 'Only the patient who booked the appointment may do this',
    _assigned_doctor: 'Only the assigned doctor may do this',
}


def can_transition(current: str, new: str) -> bool:
    """Return True if an appointment may move from ``current`` to ``new``."""
    return (current, new) in TRANSITIONS


def next_statuses(appointment: Appointment, actor: Optional[User] = None) -> list[str]:
    """Statuses reachable from the current one, optionally only those ``actor`` may set."""
    out = []
    for (src, dst), check in TRANSITIONS.items():
        if src != appointment.status:
            continue
        if actor is not None and not check(actor, appointment):
            continue
        out.append(dst)
    return out


def lock_appointment(appointment_id) -> Appointment:
    """Fetch an appointment with its row locked; must run inside ``transaction.atomic``."""
    appointment = Appointment.objects.select_for_update().filter(id=appointment_id).first()
    if not appointment:
        raise NotFound('Appointment not found')
    return appointment


def apply_transition(appointment: Appointment, new_status: str, actor: User, reason: str = '') -> Appointment:
    """Move a locked appointment to ``new_status`` and record the transition.

    Raises :class:`InvalidTransition` when the pair is not in the table and
    :class:`Unauthorized` when ``actor`` may not perform it; the appointment
    is left untouched in both cases.
    """
    old_status = appointment.status
    check = TRANSITIONS.get((old_status, new_status))
    if check is None:
        logger.warning('Rejected transition %s -> %s on appointment %s by user %s',
                       old_status, new_status, appointment.id, getattr(actor, 'id', None))
        raise InvalidTransition(
            f'Cannot move appointment from {old_status} to {new_status}',
            currentStatus=old_status,
        )
    if not check(actor, appointment):
        logger.warning('Unauthorized transition %s -> %s on appointment %s by user %s (%s)',
                       old_status, new_status, appointment.id, actor.id, actor.role)
        raise Unauthorized(_UNAUTHORIZED_MESSAGES.get(check, f'Your role cannot move an appointment to {new_status}'))

    appointment.status = new_status
    appointment.save(update_fields=['status', 'updated_at'])
    AppointmentTransition.objects.create(
        appointment=appointment,
        from_status=old_status,
        to_status=new_status,
        operator=actor,
        reason=reason or '',
    )
    if new_status == A.STATUS_IN_CONSULTATION:
        DailyQueue.objects.filter(doctor_id=appointment.doctor_id, date=appointment.date).update(
            current_number=appointment.queue_number
        )
    logger.info('Appointment %s: %s -> %s by user %s', appointment.id, old_status, new_status, actor.id)
    return appointment


def transition(appointment_id, new_status: str, actor: User, reason: str = '') -> Appointment:
    with transaction.atomic():
        appointment = lock_appointment(appointment_id)
        return apply_transition(appointment, new_status, actor, reason)


def cancel_appointment(appointment_id, requester: User, reason: str = '') -> Appointment:
    return transition(appointment_id, A.STATUS_CANCELLED, requester, reason or 'cancelled by patient')


def transition_history(appointment: Appointment) -> list[dict]:
    return [
        {
            'from': t.from_status,
            'to': t.to_status,
            'operator': t.operator.username if t.operator else '',
            'timestamp': t.timestamp.strftime('%Y-%m-%d %H:%M'),
            'reason': t.reason,
        }
        for t in appointment.transitions.select_related('operator').order_by('timestamp', 'id')
    ]
