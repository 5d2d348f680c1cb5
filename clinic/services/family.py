"""
Family links between patients.

A patient asks to be linked with another patient by email; the link only
counts once a receptionist approves it.
"""
from __future__ import annotations

import logging

from django.db import transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from clinic.exceptions import AlreadyLinked, InvalidTransition, NotFound, Unauthorized
from clinic.models import FamilyLink, User

logger = logging.getLogger(__name__)

RELATIONSHIPS = frozenset(code for code, _ in FamilyLink.RELATIONSHIP_CHOICES)


def _person(user: User) -> dict:
    return {'id': user.id, 'name': user.display_name, 'email': user.email}


def send_link_request(patient: User, target_email: str, relationship: str) -> FamilyLink:
    if getattr(patient, 'role', None) != User.ROLE_PATIENT:
        raise Unauthorized('Only patients can link family members')
    email = (target_email or '').strip()
    if not email:
        raise ValidationError({'targetEmail': ['This field is required.']})
    if relationship not in RELATIONSHIPS:
        raise ValidationError({'relationship': [f'Unsupported relationship: {relationship}']})
    if patient.email and email.lower() == patient.email.lower():
        raise ValidationError({'targetEmail': ['You cannot link to yourself']})

    target = User.objects.filter(role=User.ROLE_PATIENT, email__iexact=email).exclude(id=patient.id).first()
    if not target:
        raise NotFound('Patient with this email not found')

    with transaction.atomic():
        links = list(
            FamilyLink.objects.select_for_update().filter(
                Q(requester=patient, target=target) | Q(requester=target, target=patient)
            )
        )
        if any(link.status != FamilyLink.STATUS_REJECTED for link in links):
            raise AlreadyLinked()
        # a rejected request of our own is reopened rather than duplicated
        link = next((existing for existing in links if existing.requester_id == patient.id), None)
        if link is None:
            link = FamilyLink(requester=patient, target=target)
        link.relationship = relationship
        link.status = FamilyLink.STATUS_PENDING
        link.reviewed_by = None
        link.reviewed_at = None
        link.save()
    logger.info('Family link %s requested: %s -> %s (%s)', link.id, patient.id, target.id, relationship)
    return link


def family_members(patient: User) -> list[dict]:
    """Approved links, seen from ``patient``'s side."""
    links = (
        FamilyLink.objects.select_related('requester', 'target')
        .filter(Q(requester=patient) | Q(target=patient), status=FamilyLink.STATUS_APPROVED)
        .order_by('id')
    )
    return [
        {
            'id': link.id,
            'relationship': link.relationship,
            'member': _person(link.target if link.requester_id == patient.id else link.requester),
        }
        for link in links
    ]


def sent_requests(patient: User) -> list[dict]:
    links = (
        FamilyLink.objects.select_related('target')
        .filter(requester=patient, status=FamilyLink.STATUS_PENDING)
        .order_by('-created_at', '-id')
    )
    return [
        {
            'id': link.id,
            'relationship': link.relationship,
            'status': link.status,
            'target': _person(link.target),
            'createdAt': link.created_at.strftime('%Y-%m-%d %H:%M'),
        }
        for link in links
    ]


def pending_link_requests() -> list[dict]:
    links = (
        FamilyLink.objects.select_related('requester', 'target')
        .filter(status=FamilyLink.STATUS_PENDING)
        .order_by('created_at', 'id')
    )
    return [
        {
            'id': link.id,
            'relationship': link.relationship,
            'requester': _person(link.requester),
            'target': _person(link.target),
            'createdAt': link.created_at.strftime('%Y-%m-%d %H:%M'),
        }
        for link in links
    ]


def review_link_request(receptionist: User, link_id, approve: bool) -> FamilyLink:
    if getattr(receptionist, 'role', None) != User.ROLE_RECEPTIONIST:
        raise Unauthorized('Only receptionists can review family links')
    with transaction.atomic():
        link = FamilyLink.objects.select_for_update().filter(id=link_id).first()
        if not link:
            raise NotFound('Family link request not found')
        if link.status != FamilyLink.STATUS_PENDING:
            raise InvalidTransition(f'Request is already {link.status}', currentStatus=link.status)
        link.status = FamilyLink.STATUS_APPROVED if approve else FamilyLink.STATUS_REJECTED
        link.reviewed_by = receptionist
        link.reviewed_at = timezone.now()
        link.save(update_fields=['status', 'reviewed_by', 'reviewed_at'])
    logger.info('Family link %s %s by user %s', link.id, link.status.lower(), receptionist.id)
    return link
