"""
Custom permission classes for role based access control.
"""
from rest_framework.permissions import BasePermission

from .models import User


class _RolePermission(BasePermission):
    roles: frozenset = frozenset()

    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in self.roles)


class IsPatientRole(_RolePermission):
    """Allow access only to users with the patient role."""
    roles = frozenset({User.ROLE_PATIENT})


class IsDoctorRole(_RolePermission):
    """Allow access only to doctors."""
    roles = frozenset({User.ROLE_DOCTOR})


class IsPharmacistRole(_RolePermission):
    roles = frozenset({User.ROLE_PHARMACIST})


class IsLabAssistantRole(_RolePermission):
    roles = frozenset({User.ROLE_LAB_ASSISTANT})


class IsReceptionistRole(_RolePermission):
    roles = frozenset({User.ROLE_RECEPTIONIST})


class IsStaffRole(_RolePermission):
    """Any clinical or front-desk role (everything except patients)."""
    roles = frozenset({
        User.ROLE_DOCTOR,
        User.ROLE_PHARMACIST,
        User.ROLE_RECEPTIONIST,
        User.ROLE_LAB_ASSISTANT,
        User.ROLE_ADMIN,
    })
