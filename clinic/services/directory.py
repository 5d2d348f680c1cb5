"""
Doctor directory and medicine lookup.
"""
from __future__ import annotations

from typing import Optional

from django.db.models import Q

from clinic.models import DoctorProfile, Medicine, User
from clinic.services.dispensing import available_stock
from clinic.services.queueing import doctor_summary


def list_doctors(q: Optional[str] = None, specialization: Optional[str] = None) -> list[dict]:
    """Active doctors ordered by surname.

    ``q`` matches first name, last name or specialization; a
    ``specialization`` of ``all`` means no filter.
    """
    qs = User.objects.select_related('doctor_profile').filter(role=User.ROLE_DOCTOR, is_active=True)
    if specialization and specialization != 'all':
        qs = qs.filter(doctor_profile__specialization=specialization)
    if q:
        qs = qs.filter(
            Q(first_name__icontains=q)
            | Q(last_name__icontains=q)
            | Q(doctor_profile__specialization__icontains=q)
        )
    return [doctor_summary(d) for d in qs.order_by('last_name', 'first_name', 'id')]


def list_specializations() -> list[str]:
    values = (
        DoctorProfile.objects.filter(user__role=User.ROLE_DOCTOR, user__is_active=True)
        .exclude(specialization='')
        .values_list('specialization', flat=True)
    )
    return sorted(set(values))


def search_medicines(q: str = '', limit: int = 20) -> list[dict]:
    qs = Medicine.objects.all()
    if q:
        qs = qs.filter(Q(brand_name__icontains=q) | Q(generic_name__icontains=q))
    medicines = list(qs.order_by('brand_name', 'id')[:limit])
    stock = available_stock([m.id for m in medicines])
    return [
        {
            'id': m.id,
            'brandName': m.brand_name,
            'genericName': m.generic_name,
            'defaultDosage': m.default_dosage,
            'defaultFrequency': m.default_frequency,
            'unit': m.unit,
            'available': stock.get(m.id, 0),
        }
        for m in medicines
    ]
