import datetime
from decimal import Decimal

import pytest
from django.core.cache import cache

from clinic.models import DoctorProfile, InventoryBatch, LabTestType, Medicine, User


@pytest.fixture(autouse=True)
def _clear_cache():
    # throttle counters and cached catalogues live in the cache
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def clinic_day():
    return datetime.date(2030, 3, 4)


@pytest.fixture
def patient(db):
    return User.objects.create_user(username='pat1', password='P@ssw0rd1', role=User.ROLE_PATIENT)


@pytest.fixture
def other_patient(db):
    return User.objects.create_user(username='pat2', password='P@ssw0rd1', role=User.ROLE_PATIENT)


@pytest.fixture
def doctor(db):
    user = User.objects.create_user(username='doc1', password='P@ssw0rd1', role=User.ROLE_DOCTOR,
                                    first_name='Nimal', last_name='Perera')
    DoctorProfile.objects.create(user=user, specialization='General Medicine', consultation_fee=Decimal('1500.00'))
    return user


@pytest.fixture
def receptionist(db):
    return User.objects.create_user(username='rec1', password='P@ssw0rd1', role=User.ROLE_RECEPTIONIST)


@pytest.fixture
def pharmacist(db):
    return User.objects.create_user(username='pha1', password='P@ssw0rd1', role=User.ROLE_PHARMACIST)


@pytest.fixture
def lab_assistant(db):
    return User.objects.create_user(username='lab1', password='P@ssw0rd1', role=User.ROLE_LAB_ASSISTANT)


@pytest.fixture
def medicine(db):
    """Paracetamol with 10 units expiring first and 25 units expiring later."""
    med = Medicine.objects.create(brand_name='Panadol', generic_name='Paracetamol', unit='tablet')
    InventoryBatch.objects.create(medicine=med, batch_number='B2', stock_level=25,
                                  unit_price=Decimal('6.00'), expiry_date=datetime.date(2031, 6, 1))
    InventoryBatch.objects.create(medicine=med, batch_number='B1', stock_level=10,
                                  unit_price=Decimal('5.00'), expiry_date=datetime.date(2030, 12, 1))
    return med


@pytest.fixture
def lab_tests(db):
    return [
        LabTestType.objects.create(name='Full Blood Count', price=Decimal('1200.00')),
        LabTestType.objects.create(name='Lipid Profile', price=Decimal('2200.00')),
    ]
