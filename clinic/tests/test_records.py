"""
Service level tests for the doctor directory, medicine lookup, patient
records and family links.
"""
from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from clinic.exceptions import AlreadyLinked, InvalidTransition, NotFound, Unauthorized
from clinic.models import Appointment, DoctorProfile, FamilyLink, LabReport, Medicine, User
from clinic.services.consultation import save_consultation
from clinic.services.directory import list_doctors, list_specializations, search_medicines
from clinic.services.family import (
    family_members, pending_link_requests, review_link_request, send_link_request, sent_requests,
)
from clinic.services.lab import complete_lab_test
from clinic.services.queueing import book_appointment
from clinic.services.records import (
    patient_history, patient_lab_reports, patient_prescription, patient_prescriptions,
)
from clinic.services.workflow import transition

pytestmark = pytest.mark.django_db

A = Appointment


def make_doctor(username, first, last, specialization, active=True):
    user = User.objects.create_user(username=username, password='x', role=User.ROLE_DOCTOR,
                                    first_name=first, last_name=last, is_active=active)
    DoctorProfile.objects.create(user=user, specialization=specialization, consultation_fee=Decimal('1000.00'))
    return user


def consulted(patient, doctor, receptionist, day, **consultation):
    appt = book_appointment(patient, doctor.id, day)
    transition(appt.id, A.STATUS_ARRIVED, receptionist)
    transition(appt.id, A.STATUS_IN_CONSULTATION, doctor)
    save_consultation(doctor, appt.id, consultation.pop('notes', 'seen'), **consultation)
    return appt


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

def test_doctor_directory_search_and_filter(doctor):
    make_doctor('doc2', 'Amara', 'Fernando', 'Cardiology')
    make_doctor('doc3', 'Ruwan', 'Bandara', 'Paediatrics')
    make_doctor('doc4', 'Old', 'Timer', 'Cardiology', active=False)

    assert [d['name'] for d in list_doctors()] == ['Ruwan Bandara', 'Amara Fernando', 'Nimal Perera']
    assert [d['name'] for d in list_doctors(specialization='Cardiology')] == ['Amara Fernando']
    assert [d['name'] for d in list_doctors(specialization='all')] == [
        'Ruwan Bandara', 'Amara Fernando', 'Nimal Perera',
    ]
    assert [d['name'] for d in list_doctors(q='cardio')] == ['Amara Fernando']
    assert [d['name'] for d in list_doctors(q='nimal')] == ['Nimal Perera']
    assert list_doctors(q='nobody') == []


def test_specializations_are_distinct_and_sorted(doctor):
    make_doctor('doc2', 'Amara', 'Fernando', 'Cardiology')
    make_doctor('doc3', 'Kasun', 'Silva', 'Cardiology')
    make_doctor('doc4', 'Dina', 'Jay', '')
    assert list_specializations() == ['Cardiology', 'General Medicine']


def test_medicine_search_reports_stock(medicine):
    Medicine.objects.create(brand_name='Amoxil', generic_name='Amoxicillin')
    found = search_medicines('para')
    assert [m['brandName'] for m in found] == ['Panadol']
    assert found[0]['available'] == 35
    assert [m['brandName'] for m in search_medicines('')] == ['Amoxil', 'Panadol']
    assert search_medicines('amox')[0]['available'] == 0


# ---------------------------------------------------------------------------
# Patient records
# ---------------------------------------------------------------------------

def test_patient_sees_only_own_prescriptions(patient, other_patient, doctor, receptionist, medicine, clinic_day):
    consulted(patient, doctor, receptionist, clinic_day,
              prescription_items=[{'medicine_id': medicine.id, 'dosage': '500mg', 'quantity': 6}])
    consulted(other_patient, doctor, receptionist, clinic_day,
              prescription_items=[{'medicine_id': medicine.id, 'quantity': 2}])

    mine = patient_prescriptions(patient)
    assert len(mine) == 1
    assert mine[0]['doctorName'] == 'Nimal Perera'
    assert mine[0]['dispensed'] is False
    assert [(i['medicine'], i['dosage'], i['quantity']) for i in mine[0]['items']] == [('Panadol', '500mg', 6)]

    assert patient_prescription(patient, mine[0]['id'])['id'] == mine[0]['id']
    theirs = patient_prescriptions(other_patient)[0]['id']
    with pytest.raises(NotFound):
        patient_prescription(patient, theirs)


def test_patient_lab_reports_include_files(patient, other_patient, doctor, receptionist, lab_assistant,
                                           lab_tests, clinic_day):
    appt = consulted(patient, doctor, receptionist, clinic_day, lab_test_ids=[t.id for t in lab_tests],
                     send_to_lab=True)
    consulted(other_patient, doctor, receptionist, clinic_day, lab_test_ids=[lab_tests[0].id])
    first = LabReport.objects.filter(appointment=appt).order_by('id').first()
    complete_lab_test(first.id, lab_assistant, 'https://files.example.org/fbc.pdf', 'fbc.pdf', 'pdf')

    reports = {r['testName']: r for r in patient_lab_reports(patient)}
    assert set(reports) == {'Full Blood Count', 'Lipid Profile'}
    assert reports['Full Blood Count']['status'] == LabReport.STATUS_COMPLETED
    assert reports['Full Blood Count']['files'] == [
        {'fileUrl': 'https://files.example.org/fbc.pdf', 'fileName': 'fbc.pdf', 'fileType': 'pdf'},
    ]
    assert reports['Lipid Profile']['files'] == []


def test_doctor_history_of_own_patient(patient, doctor, receptionist, medicine, clinic_day):
    seen = consulted(patient, doctor, receptionist, clinic_day, notes='mild fever',
                     prescription_items=[{'medicine_id': medicine.id, 'quantity': 3}])
    book_appointment(patient, doctor.id, clinic_day.replace(day=5))

    history = patient_history(doctor, patient.id)
    assert history['profile']['id'] == patient.id
    # upcoming bookings are not part of the history
    assert [(v['id'], v['doctorNotes']) for v in history['visits']] == [(seen.id, 'mild fever')]
    assert len(history['prescriptions']) == 1
    assert history['labReports'] == []


def test_history_needs_a_doctor_patient_relationship(patient, doctor, receptionist, clinic_day):
    book_appointment(patient, doctor.id, clinic_day)
    stranger = make_doctor('doc2', 'Amara', 'Fernando', 'Cardiology')
    with pytest.raises(Unauthorized):
        patient_history(stranger, patient.id)
    with pytest.raises(Unauthorized):
        patient_history(receptionist, patient.id)
    with pytest.raises(NotFound):
        patient_history(doctor, doctor.id)


# ---------------------------------------------------------------------------
# Family links
# ---------------------------------------------------------------------------

@pytest.fixture
def family(patient, other_patient):
    patient.email = 'pat1@example.org'
    patient.save(update_fields=['email'])
    other_patient.email = 'pat2@example.org'
    other_patient.save(update_fields=['email'])
    return patient, other_patient


def test_link_request_waits_for_receptionist(family, receptionist):
    patient, relative = family
    link = send_link_request(patient, 'PAT2@example.org', 'Parent')
    assert link.status == FamilyLink.STATUS_PENDING
    assert family_members(patient) == []
    assert [r['target']['id'] for r in sent_requests(patient)] == [relative.id]
    assert [r['id'] for r in pending_link_requests()] == [link.id]

    review_link_request(receptionist, link.id, approve=True)
    assert pending_link_requests() == []
    assert sent_requests(patient) == []
    assert family_members(patient) == [
        {'id': link.id, 'relationship': 'Parent', 'member': {'id': relative.id, 'name': 'pat2',
                                                             'email': 'pat2@example.org'}},
    ]
    # visible from both sides
    assert [m['member']['id'] for m in family_members(relative)] == [patient.id]


def test_link_request_validation(family):
    patient, _ = family
    with pytest.raises(ValidationError):
        send_link_request(patient, 'pat1@example.org', 'Parent')
    with pytest.raises(ValidationError):
        send_link_request(patient, 'pat2@example.org', 'Cousin')
    with pytest.raises(NotFound):
        send_link_request(patient, 'nobody@example.org', 'Parent')
    assert not FamilyLink.objects.exists()


def test_duplicate_link_in_either_direction(family):
    patient, relative = family
    send_link_request(patient, 'pat2@example.org', 'Parent')
    with pytest.raises(AlreadyLinked):
        send_link_request(patient, 'pat2@example.org', 'Guardian')
    with pytest.raises(AlreadyLinked):
        send_link_request(relative, 'pat1@example.org', 'Child')
    assert FamilyLink.objects.count() == 1


def test_rejected_link_can_be_requested_again(family, receptionist):
    patient, _ = family
    link = send_link_request(patient, 'pat2@example.org', 'Parent')
    review_link_request(receptionist, link.id, approve=False)
    assert family_members(patient) == []
    with pytest.raises(InvalidTransition):
        review_link_request(receptionist, link.id, approve=True)

    again = send_link_request(patient, 'pat2@example.org', 'Guardian')
    assert again.id == link.id
    assert again.status == FamilyLink.STATUS_PENDING
    assert again.relationship == 'Guardian'
    assert again.reviewed_by is None


def test_only_receptionists_review_links(family, doctor):
    patient, _ = family
    link = send_link_request(patient, 'pat2@example.org', 'Spouse')
    with pytest.raises(Unauthorized):
        review_link_request(doctor, link.id, approve=True)
    with pytest.raises(Unauthorized):
        send_link_request(doctor, 'pat2@example.org', 'Spouse')
    link.refresh_from_db()
    assert link.status == FamilyLink.STATUS_PENDING
