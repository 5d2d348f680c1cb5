"""
Integration tests for the clinic API.

These tests walk an appointment through the whole visit (booking,
check-in, consultation, lab, dispensing and billing) over HTTP and check
role gating and the error envelope.  They use Django REST framework's
APIClient within the APITestCase base class.

To run the tests:

```
pytest -q clinic/tests
```
"""
import datetime
from decimal import Decimal

from django.core.cache import cache
from django.urls import reverse
from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from clinic.models import (
    Appointment, DoctorProfile, FamilyLink, InventoryBatch, Invoice, LabReport, LabTestType, Medicine, User,
)


class ClinicAPITests(APITestCase):
    def setUp(self) -> None:
        """Users for every role, a priced doctor, one medicine in two batches and two lab tests."""
        cache.clear()
        self.day = datetime.date(2030, 3, 4)
        self.patient = User.objects.create_user(username="patient1", password="P@ssw0rd1", role="patient")
        self.patient2 = User.objects.create_user(username="patient2", password="P@ssw0rd1", role="patient")
        self.doctor = User.objects.create_user(
            username="doctor1", password="P@ssw0rd1", role="doctor", first_name="Kamala", last_name="Silva",
        )
        DoctorProfile.objects.create(user=self.doctor, specialization="Paediatrics",
                                     consultation_fee=Decimal("2000.00"))
        self.receptionist = User.objects.create_user(username="rec1", password="P@ssw0rd1", role="receptionist")
        self.pharmacist = User.objects.create_user(username="pha1", password="P@ssw0rd1", role="pharmacist")
        self.lab_assistant = User.objects.create_user(username="lab1", password="P@ssw0rd1", role="lab_assistant")

        self.medicine = Medicine.objects.create(brand_name="Amoxil", generic_name="Amoxicillin", unit="capsule")
        self.late_batch = InventoryBatch.objects.create(
            medicine=self.medicine, batch_number="AMX-2", stock_level=25,
            unit_price=Decimal("12.00"), expiry_date=datetime.date(2031, 1, 1),
        )
        self.early_batch = InventoryBatch.objects.create(
            medicine=self.medicine, batch_number="AMX-1", stock_level=10,
            unit_price=Decimal("10.00"), expiry_date=datetime.date(2030, 6, 1),
        )
        self.fbc = LabTestType.objects.create(name="Full Blood Count", price=Decimal("1200.00"))
        self.fbs = LabTestType.objects.create(name="Fasting Blood Sugar", price=Decimal("450.00"))

    def authenticate(self, user: User) -> APIClient:
        """Return an authenticated APIClient for the given user."""
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    def book(self, patient=None) -> int:
        client = self.authenticate(patient or self.patient)
        response = client.post(
            "/api/appointments/book",
            {"doctorId": self.doctor.id, "date": self.day.isoformat(), "reason": "cough"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data["appointmentId"]

    def set_status(self, user, appointment_id, new_status):
        return self.authenticate(user).post(
            "/api/appointments/update-status",
            {"appointmentId": appointment_id, "status": new_status},
            format="json",
        )

    def start_consultation(self) -> int:
        appointment_id = self.book()
        self.assertEqual(self.set_status(self.receptionist, appointment_id, "Arrived").status_code, 200)
        self.assertEqual(self.set_status(self.doctor, appointment_id, "In_Consultation").status_code, 200)
        return appointment_id

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------
    def test_login_returns_jwt_and_legacy_token(self):
        client = APIClient()
        response = client.post(reverse("login_view"), {"username": "patient1", "password": "P@ssw0rd1"},
                               format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["token"])
        self.assertTrue(response.data["jwt_access"])
        self.assertEqual(response.data["role"], "patient")

        client.credentials(HTTP_AUTHORIZATION=f"Token {response.data['token']}")
        me = client.get("/api/auth/me")
        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data["user"]["username"], "patient1")

    def test_login_with_wrong_password(self):
        response = APIClient().post(reverse("login_view"), {"username": "patient1", "password": "nope"},
                                    format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data["ok"])

    def test_jwt_bearer_is_accepted(self):
        login = APIClient().post(reverse("login_view"), {"username": "doctor1", "password": "P@ssw0rd1"},
                                 format="json")
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['jwt_access']}")
        response = client.get("/api/doctor/queue", {"date": self.day.isoformat()})
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_anonymous_requests_are_rejected(self):
        response = APIClient().get("/api/appointments/availability",
                                   {"doctorId": self.doctor.id, "date": self.day.isoformat()})
        self.assertIn(response.status_code, (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN))
        self.assertFalse(response.data["ok"])

    def test_healthz(self):
        response = self.client.get("/healthz")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["ok"])

    # ------------------------------------------------------------------
    # Booking
    # ------------------------------------------------------------------
    def test_availability_then_booking(self):
        client = self.authenticate(self.patient)
        params = {"doctorId": self.doctor.id, "date": self.day.isoformat()}
        before = client.get("/api/appointments/availability", params)
        self.assertEqual(before.status_code, status.HTTP_200_OK)
        self.assertEqual(before.data["data"]["estimatedTime"], "09:00")
        self.assertEqual(before.data["data"]["nextQueueNumber"], 1)
        self.assertEqual(before.data["data"]["doctor"]["consultationFee"], "2000.00")

        self.book()
        after = client.get("/api/appointments/availability", params)
        self.assertEqual(after.data["data"]["estimatedTime"], "09:15")
        self.assertEqual(after.data["data"]["nextQueueNumber"], 2)

    def test_staff_cannot_book(self):
        response = self.authenticate(self.receptionist).post(
            "/api/appointments/book", {"doctorId": self.doctor.id, "date": self.day.isoformat()}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_booking_validation_error_envelope(self):
        response = self.authenticate(self.patient).post(
            "/api/appointments/book", {"doctorId": self.doctor.id, "date": "not-a-date"}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "invalid")

    def test_booking_unknown_doctor_is_404(self):
        response = self.authenticate(self.patient).post(
            "/api/appointments/book", {"doctorId": self.patient2.id, "date": self.day.isoformat()}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["error"]["code"], "not_found")

    # ------------------------------------------------------------------
    # Cancellation and status updates
    # ------------------------------------------------------------------
    def test_patient_can_cancel_own_appointment(self):
        appointment_id = self.book()
        response = self.authenticate(self.patient).post(
            "/api/appointments/cancel", {"appointmentId": appointment_id}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Cancelled")

    def test_patient_cannot_cancel_others_appointment(self):
        appointment_id = self.book()
        response = self.authenticate(self.patient2).post(
            "/api/appointments/cancel", {"appointmentId": appointment_id}, format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data["error"]["code"], "unauthorized")
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Booked")

    def test_invalid_transition_is_409_and_status_unchanged(self):
        appointment_id = self.book()
        response = self.set_status(self.pharmacist, appointment_id, "Completed")
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "invalid_transition")
        self.assertEqual(response.data["error"]["currentStatus"], "Booked")
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Booked")

    def test_detail_is_private_to_the_patient(self):
        appointment_id = self.book()
        own = self.authenticate(self.patient).get("/api/appointments/detail", {"id": appointment_id})
        self.assertEqual(own.status_code, status.HTTP_200_OK)
        self.assertEqual(own.data["data"]["nextStatuses"], ["Cancelled"])
        self.assertEqual(own.data["data"]["transitionHistory"][0]["to"], "Booked")

        other = self.authenticate(self.patient2).get("/api/appointments/detail", {"id": appointment_id})
        self.assertEqual(other.status_code, status.HTTP_403_FORBIDDEN)

    def test_my_appointments_lists_only_own(self):
        self.book()
        self.book(self.patient2)
        response = self.authenticate(self.patient).get("/api/appointments/mine")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["pagination"]["total"], 1)
        self.assertEqual(response.data["data"][0]["patientId"], self.patient.id)

    # ------------------------------------------------------------------
    # Work-lists
    # ------------------------------------------------------------------
    def test_doctor_queue_and_reception_board(self):
        first = self.book()
        self.book(self.patient2)
        self.set_status(self.receptionist, first, "Arrived")

        queue = self.authenticate(self.doctor).get("/api/doctor/queue", {"date": self.day.isoformat()})
        self.assertEqual(queue.status_code, status.HTTP_200_OK)
        self.assertEqual([row["queueNumber"] for row in queue.data["data"]], [1, 2])
        self.assertEqual(queue.data["meta"]["waitingCount"], 2)

        board = self.authenticate(self.receptionist).get("/api/reception/board", {"date": self.day.isoformat()})
        self.assertEqual(board.status_code, status.HTTP_200_OK)
        self.assertEqual(board.data["meta"]["counts"]["Arrived"], 1)
        self.assertEqual(board.data["meta"]["counts"]["Booked"], 1)

    def test_patient_cannot_see_doctor_queue(self):
        response = self.authenticate(self.patient).get("/api/doctor/queue")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_lab_test_catalogue(self):
        response = self.authenticate(self.doctor).get("/api/lab/test-types")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t["name"] for t in response.data["data"]], ["Fasting Blood Sugar", "Full Blood Count"])

    # ------------------------------------------------------------------
    # Full visit
    # ------------------------------------------------------------------
    def test_consultation_with_labs_only_goes_to_pharmacy(self):
        appointment_id = self.start_consultation()
        response = self.authenticate(self.doctor).post(
            "/api/doctor/consultation/save",
            {"appointmentId": appointment_id, "notes": "bloods", "prescriptionItems": [],
             "labTestIds": [self.fbc.id, self.fbs.id]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIsNone(response.data["data"]["prescriptionId"])
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Pharmacy")
        self.assertEqual(
            list(LabReport.objects.filter(appointment_id=appointment_id).values_list("status", flat=True)),
            ["Requested", "Requested"],
        )

    def test_full_visit(self):
        appointment_id = self.start_consultation()
        doctor = self.authenticate(self.doctor)
        saved = doctor.post(
            "/api/doctor/consultation/save",
            {
                "appointmentId": appointment_id,
                "notes": "chest infection",
                "prescriptionItems": [
                    {"medicineId": self.medicine.id, "dosage": "250mg", "frequency": "1-0-1", "durationDays": 5},
                ],
                "labTestIds": [self.fbc.id],
                "sendToLab": True,
            },
            format="json",
        )
        self.assertEqual(saved.status_code, status.HTTP_200_OK)
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Lab")

        lab = self.authenticate(self.lab_assistant)
        pending = lab.get("/api/lab/pending")
        self.assertEqual(len(pending.data["data"]), 1)
        report_id = pending.data["data"][0]["id"]
        self.assertEqual(lab.post("/api/lab/start", {"reportId": report_id}, format="json").status_code, 200)
        done = lab.post("/api/lab/complete",
                        {"reportId": report_id, "fileUrl": "https://files.example.org/fbc.pdf"}, format="json")
        self.assertEqual(done.status_code, status.HTTP_200_OK)
        self.assertEqual(done.data["appointmentStatus"], "Pharmacy")

        pharmacy = self.authenticate(self.pharmacist)
        waiting = pharmacy.get("/api/pharmacy/pending")
        self.assertEqual([row["id"] for row in waiting.data["data"]], [appointment_id])
        detail = pharmacy.get("/api/pharmacy/prescription", {"appointmentId": appointment_id})
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        item = detail.data["data"]["items"][0]
        # 1-0-1 for 5 days
        self.assertEqual(item["quantity"], 15)
        self.assertEqual(item["available"], 35)
        self.assertEqual(detail.data["data"]["inventory"][0]["batchNumber"], "AMX-1")

        dispensed = pharmacy.post(
            "/api/pharmacy/dispense",
            {"prescriptionId": detail.data["data"]["id"],
             "items": [{"prescriptionItemId": item["id"], "medicineId": self.medicine.id, "quantity": 15}]},
            format="json",
        )
        self.assertEqual(dispensed.status_code, status.HTTP_200_OK)
        self.assertEqual([line["quantity"] for line in dispensed.data["items"]], [10, 5])
        self.early_batch.refresh_from_db()
        self.late_batch.refresh_from_db()
        self.assertEqual((self.early_batch.stock_level, self.late_batch.stock_level), (0, 20))
        self.assertEqual(Appointment.objects.get(id=appointment_id).status, "Completed")

        reception = self.authenticate(self.receptionist)
        breakdown = reception.get("/api/reception/invoice/breakdown", {"appointmentId": appointment_id})
        self.assertEqual(breakdown.status_code, status.HTTP_200_OK)
        data = breakdown.data["data"]
        # 2000 fee + (10 x 10.00 + 5 x 12.00) + 1200 lab
        self.assertEqual(data["doctorFee"], "2000.00")
        self.assertEqual(data["medicineTotal"], "160.00")
        self.assertEqual(data["labTotal"], "1200.00")
        self.assertEqual(data["grandTotal"], "3360.00")

        created = reception.post(
            "/api/reception/invoice/create",
            {"appointmentId": appointment_id, "total": "3360.00", "method": "Card"},
            format="json",
        )
        self.assertEqual(created.status_code, status.HTTP_201_CREATED)
        self.assertEqual(created.data["paymentStatus"], "Paid")
        invoice = Invoice.objects.get(appointment_id=appointment_id)
        self.assertEqual(invoice.total_amount, Decimal("3360.00"))
        self.assertEqual(invoice.items.count(), 4)

        again = reception.post(
            "/api/reception/invoice/create",
            {"appointmentId": appointment_id, "total": "3360.00", "method": "Cash"},
            format="json",
        )
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["error"]["code"], "already_billed")

    def test_dispensing_shortage_is_rejected(self):
        appointment_id = self.start_consultation()
        self.authenticate(self.doctor).post(
            "/api/doctor/consultation/save",
            {"appointmentId": appointment_id, "notes": "",
             "prescriptionItems": [{"medicineId": self.medicine.id, "quantity": 50}]},
            format="json",
        )
        appointment = Appointment.objects.get(id=appointment_id)
        item = appointment.prescription.items.get()
        response = self.authenticate(self.pharmacist).post(
            "/api/pharmacy/dispense",
            {"prescriptionId": appointment.prescription.id,
             "items": [{"prescriptionItemId": item.id, "medicineId": self.medicine.id, "quantity": 50}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data["error"]["code"], "insufficient_stock")
        self.early_batch.refresh_from_db()
        self.late_batch.refresh_from_db()
        self.assertEqual((self.early_batch.stock_level, self.late_batch.stock_level), (10, 25))

    def test_inventory_search(self):
        response = self.authenticate(self.pharmacist).get("/api/pharmacy/inventory", {"q": "amoxi"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([b["batchNumber"] for b in response.data["data"]], ["AMX-1", "AMX-2"])

    def test_zero_quantity_dispense_is_invalid(self):
        appointment_id = self.start_consultation()
        self.authenticate(self.doctor).post(
            "/api/doctor/consultation/save",
            {"appointmentId": appointment_id, "notes": "",
             "prescriptionItems": [{"medicineId": self.medicine.id, "quantity": 5}]},
            format="json",
        )
        appointment = Appointment.objects.get(id=appointment_id)
        item = appointment.prescription.items.get()
        response = self.authenticate(self.pharmacist).post(
            "/api/pharmacy/dispense",
            {"prescriptionId": appointment.prescription.id,
             "items": [{"prescriptionItemId": item.id, "medicineId": self.medicine.id, "quantity": 0}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        appointment.refresh_from_db()
        self.assertEqual(appointment.status, "Pharmacy")

    def test_invoice_must_match_amount_due(self):
        appointment_id = self.book()
        response = self.authenticate(self.receptionist).post(
            "/api/reception/invoice/create",
            {"appointmentId": appointment_id, "total": "1.00", "method": "Cash",
             "lineItems": [{"description": "Consultation fee", "amount": "1.00", "sourceType": "consultation"}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["code"], "invalid")
        self.assertFalse(Invoice.objects.exists())

    # ------------------------------------------------------------------
    # Directory, records and family links
    # ------------------------------------------------------------------
    def test_doctor_directory(self):
        other = User.objects.create_user(username="doctor2", password="P@ssw0rd1", role="doctor",
                                         first_name="Amara", last_name="Fernando")
        DoctorProfile.objects.create(user=other, specialization="Cardiology", consultation_fee=Decimal("2500.00"))
        client = self.authenticate(self.patient)

        everyone = client.get("/api/doctors")
        self.assertEqual(everyone.status_code, status.HTTP_200_OK)
        self.assertEqual([d["name"] for d in everyone.data["data"]], ["Amara Fernando", "Kamala Silva"])

        cardiology = client.get("/api/doctors", {"specialization": "Cardiology"})
        self.assertEqual([d["id"] for d in cardiology.data["data"]], [other.id])
        self.assertEqual(cardiology.data["data"][0]["consultationFee"], "2500.00")

        specs = client.get("/api/doctors/specializations")
        self.assertEqual(specs.data["data"], ["Cardiology", "Paediatrics"])

    def test_patient_records_are_private(self):
        appointment_id = self.start_consultation()
        self.authenticate(self.doctor).post(
            "/api/doctor/consultation/save",
            {"appointmentId": appointment_id, "notes": "",
             "prescriptionItems": [{"medicineId": self.medicine.id, "quantity": 4}],
             "labTestIds": [self.fbc.id]},
            format="json",
        )
        mine = self.authenticate(self.patient).get("/api/patient/prescriptions")
        self.assertEqual(mine.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mine.data["data"]), 1)
        prescription_id = mine.data["data"][0]["id"]

        labs = self.authenticate(self.patient).get("/api/patient/lab-reports")
        self.assertEqual([r["testName"] for r in labs.data["data"]], ["Full Blood Count"])

        stranger = self.authenticate(self.patient2).get("/api/patient/prescriptions/detail",
                                                        {"id": prescription_id})
        self.assertEqual(stranger.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(len(self.authenticate(self.patient2).get("/api/patient/lab-reports").data["data"]), 0)

        as_doctor = self.authenticate(self.doctor).get("/api/patient/prescriptions")
        self.assertEqual(as_doctor.status_code, status.HTTP_403_FORBIDDEN)

    def test_patient_history_and_medicine_search(self):
        appointment_id = self.start_consultation()
        self.authenticate(self.doctor).post(
            "/api/doctor/consultation/save",
            {"appointmentId": appointment_id, "notes": "follow up in a week"},
            format="json",
        )
        history = self.authenticate(self.doctor).get("/api/doctor/patient-history",
                                                     {"patientId": self.patient.id})
        self.assertEqual(history.status_code, status.HTTP_200_OK)
        self.assertEqual(history.data["data"]["visits"][0]["doctorNotes"], "follow up in a week")

        unrelated = self.authenticate(self.doctor).get("/api/doctor/patient-history",
                                                       {"patientId": self.patient2.id})
        self.assertEqual(unrelated.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(unrelated.data["error"]["code"], "unauthorized")

        found = self.authenticate(self.doctor).get("/api/doctor/medicines", {"q": "amoxi"})
        self.assertEqual(found.status_code, status.HTTP_200_OK)
        self.assertEqual(found.data["data"][0]["brandName"], "Amoxil")
        self.assertEqual(found.data["data"][0]["available"], 35)

    def test_family_link_approval(self):
        self.patient2.email = "patient2@example.org"
        self.patient2.save(update_fields=["email"])
        sent = self.authenticate(self.patient).post(
            "/api/patient/family/link", {"targetEmail": "patient2@example.org", "relationship": "Spouse"},
            format="json",
        )
        self.assertEqual(sent.status_code, status.HTTP_201_CREATED)
        self.assertEqual(sent.data["status"], "Pending")

        again = self.authenticate(self.patient).post(
            "/api/patient/family/link", {"targetEmail": "patient2@example.org", "relationship": "Spouse"},
            format="json",
        )
        self.assertEqual(again.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(again.data["error"]["code"], "already_linked")

        reception = self.authenticate(self.receptionist)
        queue = reception.get("/api/reception/family-requests")
        self.assertEqual([r["id"] for r in queue.data["data"]], [sent.data["requestId"]])

        self.assertEqual(
            self.authenticate(self.patient).post(
                "/api/reception/family-requests/review",
                {"requestId": sent.data["requestId"], "action": "approve"}, format="json",
            ).status_code,
            status.HTTP_403_FORBIDDEN,
        )
        reviewed = reception.post("/api/reception/family-requests/review",
                                  {"requestId": sent.data["requestId"], "action": "approve"}, format="json")
        self.assertEqual(reviewed.status_code, status.HTTP_200_OK)
        self.assertEqual(FamilyLink.objects.get().status, "Approved")

        members = self.authenticate(self.patient2).get("/api/patient/family")
        self.assertEqual([m["member"]["id"] for m in members.data["data"]["members"]], [self.patient.id])
