import bleach
from rest_framework import serializers

from clinic.models import Appointment


class AvailabilityQuerySerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.DateField()


class BookAppointmentSerializer(serializers.Serializer):
    doctorId = serializers.IntegerField(min_value=1)
    date = serializers.DateField()
    reason = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate_reason(self, v):
        return bleach.clean((v or '').strip(), strip=True)


class CancelAppointmentSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class UpdateStatusSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES])
    reason = serializers.CharField(max_length=255, required=False, allow_blank=True)


class AppointmentListQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
    status = serializers.ChoiceField(choices=[c for c, _ in Appointment.STATUS_CHOICES], required=False)
    page = serializers.IntegerField(min_value=1, required=False)
    pageSize = serializers.IntegerField(min_value=1, max_value=200, required=False)


def appointment_row(appt: Appointment) -> dict:
    """Flat representation used by every work-list."""
    return {
        'id': appt.id,
        'patientId': appt.patient_id,
        'patientName': appt.patient.display_name,
        'doctorId': appt.doctor_id,
        'doctorName': appt.doctor.display_name,
        'date': appt.date.isoformat(),
        'timeSlot': appt.time_slot,
        'queueNumber': appt.queue_number,
        'status': appt.status,
        'reason': appt.reason,
    }
