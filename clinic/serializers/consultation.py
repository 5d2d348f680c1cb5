import bleach
from rest_framework import serializers


class PrescriptionItemSerializer(serializers.Serializer):
    medicineId = serializers.IntegerField(min_value=1)
    dosage = serializers.CharField(max_length=64, required=False, allow_blank=True)
    frequency = serializers.CharField(max_length=32, required=False, allow_blank=True)
    durationDays = serializers.IntegerField(min_value=1, max_value=365, required=False, default=1)
    quantity = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True)


class SaveConsultationSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    notes = serializers.CharField(max_length=5000, required=False, allow_blank=True)
    prescriptionItems = PrescriptionItemSerializer(many=True, required=False)
    labTestIds = serializers.ListField(child=serializers.IntegerField(min_value=1), required=False)
    sendToLab = serializers.BooleanField(required=False, default=False)

    def validate_notes(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def service_items(self) -> list[dict]:
        return [
            {
                'medicine_id': item['medicineId'],
                'dosage': item.get('dosage', ''),
                'frequency': item.get('frequency', ''),
                'duration_days': item.get('durationDays') or 1,
                'quantity': item.get('quantity'),
                'notes': item.get('notes', ''),
            }
            for item in self.validated_data.get('prescriptionItems', [])
        ]
