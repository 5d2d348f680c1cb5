from rest_framework import serializers


class DoctorDirectoryQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    specialization = serializers.CharField(max_length=120, required=False, allow_blank=True)


class PatientHistoryQuerySerializer(serializers.Serializer):
    patientId = serializers.IntegerField(min_value=1)


class MedicineSearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)


class PrescriptionDetailQuerySerializer(serializers.Serializer):
    id = serializers.IntegerField(min_value=1)
