from rest_framework import serializers


class LabReportActionSerializer(serializers.Serializer):
    reportId = serializers.IntegerField(min_value=1)


class CompleteLabSerializer(serializers.Serializer):
    reportId = serializers.IntegerField(min_value=1)
    fileUrl = serializers.URLField(max_length=512)
    fileName = serializers.CharField(max_length=255, required=False, allow_blank=True)
    fileType = serializers.CharField(max_length=32, required=False, allow_blank=True)


class LabPendingQuerySerializer(serializers.Serializer):
    date = serializers.DateField(required=False)
