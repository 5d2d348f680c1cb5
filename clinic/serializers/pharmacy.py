from rest_framework import serializers


class DispenseItemSerializer(serializers.Serializer):
    prescriptionItemId = serializers.IntegerField(min_value=1)
    medicineId = serializers.IntegerField(min_value=1)
    quantity = serializers.IntegerField(min_value=1)


class DispenseSerializer(serializers.Serializer):
    prescriptionId = serializers.IntegerField(min_value=1)
    items = DispenseItemSerializer(many=True, allow_empty=False)

    def service_items(self) -> list[dict]:
        return [
            {
                'prescription_item_id': i['prescriptionItemId'],
                'medicine_id': i['medicineId'],
                'quantity': i['quantity'],
            }
            for i in self.validated_data['items']
        ]


class PrescriptionQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)


class InventoryQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=64, required=False, allow_blank=True)
    medicineId = serializers.IntegerField(min_value=1, required=False)
