from rest_framework import serializers

from clinic.models import Invoice, InvoiceItem


class BreakdownQuerySerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)


class InvoiceLineSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=255)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    sourceType = serializers.ChoiceField(choices=[c for c, _ in InvoiceItem.SOURCE_CHOICES])
    sourceRef = serializers.CharField(max_length=64, required=False, allow_blank=True)


class CreateInvoiceSerializer(serializers.Serializer):
    appointmentId = serializers.IntegerField(min_value=1)
    lineItems = InvoiceLineSerializer(many=True, required=False)
    total = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    method = serializers.ChoiceField(choices=[c for c, _ in Invoice.METHOD_CHOICES])

    def service_items(self) -> list[dict]:
        return [
            {
                'description': line['description'],
                'amount': line['amount'],
                'source_type': line['sourceType'],
                'source_ref': line.get('sourceRef', ''),
            }
            for line in self.validated_data.get('lineItems', [])
        ]
