"""
Pharmacy endpoints: pending prescriptions, stock and dispensing.
"""
from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment, InventoryBatch
from clinic.permissions import IsPharmacistRole
from clinic.serializers.appointments import appointment_row
from clinic.serializers.pharmacy import DispenseSerializer, InventoryQuerySerializer, PrescriptionQuerySerializer
from clinic.services.dispensing import dispense_prescription, prescription_detail


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacistRole])
def pending(request):
    """Appointments waiting at the pharmacy, oldest first."""
    qs = (
        Appointment.objects.select_related('patient', 'doctor', 'prescription')
        .filter(status=Appointment.STATUS_PHARMACY)
        .order_by('date', 'queue_number')
    )
    data = []
    for appt in qs:
        row = appointment_row(appt)
        rx = getattr(appt, 'prescription', None)
        row['prescriptionId'] = rx.id if rx else None
        data.append(row)
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacistRole])
def prescription(request):
    q = PrescriptionQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': prescription_detail(q.validated_data['appointmentId'])})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPharmacistRole])
def dispense(request):
    s = DispenseSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    dispensing = dispense_prescription(request.user, s.validated_data['prescriptionId'], s.service_items())
    return Response({
        'ok': True,
        'dispensingId': dispensing.id,
        'items': [
            {
                'prescriptionItemId': line.prescription_item_id,
                'batchId': line.inventory_id,
                'quantity': line.quantity_issued,
                'unitPrice': str(line.price_at_issue),
            }
            for line in dispensing.items.order_by('id')
        ],
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPharmacistRole])
def inventory(request):
    q = InventoryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = InventoryBatch.objects.select_related('medicine')
    if q.validated_data.get('medicineId'):
        qs = qs.filter(medicine_id=q.validated_data['medicineId'])
    term = (q.validated_data.get('q') or '').strip()
    if term:
        qs = qs.filter(Q(medicine__brand_name__icontains=term) | Q(medicine__generic_name__icontains=term))
    data = [
        {
            'id': b.id,
            'medicineId': b.medicine_id,
            'medicine': b.medicine.brand_name,
            'genericName': b.medicine.generic_name,
            'batchNumber': b.batch_number,
            'expiryDate': b.expiry_date.isoformat() if b.expiry_date else None,
            'stockLevel': b.stock_level,
            'unitPrice': str(b.unit_price),
        }
        for b in qs.order_by('medicine__brand_name', 'expiry_date', 'id')
    ]
    return Response({'ok': True, 'data': data})
