"""
Front desk: the day's board, billing and family link review.
"""
from decimal import Decimal

from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.models import Appointment
from clinic.permissions import IsReceptionistRole
from clinic.serializers.appointments import AppointmentListQuerySerializer, appointment_row
from clinic.serializers.billing import BreakdownQuerySerializer, CreateInvoiceSerializer
from clinic.serializers.family import FamilyReviewSerializer
from clinic.services.billing import create_invoice, invoice_breakdown
from clinic.services.family import pending_link_requests, review_link_request


def _as_str(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_as_str(v) for v in value]
    if isinstance(value, dict):
        return {k: _as_str(v) for k, v in value.items()}
    return value


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsReceptionistRole])
def board(request):
    """All appointments of a day with per-status counts."""
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    date = q.validated_data.get('date') or timezone.localdate()
    qs = (
        Appointment.objects.select_related('patient', 'doctor', 'invoice')
        .filter(date=date)
        .order_by('doctor_id', 'queue_number')
    )
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])

    counts = {code: 0 for code, _ in Appointment.STATUS_CHOICES}
    data = []
    for appt in qs:
        row = appointment_row(appt)
        row['billed'] = hasattr(appt, 'invoice')
        counts[appt.status] += 1
        data.append(row)
    return Response({'ok': True, 'meta': {'date': date.isoformat(), 'counts': counts}, 'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsReceptionistRole])
def invoice_breakdown_view(request):
    q = BreakdownQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': _as_str(invoice_breakdown(q.validated_data['appointmentId']))})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsReceptionistRole])
def invoice_create(request):
    s = CreateInvoiceSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    invoice = create_invoice(
        request.user,
        s.validated_data['appointmentId'],
        s.service_items(),
        s.validated_data['total'],
        s.validated_data['method'],
    )
    return Response({
        'ok': True,
        'invoiceId': invoice.id,
        'total': str(invoice.total_amount),
        'paymentStatus': invoice.payment_status,
        'paidAt': invoice.paid_at.strftime('%Y-%m-%d %H:%M'),
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsReceptionistRole])
def family_requests(request):
    """Family link requests waiting for review, oldest first."""
    return Response({'ok': True, 'data': pending_link_requests()})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsReceptionistRole])
def family_review(request):
    s = FamilyReviewSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    link = review_link_request(
        request.user,
        s.validated_data['requestId'],
        approve=s.validated_data['action'] == FamilyReviewSerializer.ACTION_APPROVE,
    )
    return Response({'ok': True, 'requestId': link.id, 'status': link.status})
