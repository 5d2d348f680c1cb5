from django.conf import settings
from django.core.cache import cache
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.permissions import IsLabAssistantRole
from clinic.serializers.lab import CompleteLabSerializer, LabPendingQuerySerializer, LabReportActionSerializer
from clinic.services.lab import complete_lab_test, pending_reports, start_lab_test, lab_test_catalogue

TEST_TYPES_CACHE_KEY = 'lab:test-types'


def _report_row(report) -> dict:
    appt = report.appointment
    return {
        'id': report.id,
        'appointmentId': appt.id,
        'patientName': appt.patient.display_name,
        'doctorName': appt.doctor.display_name,
        'date': appt.date.isoformat(),
        'testName': report.test_name,
        'price': str(report.price),
        'status': report.status,
        'requestedAt': report.created_at.strftime('%Y-%m-%d %H:%M'),
    }


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def test_types(request):
    """Lab test catalogue used when prescribing (cached)."""
    cached = cache.get(TEST_TYPES_CACHE_KEY)
    if cached:
        return Response(cached)
    payload = {'ok': True, 'data': lab_test_catalogue()}
    cache.set(TEST_TYPES_CACHE_KEY, payload, settings.LAB_TEST_TYPES_CACHE_SECONDS)
    return Response(payload)


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsLabAssistantRole])
def pending(request):
    q = LabPendingQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = [_report_row(r) for r in pending_reports(q.validated_data.get('date'))]
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabAssistantRole])
def start(request):
    s = LabReportActionSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    report = start_lab_test(s.validated_data['reportId'], request.user)
    return Response({'ok': True, 'reportId': report.id, 'status': report.status})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsLabAssistantRole])
def complete(request):
    s = CompleteLabSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    v = s.validated_data
    report = complete_lab_test(
        v['reportId'], request.user, v['fileUrl'], v.get('fileName', ''), v.get('fileType', ''),
    )
    report.appointment.refresh_from_db(fields=['status'])
    return Response({
        'ok': True,
        'reportId': report.id,
        'status': report.status,
        'appointmentStatus': report.appointment.status,
    })
