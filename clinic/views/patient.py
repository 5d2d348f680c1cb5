"""
A patient's own records and family links.
"""
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.permissions import IsPatientRole
from clinic.serializers.family import FamilyLinkRequestSerializer
from clinic.serializers.records import PrescriptionDetailQuerySerializer
from clinic.services.family import family_members, send_link_request, sent_requests
from clinic.services.records import patient_lab_reports, patient_prescription, patient_prescriptions


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def my_prescriptions(request):
    return Response({'ok': True, 'data': patient_prescriptions(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def my_prescription_detail(request):
    q = PrescriptionDetailQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': patient_prescription(request.user, q.validated_data['id'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def my_lab_reports(request):
    return Response({'ok': True, 'data': patient_lab_reports(request.user)})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def family(request):
    """Approved family members plus the requests still awaiting review."""
    return Response({
        'ok': True,
        'data': {
            'members': family_members(request.user),
            'pending': sent_requests(request.user),
        },
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
def family_link(request):
    s = FamilyLinkRequestSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    link = send_link_request(request.user, s.validated_data['targetEmail'], s.validated_data['relationship'])
    return Response({
        'ok': True,
        'requestId': link.id,
        'status': link.status,
        'message': 'Link request sent. Waiting for receptionist validation.',
    }, status=status.HTTP_201_CREATED)
