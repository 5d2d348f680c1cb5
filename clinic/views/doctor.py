from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.models import Appointment, DailyQueue
from clinic.permissions import IsDoctorRole
from clinic.serializers.appointments import AppointmentListQuerySerializer, appointment_row
from clinic.serializers.consultation import SaveConsultationSerializer
from clinic.serializers.records import MedicineSearchQuerySerializer, PatientHistoryQuerySerializer
from clinic.services import records
from clinic.services.consultation import save_consultation
from clinic.services.directory import search_medicines


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def doctor_queue(request):
    """Today's (or ``date``'s) queue for the signed-in doctor, in queue order."""
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    date = q.validated_data.get('date') or timezone.localdate()

    qs = (
        Appointment.objects.select_related('patient', 'doctor')
        .filter(doctor=request.user, date=date)
        .exclude(status=Appointment.STATUS_CANCELLED)
    )
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])
    data = [appointment_row(a) for a in qs.order_by('queue_number')]

    queue = DailyQueue.objects.filter(doctor=request.user, date=date).first()
    waiting = sum(1 for a in data if a['status'] in (Appointment.STATUS_BOOKED, Appointment.STATUS_ARRIVED))
    return Response({
        'ok': True,
        'meta': {
            'date': date.isoformat(),
            'currentNumber': queue.current_number if queue else 0,
            'waitingCount': waiting,
        },
        'data': data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def consultation_save(request):
    s = SaveConsultationSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    result = save_consultation(
        request.user,
        s.validated_data['appointmentId'],
        s.validated_data.get('notes', ''),
        prescription_items=s.service_items(),
        lab_test_ids=s.validated_data.get('labTestIds', []),
        send_to_lab=s.validated_data.get('sendToLab', False),
    )
    return Response({'ok': True, 'data': result})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def patient_history(request):
    """Demographics, recent visits, prescriptions and lab reports of a patient."""
    q = PatientHistoryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': records.patient_history(request.user, q.validated_data['patientId'])})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDoctorRole])
def medicine_search(request):
    q = MedicineSearchQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    return Response({'ok': True, 'data': search_medicines((q.validated_data.get('q') or '').strip())})
