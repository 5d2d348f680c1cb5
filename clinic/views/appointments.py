"""
Patient facing appointment endpoints and the generic status update.

Booking hands out the queue number; every other change of an
appointment's status is delegated to the workflow state machine, which
decides whether the requesting user may make it.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework import status

from clinic.exceptions import NotFound, Unauthorized
from clinic.models import Appointment, User
from clinic.permissions import IsPatientRole
from clinic.serializers.appointments import (
    AppointmentListQuerySerializer,
    AvailabilityQuerySerializer,
    BookAppointmentSerializer,
    CancelAppointmentSerializer,
    UpdateStatusSerializer,
    appointment_row,
)
from clinic.services.queueing import book_appointment, check_availability
from clinic.services.workflow import cancel_appointment, next_statuses, transition, transition_history


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def availability(request):
    """Next queue number and estimated time for a doctor on a given day."""
    q = AvailabilityQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    data = check_availability(q.validated_data['doctorId'], q.validated_data['date'])
    return Response({'ok': True, 'data': data})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
def book(request):
    s = BookAppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = book_appointment(
        request.user,
        s.validated_data['doctorId'],
        s.validated_data['date'],
        s.validated_data.get('reason'),
    )
    return Response({
        'ok': True,
        'appointmentId': appt.id,
        'queueNumber': appt.queue_number,
        'timeSlot': appt.time_slot,
        'status': appt.status,
    }, status=status.HTTP_201_CREATED)


book.cls.throttle_scope = 'booking'


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsPatientRole])
def cancel(request):
    s = CancelAppointmentSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = cancel_appointment(s.validated_data['appointmentId'], request.user, s.validated_data.get('reason', ''))
    return Response({'ok': True, 'appointmentId': appt.id, 'status': appt.status})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def update_status(request):
    """Move an appointment to a new status; the state machine checks the role."""
    s = UpdateStatusSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    appt = transition(
        s.validated_data['appointmentId'],
        s.validated_data['status'],
        request.user,
        s.validated_data.get('reason', ''),
    )
    return Response({'ok': True, 'appointmentId': appt.id, 'status': appt.status})


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsPatientRole])
def my_appointments(request):
    q = AppointmentListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    qs = Appointment.objects.select_related('patient', 'doctor').filter(patient=request.user)
    if q.validated_data.get('status'):
        qs = qs.filter(status=q.validated_data['status'])
    if q.validated_data.get('date'):
        qs = qs.filter(date=q.validated_data['date'])
    qs = qs.order_by('-date', 'queue_number')

    total = qs.count()
    page = q.validated_data.get('page', 1)
    page_size = q.validated_data.get('pageSize', 20)
    start = (page - 1) * page_size
    data = [appointment_row(a) for a in qs[start:start + page_size]]
    return Response({'ok': True, 'data': data, 'pagination': {'total': total, 'page': page, 'pageSize': page_size}})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def appointment_detail(request):
    """Appointment with its transition history.

    Patients and doctors only see their own appointments; other staff see
    any appointment.
    """
    appointment_id = request.query_params.get('id') or request.query_params.get('appointmentId')
    appt = (
        Appointment.objects.select_related('patient', 'doctor')
        .filter(id=appointment_id)
        .first()
        if str(appointment_id or '').isdigit() else None
    )
    if not appt:
        raise NotFound('Appointment not found')
    user: User = request.user  # type: ignore[assignment]
    if user.role == User.ROLE_PATIENT and appt.patient_id != user.id:
        raise Unauthorized('You can only view your own appointments')
    if user.role == User.ROLE_DOCTOR and appt.doctor_id != user.id:
        raise Unauthorized('You can only view your own patients')

    data = appointment_row(appt)
    data.update({
        'doctorNotes': appt.doctor_notes,
        'createdAt': appt.created_at.strftime('%Y-%m-%d %H:%M'),
        'nextStatuses': next_statuses(appt, user),
        'transitionHistory': transition_history(appt),
    })
    return Response({'ok': True, 'data': data})
