"""
Doctor directory used by patients when picking a doctor to book.
"""
from django.conf import settings
from django.core.cache import cache
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from clinic.serializers.records import DoctorDirectoryQuerySerializer
from clinic.services.directory import list_doctors, list_specializations

SPECIALIZATIONS_CACHE_KEY = 'doctors:specializations'


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def directory(request):
    """Doctors with their fee and specialization.

    Query params:
      - q: optional search over name and specialization
      - specialization: exact specialization, ``all`` for every one
    """
    q = DoctorDirectoryQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    term = (q.validated_data.get('q') or '').strip()
    specialization = (q.validated_data.get('specialization') or '').strip()

    cache_key = f"doctors:q={term}:s={specialization}"
    cached = cache.get(cache_key)
    if cached:
        return Response(cached)
    payload = {'ok': True, 'data': list_doctors(term or None, specialization or None)}
    cache.set(cache_key, payload, settings.DOCTOR_DIRECTORY_CACHE_SECONDS)
    return Response(payload)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def specializations(request):
    cached = cache.get(SPECIALIZATIONS_CACHE_KEY)
    if cached:
        return Response(cached)
    payload = {'ok': True, 'data': list_specializations()}
    cache.set(SPECIALIZATIONS_CACHE_KEY, payload, settings.DOCTOR_DIRECTORY_CACHE_SECONDS)
    return Response(payload)
