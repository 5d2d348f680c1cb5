from rest_framework import serializers

from clinic.models import FamilyLink


class FamilyLinkRequestSerializer(serializers.Serializer):
    targetEmail = serializers.EmailField()
    relationship = serializers.ChoiceField(choices=[c for c, _ in FamilyLink.RELATIONSHIP_CHOICES])


class FamilyReviewSerializer(serializers.Serializer):
    ACTION_APPROVE = 'approve'
    ACTION_REJECT = 'reject'

    requestId = serializers.IntegerField(min_value=1)
    action = serializers.ChoiceField(choices=[ACTION_APPROVE, ACTION_REJECT])
