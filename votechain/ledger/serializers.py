from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from accounts.validators import normalize_address


class AddressField(serializers.CharField):
    """Wallet address normalized to checksum form"""

    def to_internal_value(self, data):
        value = super().to_internal_value(data)
        try:
            return normalize_address(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)


class CandidateSerializer(serializers.Serializer):
    id = serializers.IntegerField(read_only=True)
    # stored verbatim, like the cid
    name = serializers.CharField(max_length=255, allow_blank=True, trim_whitespace=False)
    vote_count = serializers.IntegerField(read_only=True)


class VoterRegistrationSerializer(serializers.Serializer):
    address = AddressField()


class StartVotingSerializer(serializers.Serializer):
    # duration of the window in seconds; zero opens an already expired window
    duration = serializers.IntegerField(min_value=0)


class VoteSerializer(serializers.Serializer):
    """
    Ballot submitted by a voter.
    `cid` is an opaque reference to off-ledger evidence; it is not checked
    and may be empty.
    """

    candidate_id = serializers.IntegerField()
    cid = serializers.CharField(allow_blank=True, required=False, default="", trim_whitespace=False)


class BallotRecordSerializer(serializers.Serializer):
    voter = serializers.CharField()
    candidate_id = serializers.IntegerField()
    cid = serializers.CharField(allow_blank=True)
