import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers

from .models import User
from .validators import normalize_address

logger = logging.getLogger("accounts")


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    serializer for creating user.
    """

    password = serializers.CharField(
        write_only=True, required=True, style={"input_type": "password"}
    )
    wallet_address = serializers.CharField(required=True)

    class Meta:
        model = User
        fields = ("username", "password", "email", "wallet_address")

    def validate_wallet_address(self, value):
        try:
            address = normalize_address(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(e.messages)
        if User.objects.filter(wallet_address=address).exists():
            logger.warning(f"Wallet address already in use: {address}")
            raise serializers.ValidationError("Wallet address already in use")
        return address

    def create(self, validated_data):
        user = User.objects.create_user(
            username=validated_data["username"],
            email=validated_data.get("email"),
            password=validated_data["password"],
            wallet_address=validated_data["wallet_address"],
        )
        logger.info(f"New user registered: {user.username}")
        return user


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "username", "email", "wallet_address")
