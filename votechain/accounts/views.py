import logging

from django.utils import timezone
from rest_framework import generics, permissions
from rest_framework.authtoken.models import Token
from rest_framework.authtoken.views import ObtainAuthToken
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response

from .permissions import IsAnonymousUser
from .serializers import UserRegistrationSerializer, UserSerializer

logger = logging.getLogger("accounts")


class CustomAuthToken(ObtainAuthToken):
    """
    Token login that also returns the wallet address the ledger will see
    and updates the `last_login` timestamp.
    """

    def post(self, request, *args, **kwargs):
        logger.info("Authentication attempt for user: %s", request.data.get("username"))

        serializer = self.serializer_class(
            data=request.data, context={"request": request}
        )

        try:
            serializer.is_valid(raise_exception=True)
        except ValidationError:
            logger.warning(
                "Authentication failed for user: %s", request.data.get("username")
            )
            raise

        user = serializer.validated_data["user"]
        token, created = Token.objects.get_or_create(user=user)

        user.last_login = timezone.now()
        user.save(update_fields=["last_login"])

        logger.info("User authenticated sucessfully: %s", user.username)
        if created:
            logger.info("New token created for user: %s", user.username)

        return Response(
            {
                "token": token.key,
                "user_id": user.pk,
                "wallet_address": user.wallet_address,
            }
        )


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for creating new user instance.
    """

    serializer_class = UserRegistrationSerializer
    permission_classes = [IsAnonymousUser]

    def create(self, request, *args, **kwargs):
        logger.info("User registration attempt: %s", request.data.get("username"))
        try:
            response = super().create(request, *args, **kwargs)
        except ValidationError as e:
            logger.error(
                "User registration failed for %s. Error: %s",
                request.data.get("username"),
                e.detail,
            )
            raise
        logger.info("User registered sucessfully -> %s", request.data.get("username"))
        return response


class CurrentUserView(generics.RetrieveAPIView):
    """
    API endpoint returning the authenticated user and wallet address.
    """

    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user
