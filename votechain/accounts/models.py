import logging

from django.contrib.auth.models import AbstractUser
from django.db import models

from .validators import normalize_address, validate_wallet_address

logger = logging.getLogger("accounts")


class User(AbstractUser):
    wallet_address = models.CharField(
        max_length=42,
        unique=True,
        null=True,
        blank=True,
        validators=[validate_wallet_address],
        help_text="Identity passed to the voting ledger",
    )

    def __str__(self):
        return self.username

    def save(self, *args, **kwargs):
        if self.wallet_address:
            self.wallet_address = normalize_address(self.wallet_address)
        if self.pk and User.objects.filter(pk=self.pk).exists():
            logger.info(f"Updating user -> {self.username}")
        else:
            logger.info(f"Saving user: {self.username} wallet={self.wallet_address}")
        super().save(*args, **kwargs)
