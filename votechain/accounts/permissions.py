from rest_framework import permissions


class IsAnonymousUser(permissions.BasePermission):
    """
    Custom permissions to only allow anonymous user to access a view
    """

    def has_permission(self, request, view):
        # The request is granted if the user is not authenticated
        return not request.user.is_authenticated


class HasWalletAddress(permissions.BasePermission):
    """
    Allow only authenticated users that carry a wallet address,
    since that address is the identity handed to the ledger.
    """

    message = "A wallet address is required to call the ledger."

    def has_permission(self, request, view):
        user = request.user
        return bool(
            user and user.is_authenticated and getattr(user, "wallet_address", None)
        )


def caller_address(request) -> str:
    """Identity of the caller as trusted by the ledger"""
    return request.user.wallet_address
