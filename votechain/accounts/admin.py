import logging

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User

logger = logging.getLogger("accounts")


class UserAdmin(BaseUserAdmin):
    list_display = ("username", "email", "wallet_address", "is_staff")
    search_fields = ("username", "email", "wallet_address")
    fieldsets = BaseUserAdmin.fieldsets + (("Ledger", {"fields": ("wallet_address",)}),)

    def has_change_permission(self, request, obj=None):
        return request.user.is_superuser

    def has_delete_permission(self, request, obj=None):
        return request.user.is_superuser

    def has_view_permission(self, request, obj=None):
        return request.user.is_superuser or request.user.is_staff

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(f"User updated by admin: {request.user.username} - {obj.username}")
        else:
            logger.info(f"User created by admin: {request.user.username} - {obj.username}")
        super().save_model(request, obj, form, change)


admin.site.register(User, UserAdmin)
