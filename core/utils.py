import logging
from rest_framework import permissions
from rest_framework.response import Response
from core.exceptions import IllegalTransition, NotFound

logger = logging.getLogger(__name__)


class IsClient(permissions.BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_client


class IsWorker(permissions.BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_worker


class IsHRAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_hr_admin


class IsFinanceAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_finance_admin


class IsPlatformAdmin(permissions.BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_platform_admin


def check_transition(table, current, target, entity='job'):
    """Raise IllegalTransition unless ``current -> target`` is in ``table``."""
    if target not in table.get(current, set()):
        raise IllegalTransition(f"Cannot move {entity} from '{current}' to '{target}'")


def get_or_not_found(queryset, label, **lookup):
    try:
        return queryset.get(**lookup)
    except queryset.model.DoesNotExist:
        raise NotFound(f"{label} not found")


def error_response(exc):
    """Translate a LifecycleError into the API's error payload."""
    logger.info(f"Lifecycle operation refused ({exc.code}): {exc.message}")
    return Response(exc.as_dict(), status=exc.status_code)
