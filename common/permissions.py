import enum
import logging

from rest_framework.exceptions import NotAuthenticated
from rest_framework.permissions import BasePermission

from core.models import User

logger = logging.getLogger("security.authorization")

ROLE_CAPABILITY_MATRIX = {
    "inventory.browse": {User.Role.ADMIN, User.Role.WORKER1, User.Role.WORKER2, User.Role.USER},
    "inventory.view": {User.Role.ADMIN, User.Role.WORKER1},
    "inventory.manage": {User.Role.ADMIN, User.Role.WORKER1},
    "inventory.delete": {User.Role.ADMIN},
    "qr_code.manage": {User.Role.ADMIN, User.Role.WORKER1},
    "qr_code.delete": {User.Role.ADMIN},
    "qr_code.list_all": {User.Role.ADMIN},
    "category.view": {User.Role.ADMIN, User.Role.WORKER1},
    "category.manage": {User.Role.ADMIN},
    "catalog.view": {User.Role.ADMIN, User.Role.WORKER1, User.Role.WORKER2, User.Role.USER},
    "catalog.manage": {User.Role.ADMIN, User.Role.WORKER1},
    "catalog.delete": {User.Role.ADMIN},
    "supplier.view": {User.Role.ADMIN, User.Role.WORKER1},
    "supplier.metrics": {User.Role.ADMIN, User.Role.WORKER1, User.Role.WORKER2, User.Role.USER},
    "supplier.manage": {User.Role.ADMIN},
    "supplier.communicate": {User.Role.ADMIN, User.Role.WORKER1},
    "procurement.manage": {User.Role.ADMIN, User.Role.WORKER1},
    "goods_receipt.delete": {User.Role.ADMIN},
    "order.manage": {User.Role.ADMIN, User.Role.WORKER2},
    "request.view": {User.Role.ADMIN, User.Role.WORKER2},
    "request.create": {User.Role.ADMIN, User.Role.WORKER1, User.Role.WORKER2, User.Role.USER},
    "request.review": {User.Role.ADMIN, User.Role.WORKER2},
    "user.manage": {User.Role.ADMIN},
}


class AccessDecision(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    ALLOWED = "allowed"


def get_user_role(user):
    if not user or not user.is_authenticated:
        return None
    if user.is_superuser:
        return User.Role.ADMIN
    return getattr(user, "role", None) or User.Role.USER


def evaluate_access(user, capability):
    """Classify a user against a capability.

    Unknown capabilities are never granted to non-superusers.
    """
    if not user or not user.is_authenticated:
        return AccessDecision.UNAUTHENTICATED
    if user.is_superuser:
        return AccessDecision.ALLOWED
    allowed_roles = ROLE_CAPABILITY_MATRIX.get(capability)
    if not allowed_roles or get_user_role(user) not in allowed_roles:
        return AccessDecision.FORBIDDEN
    return AccessDecision.ALLOWED


class RoleCapabilityPermission(BasePermission):
    """Permission class that validates role capability by action/method and logs denied attempts.

    A missing session is reported as 401 and a disallowed role as 403, for every view.
    """

    message = "Insufficient permissions"

    def has_permission(self, request, view):
        capability_map = getattr(view, "permission_action_map", {})
        action_key = getattr(view, "action", None) or request.method.lower()
        capability = capability_map.get(action_key)
        if capability is None:
            return True

        decision = evaluate_access(request.user, capability)
        if decision is AccessDecision.UNAUTHENTICATED:
            raise NotAuthenticated()
        if decision is AccessDecision.FORBIDDEN:
            logger.warning(
                "permission_denied capability=%s user=%s role=%s method=%s path=%s view=%s action=%s",
                capability,
                getattr(request.user, "username", "anonymous"),
                get_user_role(request.user),
                request.method,
                request.path,
                view.__class__.__name__,
                action_key,
            )
            return False
        return True
