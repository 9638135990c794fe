"""
Role-based access control for service methods.
Runs against the ProfileContext carried by the service instance.
"""
import functools
import logging

from zabibu_fresh.errors import Unauthenticated, Unauthorized

logger = logging.getLogger(__name__)

RESOURCES_FOR_ROLES = {
    'seller': {
        'users/me': ['read', 'write'],
        'products': ['read', 'write', 'delete'],  # Own products only, ownership checked by the service
        'messages': ['read', 'write'],
        'conversations': ['read'],
    },
    'buyer': {
        'users/me': ['read', 'write'],
        'products': ['read'],
        'messages': ['read', 'write'],
        'conversations': ['read'],
        'conversations/start': ['write'],  # "Contact seller"
    },
}


def has_permission(user_role: str, resource_name: str, required_permission: str) -> bool:
    """Check if user role has permission for the resource and action"""
    if user_role not in RESOURCES_FOR_ROLES:
        return False

    user_permissions = RESOURCES_FOR_ROLES[user_role]

    if resource_name in user_permissions:
        return required_permission in user_permissions[resource_name]

    parent_resource = resource_name.split('/')[0] if '/' in resource_name else resource_name
    if parent_resource in user_permissions:
        return required_permission in user_permissions[parent_resource]

    return False


def check_permission(context, resource: str, permission: str, action: str = None):
    """
    Raise unless the context's resolved profile may perform permission on resource.
    No user -> Unauthenticated; user without resolved profile or wrong role -> Unauthorized.
    """
    if context is None or not context.is_authenticated:
        raise Unauthenticated(action=action)

    user_role = context.user_role
    if user_role is None:
        logger.warning(f"Access denied - profile not resolved, Resource: {resource}, Permission: {permission}")
        raise Unauthorized("Your profile is not ready yet", action=action)

    logger.debug(f"RBAC Check - User: {user_role}, Resource: {resource}, Permission: {permission}")

    if not has_permission(user_role, resource, permission):
        logger.warning(f"Access denied - User: {user_role}, Resource: {resource}, Permission: {permission}")
        raise Unauthorized(
            f"Access denied. {user_role.title()} role does not have {permission} permission for {resource}",
            action=action
        )


def require_permission(resource: str, permission: str, action: str = None):
    """
    Decorate an async method of a service that has a ``context`` attribute.
    The check runs before the method body, so a denied call makes no remote request.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            check_permission(self.context, resource, permission, action=action)
            return await func(self, *args, **kwargs)
        return wrapper
    return decorator


# Product permissions
require_product_write = require_permission("products", "write", action="add product")
require_product_delete = require_permission("products", "delete", action="delete product")

# Messaging permissions
require_conversation_start = require_permission("conversations/start", "write", action="contact seller")

# Profile permissions
require_profile_write = require_permission("users/me", "write", action="update profile")

# Dashboard
require_dashboard_read = require_permission("users/me", "read", action="load dashboard")
