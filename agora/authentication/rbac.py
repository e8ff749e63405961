# agora/authentication/rbac.py

from enum import Enum
from functools import wraps

from flask import abort
from flask_jwt_extended import get_jwt_identity

# Role-based access control. There are no appointed roles: a member holds the
# admin role while they sit in the top seats of the admin election.


class UserRole(Enum):
    MEMBER = "member"
    ADMIN = "admin"


class Permission(Enum):
    VOTE = "vote"
    CREATE_SUGGESTION = "create_suggestion"
    POST_MESSAGE = "post_message"
    POST_LEAD = "post_lead"
    DELETE_ANY_SUGGESTION = "delete_any_suggestion"
    DELETE_REFERENDUM = "delete_referendum"
    DELETE_ANY_LEAD = "delete_any_lead"
    VIEW_AUDIT_LOG = "view_audit_log"


_MEMBER_PERMISSIONS = [
    Permission.VOTE,
    Permission.CREATE_SUGGESTION,
    Permission.POST_MESSAGE,
    Permission.POST_LEAD,
]

ROLE_PERMISSIONS = {
    UserRole.MEMBER: _MEMBER_PERMISSIONS,
    UserRole.ADMIN: _MEMBER_PERMISSIONS + [
        Permission.DELETE_ANY_SUGGESTION,
        Permission.DELETE_REFERENDUM,
        Permission.DELETE_ANY_LEAD,
        Permission.VIEW_AUDIT_LOG,
    ],
}


class RBACService:
    def __init__(self, leaderboard):
        self.leaderboard = leaderboard

    def role_of(self, user_id) -> UserRole:
        return UserRole.ADMIN if self.leaderboard.is_admin(int(user_id)) else UserRole.MEMBER

    def has_permission(self, user_id, permission) -> bool:
        if isinstance(permission, str):
            permission = Permission(permission)
        return permission in ROLE_PERMISSIONS[self.role_of(user_id)]

    def get_permissions(self, user_id):
        return list(ROLE_PERMISSIONS[self.role_of(user_id)])

    def require_permission(self, permission):
        """View decorator; must sit below @jwt_required()."""
        def decorator(func):
            @wraps(func)
            def wrapper(*args, **kwargs):
                identity = get_jwt_identity()
                if identity is None:
                    abort(401)
                try:
                    allowed = self.has_permission(identity, permission)
                except (TypeError, ValueError):
                    abort(401)
                if not allowed:
                    abort(403)
                return func(*args, **kwargs)
            return wrapper
        return decorator
