import pytest
from flask import Flask
from flask_jwt_extended import JWTManager, create_access_token, jwt_required

from agora.authentication.rbac import Permission, RBACService, UserRole


class StaticLeaderboard:
    def __init__(self, admins):
        self.admins = set(admins)

    def is_admin(self, user_id):
        return user_id in self.admins


@pytest.fixture
def rbac():
    return RBACService(StaticLeaderboard({1}))


def test_roles_follow_the_leaderboard(rbac):
    assert rbac.role_of(1) is UserRole.ADMIN
    assert rbac.role_of("2") is UserRole.MEMBER


def test_permissions(rbac):
    assert rbac.has_permission(2, Permission.CREATE_SUGGESTION)
    assert not rbac.has_permission(2, Permission.DELETE_REFERENDUM)
    assert rbac.has_permission(1, "view_audit_log")
    assert set(rbac.get_permissions(2)) < set(rbac.get_permissions(1))


def test_require_permission_decorator(rbac):
    app = Flask(__name__)
    app.config['JWT_SECRET_KEY'] = "test_secret"
    JWTManager(app)

    @app.route('/audit')
    @jwt_required()
    @rbac.require_permission(Permission.VIEW_AUDIT_LOG)
    def audit():
        return "ok"

    with app.app_context():
        admin = create_access_token(identity="1")
        member = create_access_token(identity="2")
        email = create_access_token(identity="someone@example.com")

    client = app.test_client()
    assert client.get('/audit', headers={"Authorization": f"Bearer {admin}"}).status_code == 200
    assert client.get('/audit', headers={"Authorization": f"Bearer {member}"}).status_code == 403
    assert client.get('/audit', headers={"Authorization": f"Bearer {email}"}).status_code == 401
    assert client.get('/audit').status_code == 401
