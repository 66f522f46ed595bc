"""
Health endpoint, CORS headers and CLI commands.
"""

from datetime import timedelta

from storefront.models import Category, User, UserSession
from storefront.services.session_service import create_session
from storefront.time_utils import utcnow


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json["status"] == "healthy"
    assert resp.json["checks"]["database"]["status"] == "healthy"


def test_cors_only_for_configured_origins(client, db_session):
    allowed = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
    assert allowed.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    denied = client.get("/api/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in denied.headers


class TestCli:

    def test_system_init_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        args = ["system", "init", "--admin-email", "boss@example.com", "--admin-password", "Boss1234"]

        first = runner.invoke(args=args)
        assert first.exit_code == 0, first.output
        second = runner.invoke(args=args)
        assert second.exit_code == 0, second.output

        slugs = sorted(c.slug for c in db_session.query(Category).all())
        assert slugs == ["combos", "consoles", "games", "hardware", "peripherals", "speakers"]
        admin = db_session.query(User).filter_by(email="boss@example.com").one()
        assert admin.role == "admin"

    def test_create_admin_promotes_existing_user(self, app, customer, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create-admin", "--name", "Ana", "--email", customer.email, "--password", "Whatever1",
        ])
        assert result.exit_code == 0, result.output
        db_session.expire_all()
        assert db_session.get(User, customer.id).role == "admin"

    def test_create_admin_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create-admin", "--name", "Weak", "--email", "weak@example.com", "--password", "weak",
        ])
        assert result.exit_code != 0

    def test_sessions_cleanup_removes_only_expired(self, app, customer, other_customer, db_session):
        expired, _ = create_session(customer)
        expired.expires_at = utcnow() - timedelta(days=1)
        live, _ = create_session(other_customer)
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["sessions", "cleanup"])
        assert result.exit_code == 0, result.output
        assert "Deleted 1" in result.output
        assert db_session.query(UserSession).count() == 1
