"""
HTTP and CLI tests.

Tests:
- Health check and security headers
- Password login with and without a second factor
- Second-factor lockout
- Logout and password reset endpoints
- Management commands
"""

from models.audit_log import AuditLog
from models.user import DeletedUser
from security.bruteforce import is_totp_locked, register_totp_failure, reset_totp_attempts
from security.errors import InvalidArgument, StorageTimeout
from tests.conftest import current_code, enroll_totp

CREDENTIALS = {"username": "alice", "password": "Sup3rSecret!"}


def wrong_code(code: str) -> str:
    return f"{(int(code) + 1) % 1000000:06d}"


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json() == {"status": "ok"}

    def test_security_headers(self, client):
        resp = client.get("/health")
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "DENY"


class TestLogin:

    def test_login_sets_cookie(self, client, alice):
        resp = client.post("/auth/login", json=CREDENTIALS)
        assert resp.status_code == 200
        assert resp.get_json()["totp_required"] is False

        cookie = client.get_cookie("_token")
        assert cookie is not None
        assert cookie.http_only

        me = client.get("/auth/me")
        assert me.status_code == 200
        assert me.get_json()["username"] == "alice"

    def test_wrong_password(self, client, alice):
        resp = client.post("/auth/login", json={"username": "alice", "password": "nope"})
        assert resp.status_code == 401
        assert client.get_cookie("_token") is None

    def test_missing_fields(self, client, alice):
        assert client.post("/auth/login", json={"username": "alice"}).status_code == 401
        assert client.post("/auth/login", data="not json").status_code == 401

    def test_non_string_credentials(self, client, alice):
        """Numbers or objects in place of text are rejected, not crashed on."""
        assert client.post("/auth/login", json={"username": 5, "password": "Sup3rSecret!"}).status_code == 401
        assert client.post("/auth/login", json={"username": "alice", "password": 12345}).status_code == 401
        assert client.post("/auth/login", json={"username": ["alice"], "password": {"x": 1}}).status_code == 401
        assert client.post("/auth/login", json=["alice", "Sup3rSecret!"]).status_code == 401

    def test_me_requires_login(self, client):
        assert client.get("/auth/me").status_code == 401

    def test_expired_session(self, client, alice, clock):
        client.post("/auth/login", json=CREDENTIALS)
        clock.advance(8 * 60 * 60)
        assert client.get("/auth/me").status_code == 401

    def test_storage_timeout_maps_to_503(self, client, accounts, alice, monkeypatch):
        def boom(*args, **kwargs):
            raise StorageTimeout("database is locked")

        monkeypatch.setattr(accounts, "login", boom)
        resp = client.post("/auth/login", json=CREDENTIALS)
        assert resp.status_code == 503


class TestSecondFactor:

    def test_totp_flow(self, client, accounts, alice, clock):
        """Password first, then the code; a code works only once."""
        user = enroll_totp(accounts, alice)

        resp = client.post("/auth/login", json=CREDENTIALS)
        assert resp.status_code == 200
        assert resp.get_json()["totp_required"] is True
        assert client.get("/auth/me").status_code == 401

        code = current_code(accounts, user, clock)
        assert client.post("/auth/totp", json={"code": wrong_code(code)}).status_code == 401
        assert client.post("/auth/totp", json={"code": code}).status_code == 200
        assert client.get("/auth/me").status_code == 200

        # a second login cannot reuse the same code
        client.post("/auth/login", json=CREDENTIALS)
        assert client.post("/auth/totp", json={"code": code}).status_code == 401

    def test_success_resets_failures(self, client, accounts, alice, clock):
        user = enroll_totp(accounts, alice)
        client.post("/auth/login", json=CREDENTIALS)
        code = current_code(accounts, user, clock)
        client.post("/auth/totp", json={"code": wrong_code(code)})
        assert accounts.get(user.id).failed_totp_attempts == 1

        client.post("/auth/totp", json={"code": code})
        assert accounts.get(user.id).failed_totp_attempts == 0

    def test_lockout(self, client, accounts, alice, clock):
        user = enroll_totp(accounts, alice)
        client.post("/auth/login", json=CREDENTIALS)
        code = current_code(accounts, user, clock)

        statuses = [client.post("/auth/totp", json={"code": wrong_code(code)}).status_code for _ in range(5)]
        assert statuses == [401, 401, 401, 401, 429]

        # even the right code is refused once locked
        assert client.post("/auth/totp", json={"code": code}).status_code == 429
        assert AuditLog.query.filter_by(action="TOTP_LOCKED").count() == 1
        assert AuditLog.query.filter_by(action="TOTP_FAIL").count() == 5

    def test_malformed_code(self, client, accounts, alice):
        enroll_totp(accounts, alice)
        client.post("/auth/login", json=CREDENTIALS)
        assert client.post("/auth/totp", json={"code": "abc"}).status_code == 400
        assert accounts.get(alice.id).failed_totp_attempts == 0

    def test_without_session(self, client):
        assert client.post("/auth/totp", json={"code": "123456"}).status_code == 401

    def test_already_authenticated(self, client, alice):
        client.post("/auth/login", json=CREDENTIALS)
        assert client.post("/auth/totp", json={"code": "123456"}).status_code == 200


class TestBruteforceHelpers:

    def test_register_and_reset(self, app, accounts, alice):
        assert register_totp_failure(accounts, alice, max_attempts=2) == (1, False)
        assert register_totp_failure(accounts, alice, max_attempts=2) == (2, True)
        assert is_totp_locked(accounts.get(alice.id), max_attempts=2)

        reset_totp_attempts(accounts, accounts.get(alice.id))
        assert not is_totp_locked(accounts.get(alice.id), max_attempts=2)

    def test_default_limit_from_config(self, app, accounts, alice):
        for _ in range(4):
            register_totp_failure(accounts, alice)
        assert not is_totp_locked(accounts.get(alice.id))
        register_totp_failure(accounts, alice)
        assert is_totp_locked(accounts.get(alice.id))


class TestLogout:

    def test_logout(self, client, accounts, alice):
        client.post("/auth/login", json=CREDENTIALS)
        token = client.get_cookie("_token").value

        resp = client.post("/auth/logout")
        assert resp.status_code == 200
        assert accounts.get_session(token) is None
        assert client.get_cookie("_token") is None
        assert client.get("/auth/me").status_code == 401
        assert AuditLog.query.filter_by(action="LOGOUT", user_id=alice.id).count() == 1

    def test_logout_without_session(self, client):
        assert client.post("/auth/logout").status_code == 200


class TestPasswordReset:

    def test_reset(self, client, accounts, alice):
        token = accounts.create_password_reset(alice).token
        resp = client.post("/auth/password_reset", json={"token": token, "password": "NewPass123!"})
        assert resp.status_code == 200

        assert client.post("/auth/login", json=CREDENTIALS).status_code == 401
        assert client.post("/auth/login", json={"username": "alice", "password": "NewPass123!"}).status_code == 200

    def test_invalid_token(self, client, alice):
        resp = client.post("/auth/password_reset", json={"token": "nope", "password": "NewPass123!"})
        assert resp.status_code == 400

    def test_missing_fields(self, client):
        assert client.post("/auth/password_reset", json={"token": "x"}).status_code == 400

    def test_non_string_fields(self, client, accounts, alice):
        token = accounts.create_password_reset(alice).token
        assert client.post("/auth/password_reset", json={"token": token, "password": 12345}).status_code == 400
        assert client.post("/auth/password_reset", json={"token": 7, "password": "NewPass123!"}).status_code == 400
        assert accounts.get_password_reset(token) is not None

    def test_invalid_argument_maps_to_400(self, client, accounts, alice, monkeypatch):
        def reject(*args, **kwargs):
            raise InvalidArgument("password must be a string")

        monkeypatch.setattr(accounts, "reset_password", reject)
        resp = client.post("/auth/password_reset", json={"token": "t", "password": "NewPass123!"})
        assert resp.status_code == 400


class TestCli:

    def test_delete_user(self, app, alice):
        runner = app.test_cli_runner()
        result = runner.invoke(args=["delete-user", "alice"])
        assert result.exit_code == 0
        assert result.output.startswith("alice deleted at 2026-01-01T12:00:00")
        assert DeletedUser.query.filter_by(username="alice").count() == 1

    def test_delete_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=["delete-user", "nobody"])
        assert "User not found" in result.output

    def test_create_password_reset(self, app, accounts, alice):
        result = app.test_cli_runner().invoke(args=["create-password-reset", "a@x.com"])
        token = result.output.strip()
        assert accounts.get_password_reset(token) is not None

    def test_reset_totp_attempts(self, app, client, accounts, alice, clock):
        """A locked-out user can retry after support clears the counter."""
        user = enroll_totp(accounts, alice)
        for _ in range(5):
            register_totp_failure(accounts, user)
        client.post("/auth/login", json=CREDENTIALS)
        code = current_code(accounts, user, clock)
        assert client.post("/auth/totp", json={"code": code}).status_code == 429

        result = app.test_cli_runner().invoke(args=["reset-totp-attempts", "alice"])
        assert result.output.strip() == "alice: 5 failed attempts cleared"
        assert accounts.get(user.id).failed_totp_attempts == 0
        assert AuditLog.query.filter_by(action="TOTP_UNLOCK", user_id=user.id).count() == 1

        assert client.post("/auth/totp", json={"code": code}).status_code == 200

    def test_reset_totp_attempts_unknown_user(self, app):
        result = app.test_cli_runner().invoke(args=["reset-totp-attempts", "nobody"])
        assert "User not found" in result.output
