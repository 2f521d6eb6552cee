"""Tests for AuthBackendClient: endpoints, envelope reading and error mapping."""

from __future__ import annotations

import httpx
import pytest

from authcore.models.enums import DomainErrorKind, SecureStoreKey, SocialProvider

from conftest import (
    envelope,
    error_envelope,
    tokens_payload,
    user_payload,
)


class TestEndpoints:
    def test_login_parses_canonical_envelope(self, backend, fake_backend):
        """Should return user and tokens from data.user / data.tokens."""
        result = backend.login("a@b.com", "Secret1!")
        assert result.success is True
        assert result.value.user.email == "a@b.com"
        assert result.value.tokens.access_token == "access-1"
        assert result.value.tokens.refresh_token == "refresh-1"
        assert fake_backend.last_json() == {"email": "a@b.com", "password": "Secret1!"}

    def test_login_accepts_flat_token_fields(self, backend, fake_backend):
        """Should read access/refresh tokens placed directly under data."""
        data = {"user": user_payload(), **tokens_payload("flat-a", "flat-r")}
        fake_backend.reply("POST", "/auth/login", 200, envelope(data))
        result = backend.login("a@b.com", "pw")
        assert result.value.tokens.access_token == "flat-a"
        assert result.value.tokens.refresh_token == "flat-r"

    def test_register_sends_full_name(self, backend, fake_backend):
        result = backend.register("a@b.com", "pw", "Ada Lovelace")
        assert result.success is True
        assert fake_backend.last_json()["full_name"] == "Ada Lovelace"

    def test_social_auth_uses_wire_name(self, backend, fake_backend):
        """Should send the provider through the explicit wire table."""
        result = backend.social_auth(SocialProvider.APPLE, "id-token", full_name="Ada")
        assert result.success is True
        body = fake_backend.last_json()
        assert body["provider"] == "apple"
        assert body["id_token"] == "id-token"
        assert body["full_name"] == "Ada"
        assert "email" not in body

    def test_social_auth_accepts_known_wire_string(self, backend, fake_backend):
        assert backend.social_auth("google", "tok").success is True
        assert fake_backend.last_json()["provider"] == "google"

    def test_social_auth_unknown_provider_is_decoding(self, backend, fake_backend):
        """Should fail with decoding and make no request for an unknown provider."""
        result = backend.social_auth("myspace", "tok")
        assert result.success is False
        assert result.error.kind == DomainErrorKind.DECODING
        assert fake_backend.calls == []

    def test_social_auth_reports_new_user(self, backend, fake_backend):
        data = {"user": user_payload(), "tokens": tokens_payload(), "is_new_user": True}
        fake_backend.reply("POST", "/auth/social", 200, envelope(data))
        assert backend.social_auth(SocialProvider.GOOGLE, "tok").value.is_new_user is True

    def test_refresh_returns_token_pair(self, backend, fake_backend):
        result = backend.refresh("refresh-1")
        assert result.value.access_token == "access-2"
        assert fake_backend.last_json() == {"refresh_token": "refresh-1"}

    @pytest.mark.parametrize(
        "body",
        [
            envelope({"user": user_payload(email="me@b.com")}),
            envelope(user_payload(email="me@b.com")),
            user_payload(email="me@b.com"),
        ],
    )
    def test_fetch_current_user_tolerates_shapes(self, backend, fake_backend, body):
        """Should accept wrapped, enveloped-bare and bare user objects."""
        fake_backend.reply("GET", "/auth/me", 200, body)
        result = backend.fetch_current_user()
        assert result.success is True
        assert result.value.email == "me@b.com"

    def test_logout_with_empty_body(self, backend, fake_backend):
        """Should treat an empty 204 response as success."""
        fake_backend.reply("POST", "/auth/logout", 204)
        assert backend.logout().success is True

    def test_password_reset_endpoints(self, backend, fake_backend):
        assert backend.request_password_reset("a@b.com").success is True
        assert fake_backend.last_json() == {"email": "a@b.com"}
        assert backend.confirm_password_reset("reset-tok", "NewSecret1!").success is True
        assert fake_backend.last_json() == {"token": "reset-tok", "new_password": "NewSecret1!"}


class TestHeaders:
    def test_client_identity_headers(self, backend, fake_backend):
        backend.login("a@b.com", "pw")
        request = fake_backend.requests[-1]
        assert request.headers["X-App-Version"] == "9.9.9"
        assert request.headers["X-Platform"] == "pytest"
        assert request.headers["Accept"] == "application/json"

    def test_no_bearer_without_token(self, backend, fake_backend):
        backend.login("a@b.com", "pw")
        assert "Authorization" not in fake_backend.requests[-1].headers

    def test_bearer_read_from_store_per_request(self, backend, fake_backend, store):
        """Should pick up a rotated access token on the very next request."""
        store.set(SecureStoreKey.ACCESS_TOKEN, "first")
        backend.fetch_current_user()
        assert fake_backend.requests[-1].headers["Authorization"] == "Bearer first"
        store.set(SecureStoreKey.ACCESS_TOKEN, "second")
        backend.fetch_current_user()
        assert fake_backend.requests[-1].headers["Authorization"] == "Bearer second"


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, DomainErrorKind.UNAUTHORIZED),
            (403, DomainErrorKind.FORBIDDEN),
            (404, DomainErrorKind.NOT_FOUND),
            (500, DomainErrorKind.SERVER),
            (503, DomainErrorKind.SERVER),
            (418, DomainErrorKind.UNKNOWN),
        ],
    )
    def test_status_codes(self, backend, fake_backend, status, kind):
        fake_backend.reply("POST", "/auth/login", status)
        result = backend.login("a@b.com", "pw")
        assert result.success is False
        assert result.error.kind == kind
        assert result.error.status_code == status

    def test_server_error_message_carries_code(self, backend, fake_backend):
        fake_backend.reply("POST", "/auth/login", 502)
        error = backend.login("a@b.com", "pw").error
        assert error.user_message == "Server error (Code: 502)"

    def test_envelope_failure_is_validation_with_message(self, backend, fake_backend):
        """Should surface the backend message for success=false envelopes."""
        fake_backend.reply(
            "POST", "/auth/register", 400, error_envelope("Email already registered"),
        )
        error = backend.register("a@b.com", "pw", "Ada").error
        assert error.kind == DomainErrorKind.VALIDATION
        assert error.user_message == "Email already registered"

    def test_numeric_error_code_is_kept_as_text(self, backend, fake_backend):
        """Should classify an envelope with a numeric code instead of raising."""
        fake_backend.reply(
            "POST", "/auth/login", 400,
            {"success": False, "error": {"message": "Bad", "code": 1001}},
        )
        error = backend.login("a@b.com", "pw").error
        assert error.kind == DomainErrorKind.VALIDATION
        assert error.code == "1001"
        assert error.user_message == "Bad"

    @pytest.mark.parametrize("status", [401, 403, 404, 500])
    def test_status_error_with_numeric_code(self, backend, fake_backend, status):
        fake_backend.reply("POST", "/auth/refresh", status, {"error": {"code": status}})
        error = backend.refresh("r-1").error
        assert error.status_code == status
        assert error.code == str(status)

    def test_list_message_is_joined(self, backend, fake_backend):
        fake_backend.reply(
            "POST", "/auth/register", 400,
            {"success": False, "message": ["email taken", "name too short"]},
        )
        error = backend.register("a@b.com", "pw", "Ada").error
        assert error.kind == DomainErrorKind.VALIDATION
        assert error.user_message == "email taken, name too short"

    @pytest.mark.parametrize("message", [42, {"text": "x"}, True, None])
    def test_unusable_message_falls_back_to_generic_text(self, backend, fake_backend, message):
        fake_backend.reply(
            "POST", "/auth/login", 400,
            {"success": False, "message": message, "error": {"code": ["nope"]}},
        )
        error = backend.login("a@b.com", "pw").error
        assert error.kind == DomainErrorKind.VALIDATION
        assert error.code is None
        assert error.user_message == "Request was rejected by the server."

    def test_field_errors_fill_missing_message(self, backend, fake_backend):
        """Should join field-level validation messages when no message is given."""
        fake_backend.reply("POST", "/auth/register", 422, {
            "success": False,
            "errors": [
                {"field": "email", "message": "Invalid email format"},
                {"field": "password", "message": "Password must be at least 8 characters"},
            ],
        })
        error = backend.register("a@b.com", "pw", "Ada").error
        assert error.kind == DomainErrorKind.VALIDATION
        assert error.user_message == (
            "Invalid email format, Password must be at least 8 characters"
        )

    def test_envelope_failure_with_ok_status(self, backend, fake_backend):
        fake_backend.reply("POST", "/auth/login", 200, error_envelope("Account disabled"))
        assert backend.login("a@b.com", "pw").error.kind == DomainErrorKind.VALIDATION

    @pytest.mark.parametrize("code", ["TOKEN_EXPIRED", "INVALID_TOKEN", "UNAUTHORIZED"])
    def test_token_error_codes_are_unauthorized(self, backend, fake_backend, code):
        """Should classify token error codes as unauthorized regardless of status."""
        fake_backend.reply("POST", "/auth/refresh", 400, error_envelope("bad token", code=code))
        error = backend.refresh("r").error
        assert error.kind == DomainErrorKind.UNAUTHORIZED
        assert error.code == code

    def test_transport_error_is_network(self, backend, fake_backend):
        def _boom(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        fake_backend.route("POST", "/auth/login", _boom)
        assert backend.login("a@b.com", "pw").error.kind == DomainErrorKind.NETWORK

    def test_timeout_is_network(self, backend, fake_backend):
        def _slow(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        fake_backend.route("POST", "/auth/refresh", _slow)
        assert backend.refresh("r").error.kind == DomainErrorKind.NETWORK

    def test_non_json_body_is_decoding(self, backend, fake_backend):
        fake_backend.route(
            "POST", "/auth/login",
            lambda request: httpx.Response(200, text="<html>gateway</html>"),
        )
        assert backend.login("a@b.com", "pw").error.kind == DomainErrorKind.DECODING

    def test_json_array_is_decoding(self, backend, fake_backend):
        fake_backend.reply("GET", "/auth/me", 200, [1, 2, 3])
        assert backend.fetch_current_user().error.kind == DomainErrorKind.DECODING

    def test_missing_tokens_is_decoding(self, backend, fake_backend):
        fake_backend.reply("POST", "/auth/login", 200, envelope({"user": user_payload()}))
        assert backend.login("a@b.com", "pw").error.kind == DomainErrorKind.DECODING

    def test_wrong_user_shape_is_decoding(self, backend, fake_backend):
        fake_backend.reply("GET", "/auth/me", 200, envelope({"user": {"id": 1}}))
        assert backend.fetch_current_user().error.kind == DomainErrorKind.DECODING

    def test_empty_access_token_is_decoding(self, backend, fake_backend):
        fake_backend.reply("POST", "/auth/refresh", 200, envelope(tokens_payload(access="")))
        assert backend.refresh("r").error.kind == DomainErrorKind.DECODING
