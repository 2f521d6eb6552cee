"""
Auth Backend Client.

One method per authentication endpoint of the REST backend.  Every
method returns an ``ApiResult`` carrying either the parsed payload or a
``DomainError``; nothing raises out of this module.

Failure classification is total:

============================  =========================
Failure                       ``DomainErrorKind``
============================  =========================
HTTP 401                      ``UNAUTHORIZED``
HTTP 403                      ``FORBIDDEN``
HTTP 404                      ``NOT_FOUND``
HTTP 5xx                      ``SERVER`` (status kept)
timeout / DNS / refused       ``NETWORK``
non-JSON or wrong shape       ``DECODING``
envelope ``success=false``    ``VALIDATION`` (message kept)
anything else                 ``UNKNOWN``
============================  =========================

An envelope failure whose error code says the token is invalid or
expired is classified as ``UNAUTHORIZED`` regardless of HTTP status.

Wire contract
-------------
Canonical responses use ``{success, data, message, error}`` with
``data.user`` and ``data.tokens``.  The reader also accepts flat token
fields under ``data`` and, for ``/auth/me``, a bare user object.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Union

import httpx
from pydantic import ValidationError

from authcore.logger import StructuredLogger
from authcore.models.auth_models import ApiResult, AuthPayload, DomainError, TokenPair
from authcore.models.enums import (
    SOCIAL_PROVIDER_TO_WIRE,
    WIRE_TO_SOCIAL_PROVIDER,
    DomainErrorKind,
    SocialProvider,
)
from authcore.models.user import User
from authcore.services.base_service import BaseService

TokenProvider = Callable[[], Optional[str]]

_UNAUTHORIZED_CODES: frozenset[str] = frozenset({
    "UNAUTHORIZED",
    "INVALID_TOKEN",
    "TOKEN_EXPIRED",
})

_STATUS_TO_KIND: dict[int, DomainErrorKind] = {
    401: DomainErrorKind.UNAUTHORIZED,
    403: DomainErrorKind.FORBIDDEN,
    404: DomainErrorKind.NOT_FOUND,
}

_TOKEN_FIELDS: tuple[str, ...] = ("access_token", "refresh_token", "token_type", "expires_in")


class _DecodingFailure(ValueError):
    """Raised internally when a payload does not have the expected shape."""


class AuthBackendClient(BaseService):
    """Typed wrapper over the ``/auth/*`` REST endpoints.

    Parameters
    ----------
    base_url:
        API root including version, e.g. ``https://host/api/v1``.
    logger:
        Structured JSON logger.
    token_provider:
        Callable returning the current access token (or ``None``); read
        on every request so a refreshed token is picked up immediately.
    app_version, platform_name:
        Sent as ``X-App-Version`` / ``X-Platform`` headers.
    timeout:
        httpx timeout configuration.
    transport:
        Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        base_url: str,
        logger: StructuredLogger,
        token_provider: TokenProvider,
        app_version: str = "1.0.0",
        platform_name: str = "python",
        timeout: Optional[httpx.Timeout] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        super().__init__(logger)
        self._token_provider: TokenProvider = token_provider
        self._client: httpx.Client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout or httpx.Timeout(30.0, connect=10.0),
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-App-Version": app_version,
                "X-Platform": platform_name,
            },
        )

    # ==================================================================
    # Endpoints
    # ==================================================================

    def login(self, email: str, password: str) -> ApiResult[AuthPayload]:
        """``POST /auth/login``."""
        result = self._request("POST", "/auth/login", {"email": email, "password": password})
        return self._parse(result, _parse_auth_payload)

    def register(self, email: str, password: str, full_name: str) -> ApiResult[AuthPayload]:
        """``POST /auth/register``."""
        result = self._request(
            "POST",
            "/auth/register",
            {"email": email, "password": password, "full_name": full_name},
        )
        return self._parse(result, _parse_auth_payload)

    def social_auth(
        self,
        provider: Union[SocialProvider, str],
        id_token: str,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
    ) -> ApiResult[AuthPayload]:
        """``POST /auth/social`` with a provider-issued identity token."""
        resolved: Optional[SocialProvider] = (
            provider if isinstance(provider, SocialProvider)
            else WIRE_TO_SOCIAL_PROVIDER.get(provider)
        )
        if resolved is None:
            return ApiResult.fail(DomainError(
                kind=DomainErrorKind.DECODING,
                message=f"Unsupported sign-in provider: {provider!r}",
            ))

        body: dict[str, Any] = {
            "provider": SOCIAL_PROVIDER_TO_WIRE[resolved],
            "id_token": id_token,
        }
        if email is not None:
            body["email"] = email
        if full_name is not None:
            body["full_name"] = full_name

        result = self._request("POST", "/auth/social", body)
        return self._parse(result, _parse_auth_payload)

    def refresh(self, refresh_token: str) -> ApiResult[TokenPair]:
        """``POST /auth/refresh``; returns the new token pair."""
        result = self._request("POST", "/auth/refresh", {"refresh_token": refresh_token})
        return self._parse(result, _parse_token_pair)

    def logout(self) -> ApiResult[None]:
        """``POST /auth/logout``; callers treat failure as best-effort."""
        result = self._request("POST", "/auth/logout", {})
        return self._parse(result, _ignore_payload)

    def fetch_current_user(self) -> ApiResult[User]:
        """``GET /auth/me``; tolerates wrapped and bare user shapes."""
        result = self._request("GET", "/auth/me")
        return self._parse(result, _parse_user)

    def request_password_reset(self, email: str) -> ApiResult[None]:
        """``POST /auth/reset-password``."""
        result = self._request("POST", "/auth/reset-password", {"email": email})
        return self._parse(result, _ignore_payload)

    def confirm_password_reset(self, token: str, new_password: str) -> ApiResult[None]:
        """``POST /auth/reset-password/confirm``."""
        result = self._request(
            "POST",
            "/auth/reset-password/confirm",
            {"token": token, "new_password": new_password},
        )
        return self._parse(result, _ignore_payload)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    # ==================================================================
    # Transport and classification
    # ==================================================================

    def _request(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
    ) -> ApiResult[Any]:
        """Perform one request and unwrap the envelope.

        Returns the envelope's ``data`` (or the whole body when the
        response is not enveloped) on success.
        """
        headers: dict[str, str] = {}
        access_token: Optional[str] = self._token_provider()
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self._logger.debug("API request: %s %s", method, path)

        try:
            response: httpx.Response = self._client.request(
                method, path, json=body, headers=headers,
            )
        except httpx.TransportError as exc:
            self._logger.warning(
                "Network error on %s %s: %s", method, path, type(exc).__name__,
                extra={"event": "API_NETWORK_ERROR"},
            )
            return ApiResult.fail(DomainError(kind=DomainErrorKind.NETWORK))
        except httpx.HTTPError as exc:
            self._logger.warning(
                "HTTP client error on %s %s: %s", method, path, exc,
                extra={"event": "API_ERROR"},
            )
            return ApiResult.fail(DomainError(kind=DomainErrorKind.UNKNOWN))

        status: int = response.status_code
        envelope: Optional[dict[str, Any]] = _json_object(response)

        if status in _STATUS_TO_KIND or status >= 500:
            error = self._status_error(status, envelope)
            self._logger.warning(
                "API %s %s failed with HTTP %d (%s).", method, path, status, error.kind,
                extra={"event": "API_ERROR", "status_code": str(status)},
            )
            return ApiResult.fail(error)

        if envelope is not None and envelope.get("success") is False:
            error = _envelope_error(envelope, status)
            self._logger.warning(
                "API %s %s rejected: %s", method, path, error.message,
                extra={"event": "API_REJECTED", "error_code": str(error.code)},
            )
            return ApiResult.fail(error)

        if status >= 400:
            self._logger.warning(
                "API %s %s failed with unclassified HTTP %d.", method, path, status,
                extra={"event": "API_ERROR", "status_code": str(status)},
            )
            return ApiResult.fail(DomainError(kind=DomainErrorKind.UNKNOWN, status_code=status))

        if envelope is None:
            if not response.content and method != "GET":
                return ApiResult.ok(None)
            return ApiResult.fail(DomainError(
                kind=DomainErrorKind.DECODING,
                message="Response body is not a JSON object.",
                status_code=status,
            ))

        if "success" in envelope:
            return ApiResult.ok(envelope.get("data"))
        return ApiResult.ok(envelope)

    @staticmethod
    def _status_error(status: int, envelope: Optional[dict[str, Any]]) -> DomainError:
        message, code = _envelope_message(envelope) if envelope else (None, None)
        if status >= 500:
            return DomainError(
                kind=DomainErrorKind.SERVER, status_code=status, message=message, code=code,
            )
        return DomainError(kind=_STATUS_TO_KIND[status], status_code=status, message=message, code=code)

    def _parse(
        self,
        result: ApiResult[Any],
        parser: Callable[[Any], Any],
    ) -> ApiResult[Any]:
        if not result.success:
            return result
        try:
            return ApiResult.ok(parser(result.value))
        except (ValidationError, _DecodingFailure) as exc:
            self._logger.warning(
                "Unexpected response shape: %s", exc,
                extra={"event": "API_DECODING_ERROR"},
            )
            return ApiResult.fail(DomainError(kind=DomainErrorKind.DECODING))


# ---------------------------------------------------------------------------
# Payload parsers
# ---------------------------------------------------------------------------

def _json_object(response: httpx.Response) -> Optional[dict[str, Any]]:
    """Return the body as a dict, or ``None`` if it is not a JSON object."""
    if not response.content:
        return None
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _as_text(value: Any) -> Optional[str]:
    """Coerce a wire message to text; lists of strings are joined."""
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (list, tuple)):
        parts = [text for text in (_as_text(item) for item in value) if text]
        return ", ".join(parts) or None
    return None


def _as_code(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return None


def _field_errors(envelope: dict[str, Any]) -> Optional[str]:
    """Join ``errors: [{field, message}]`` into one line."""
    errors = envelope.get("errors")
    if not isinstance(errors, list):
        return None
    messages = [
        _as_text(item.get("message")) if isinstance(item, dict) else _as_text(item)
        for item in errors
    ]
    return ", ".join(m for m in messages if m) or None


def _envelope_message(envelope: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """Extract ``(message, code)`` from any error body shape; never raises."""
    error = envelope.get("error")
    message: Optional[str] = None
    code: Optional[str] = None
    if isinstance(error, dict):
        message = _as_text(error.get("message"))
        code = _as_code(error.get("code"))
    else:
        message = _as_text(error)
    if message is None:
        message = _as_text(envelope.get("message")) or _field_errors(envelope)
    if code is None:
        code = _as_code(envelope.get("code"))
    return message, code


def _envelope_error(envelope: dict[str, Any], status: int) -> DomainError:
    message, code = _envelope_message(envelope)
    if code is not None and code.upper() in _UNAUTHORIZED_CODES:
        return DomainError(
            kind=DomainErrorKind.UNAUTHORIZED, message=message, code=code, status_code=status,
        )
    return DomainError(
        kind=DomainErrorKind.VALIDATION,
        message=message or "Request was rejected by the server.",
        code=code,
        status_code=status,
    )


def _require_mapping(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise _DecodingFailure(f"expected {what} object, got {type(value).__name__}")
    return value


def _extract_tokens(data: dict[str, Any]) -> TokenPair:
    tokens = data.get("tokens")
    if tokens is None:
        tokens = {field: data[field] for field in _TOKEN_FIELDS if field in data}
    return TokenPair.model_validate(_require_mapping(tokens, "tokens"))


def _parse_auth_payload(value: Any) -> AuthPayload:
    data = _require_mapping(value, "data")
    return AuthPayload(
        user=User.model_validate(_require_mapping(data.get("user"), "user")),
        tokens=_extract_tokens(data),
        is_new_user=bool(data.get("is_new_user", False)),
    )


def _parse_token_pair(value: Any) -> TokenPair:
    return _extract_tokens(_require_mapping(value, "data"))


def _parse_user(value: Any) -> User:
    data = _require_mapping(value, "data")
    if "user" in data:
        data = _require_mapping(data["user"], "user")
    return User.model_validate(data)


def _ignore_payload(value: Any) -> None:
    return None
