"""Tests for the error taxonomy and describe_error() mapping."""

from __future__ import annotations

import httpx
import pytest

from shared.errors import (
    CircuitOpenError,
    ClientError,
    ErrorKind,
    NetworkError,
    PermissionDeniedError,
    PortalError,
    RateLimitedError,
    ServerError,
    ValidationError,
    describe_error,
)


class DbError(Exception):
    def __init__(self, message: str, code: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


def _http_status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://portal.example/rest/v1/properties")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class TestPortalErrors:
    def test_default_statuses(self) -> None:
        assert RateLimitedError().status == 429
        assert ClientError("x").status == 400
        assert ServerError("x").status == 500
        assert ValidationError("x").status == 422
        assert PermissionDeniedError("x").status == 403
        assert NetworkError("x").status is None

    def test_explicit_status_wins(self) -> None:
        assert ServerError("gateway", status=504).status == 504

    def test_retry_after_kept(self) -> None:
        assert RateLimitedError(retry_after=30).retry_after == 30

    def test_circuit_open_is_not_a_portal_error(self) -> None:
        assert not isinstance(CircuitOpenError(), PortalError)


class TestDescribeError:
    @pytest.mark.parametrize(
        "error,kind,status",
        [
            (NetworkError("offline"), ErrorKind.NETWORK, None),
            (RateLimitedError(), ErrorKind.RATE_LIMITED, 429),
            (PermissionDeniedError("nope"), ErrorKind.PERMISSION, 403),
            (_http_status_error(429), ErrorKind.RATE_LIMITED, 429),
            (_http_status_error(401), ErrorKind.PERMISSION, 401),
            (_http_status_error(404), ErrorKind.CLIENT, 404),
            (_http_status_error(415), ErrorKind.VALIDATION, 415),
            (_http_status_error(503), ErrorKind.SERVER, 503),
            (httpx.ConnectError("connection refused"), ErrorKind.NETWORK, None),
            (httpx.ReadTimeout("read timed out"), ErrorKind.NETWORK, None),
            (TimeoutError(), ErrorKind.NETWORK, None),
            (ConnectionResetError(), ErrorKind.NETWORK, None),
            (DbError("duplicate key", code="23505"), ErrorKind.VALIDATION, None),
            (DbError("insufficient privilege", code="42501"), ErrorKind.PERMISSION, None),
            (DbError('violates unique constraint "vendor_network_key"', code="23505", status_code=409), ErrorKind.VALIDATION, 409),
            (DbError("network policy blocks fetch"), ErrorKind.UNKNOWN, None),
            (DbError("socket hang up", code="ECONNRESET"), ErrorKind.NETWORK, None),
            (DbError("upstream failure", status_code=500), ErrorKind.SERVER, 500),
            (DbError("conflict", status_code=409), ErrorKind.CLIENT, 409),
            (ValueError("something odd"), ErrorKind.UNKNOWN, None),
        ],
    )
    def test_mapping(self, error, kind, status) -> None:
        info = describe_error(error)
        assert info.kind == kind
        assert info.status == status

    def test_rls_marker_is_case_sensitive(self) -> None:
        """'RLS' must not match inside ordinary words like 'urls'."""
        assert describe_error(RuntimeError("bad urls supplied")).kind == ErrorKind.UNKNOWN
        assert describe_error(RuntimeError("RLS policy rejected row")).kind == ErrorKind.PERMISSION

    def test_boolean_status_is_ignored(self) -> None:
        error = RuntimeError("weird")
        error.status = True
        assert describe_error(error).status is None

    def test_client_status_flag(self) -> None:
        assert describe_error(ClientError("x", status=404)).is_client_status
        assert not describe_error(ServerError("x")).is_client_status
        assert not describe_error(NetworkError("x")).is_client_status
