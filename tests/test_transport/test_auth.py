"""Tests for the admin console login."""

from __future__ import annotations

import base64

import httpx
import pytest

from adminprobe.transport.auth import (
    AdminAuthenticator,
    AdminCookie,
    AuthToken,
    parse_set_cookie,
)

PAGE_URL = "https://localhost:9980/loleaflet/dist/admin/admin.html"


def admin_page(request: httpx.Request) -> httpx.Response:
    """Answer like the admin page: 401 unless admin/admin is supplied."""
    expected = "Basic " + base64.b64encode(b"admin:admin").decode()
    if request.headers.get("authorization") != expected:
        return httpx.Response(401, headers={"WWW-Authenticate": 'Basic realm="admin"'})
    return httpx.Response(
        200,
        headers=[("Set-Cookie", "jwt=abc.def.ghi; Path=/loleaflet/dist/admin/; Secure")],
        text="<html></html>",
    )


@pytest.fixture
def authenticator() -> AdminAuthenticator:
    """Create an authenticator backed by a mock admin page."""
    client = httpx.Client(transport=httpx.MockTransport(admin_page))
    return AdminAuthenticator(PAGE_URL, client=client)


class TestAuthToken:
    """Tests for AuthToken."""

    def test_credential(self) -> None:
        """The auth argument should be jwt=<value>."""
        assert AuthToken("abc").credential == "jwt=abc"

    def test_value_not_in_repr(self) -> None:
        """The token should not leak through repr."""
        assert "abc" not in repr(AuthToken("abc"))

    @pytest.mark.parametrize("value", ["", "a b"])
    def test_rejects_bad_value(self, value: str) -> None:
        """Tokens must be non-empty and contain no whitespace."""
        with pytest.raises(ValueError):
            AuthToken(value)


class TestParseSetCookie:
    """Tests for Set-Cookie parsing."""

    def test_attributes(self) -> None:
        """Should read name, value, path and the secure flag."""
        cookies = parse_set_cookie("jwt=xyz; Path=/loleaflet/dist/admin/; Secure; HttpOnly")

        assert cookies == [
            AdminCookie(name="jwt", value="xyz", path="/loleaflet/dist/admin/", secure=True)
        ]

    def test_without_attributes(self) -> None:
        """Missing attributes should give empty path and secure False."""
        [cookie] = parse_set_cookie("session=1")

        assert cookie.path == ""
        assert cookie.secure is False


class TestAdminAuthenticator:
    """Tests for AdminAuthenticator against a mock admin page."""

    def test_anonymous_rejected(self, authenticator: AdminAuthenticator) -> None:
        """A request without credentials should get 401 and no cookie."""
        with authenticator:
            response = authenticator.fetch()

        assert response.status_code == 401
        assert response.cookies == ()

    def test_wrong_password_rejected(self, authenticator: AdminAuthenticator) -> None:
        """Wrong credentials should get 401."""
        with authenticator:
            assert authenticator.fetch(("admin", "nope")).status_code == 401

    def test_login_sets_cookie(self, authenticator: AdminAuthenticator) -> None:
        """Correct credentials should yield the jwt cookie."""
        with authenticator:
            response = authenticator.fetch(("admin", "admin"))

        assert response.status_code == 200
        assert response.cookies == (
            AdminCookie(
                name="jwt",
                value="abc.def.ghi",
                path="/loleaflet/dist/admin/",
                secure=True,
            ),
        )

    def test_page_url(self, authenticator: AdminAuthenticator) -> None:
        """Should expose the page URL it requests."""
        assert authenticator.page_url == PAGE_URL
        authenticator.close()
