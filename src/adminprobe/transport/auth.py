"""Admin console login over HTTP(S).

The admin page is guarded by HTTP basic authentication. A successful
login answers with a ``jwt`` cookie whose value is later sent on the
admin WebSocket as ``auth jwt=<value>``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from http.cookies import CookieError, SimpleCookie

import httpx
import structlog

log = structlog.get_logger()


@dataclass(frozen=True)
class AuthToken:
    """Credential captured from the login cookie.

    The value never appears in ``repr`` or log output.
    """

    value: str = field(repr=False)

    def __post_init__(self) -> None:
        if not self.value or any(c.isspace() for c in self.value):
            raise ValueError("Auth token must be a non-empty string without whitespace")

    @property
    def credential(self) -> str:
        """Argument of the ``auth`` command."""
        return f"jwt={self.value}"


@dataclass(frozen=True)
class AdminCookie:
    """One cookie set by the admin page.

    Attributes:
        name: Cookie name
        value: Cookie value
        path: Path attribute, empty if absent
        secure: Whether the Secure attribute is set
    """

    name: str
    value: str = field(repr=False)
    path: str = ""
    secure: bool = False


@dataclass(frozen=True)
class LoginResponse:
    """Status and cookies returned by the admin page."""

    status_code: int
    cookies: tuple[AdminCookie, ...] = ()


def parse_set_cookie(header: str) -> list[AdminCookie]:
    """Parse one ``Set-Cookie`` header value.

    Raises:
        ValueError: If the header cannot be parsed
    """
    jar = SimpleCookie()
    try:
        jar.load(header)
    except CookieError as e:
        raise ValueError(f"Invalid Set-Cookie header: {e}") from e
    return [
        AdminCookie(
            name=morsel.key,
            value=morsel.value,
            path=morsel["path"],
            secure=bool(morsel["secure"]),
        )
        for morsel in jar.values()
    ]


class AdminAuthenticator:
    """Requests the admin page with or without credentials.

    Example:
        with AdminAuthenticator(config.server.admin_page_url, verify=False) as auth:
            response = auth.fetch(("admin", "admin"))
    """

    def __init__(
        self,
        page_url: str,
        *,
        verify: bool = True,
        timeout: float = 10.0,
        trust_env: bool = True,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the authenticator.

        Args:
            page_url: Full URL of the admin page
            verify: Whether to verify the server certificate
            timeout: Request timeout in seconds
            trust_env: Whether to honor proxy settings from the environment
            client: Preconfigured HTTP client (ownership is taken)
        """
        self._page_url = page_url
        self._client = client or httpx.Client(
            verify=verify, timeout=timeout, trust_env=trust_env
        )

    @property
    def page_url(self) -> str:
        """Admin page URL."""
        return self._page_url

    def fetch(self, credentials: tuple[str, str] | None = None) -> LoginResponse:
        """GET the admin page.

        Args:
            credentials: (username, password) for basic auth, None for anonymous

        Returns:
            Status code and parsed cookies

        Raises:
            httpx.HTTPError: On transport failure
            ValueError: If a Set-Cookie header is malformed
        """
        auth = httpx.BasicAuth(*credentials) if credentials is not None else None
        response = self._client.get(self._page_url, auth=auth)

        cookies: list[AdminCookie] = []
        for header in response.headers.get_list("set-cookie"):
            cookies.extend(parse_set_cookie(header))

        log.info(
            "Admin page fetched",
            url=self._page_url,
            authenticated=credentials is not None,
            status=response.status_code,
            cookies=[c.name for c in cookies],
        )
        return LoginResponse(status_code=response.status_code, cookies=tuple(cookies))

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def __enter__(self) -> AdminAuthenticator:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
