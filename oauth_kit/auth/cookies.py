"""Request-scoped cookie jar.

Starlette requests expose cookies read-only and responses are built after
the handler runs, so cookie writes are staged here and flushed onto the
outgoing response with ``apply``. Reads see staged writes and deletions.

Each staged cookie is flushed once. When ``OAuthCookieMiddleware`` is
installed it flushes whatever the route left unsent, whichever response
the route ended up returning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from fastapi import Request
from starlette.responses import Response

SAME_SITE_VALUES = ("lax", "none")
STATE_ATTR = "oauth_cookies"


@dataclass(frozen=True)
class CookieOptions:
    """Caller overrides for cookies written by the toolkit.

    Attributes:
        same_site: ``lax`` (default) or ``none``
        path: Cookie path (default: ``/``)
        refresh_token_max_age: Refresh cookie lifetime when the provider
            does not declare one
    """

    same_site: str = "lax"
    path: str = "/"
    refresh_token_max_age: Optional[int] = None

    def __post_init__(self):
        if self.same_site not in SAME_SITE_VALUES:
            raise ValueError(
                f"same_site must be one of {', '.join(SAME_SITE_VALUES)}, got {self.same_site!r}"
            )


DEFAULT_COOKIE_OPTIONS = CookieOptions()


@dataclass
class _Staged:
    value: Optional[str]
    max_age: Optional[int]
    options: CookieOptions


class CookieJar:
    """Cookies of one request plus the writes staged for its response."""

    def __init__(self, cookies: Optional[Mapping[str, str]] = None, raw_header: str = ""):
        self._cookies = dict(cookies or {})
        self.raw_header = raw_header
        self._staged: dict[str, _Staged] = {}
        self._sent: set[str] = set()
        # Set by OAuthCookieMiddleware, which flushes the jar itself.
        self.managed = False

    @classmethod
    def for_request(cls, request: Request) -> CookieJar:
        """Get the jar bound to a request, creating it on first use."""
        jar = getattr(request.state, STATE_ATTR, None)
        if jar is None:
            jar = cls(request.cookies, request.headers.get("cookie", ""))
            setattr(request.state, STATE_ATTR, jar)
        return jar

    def get(self, name: str) -> Optional[str]:
        staged = self._staged.get(name)
        if staged is not None:
            return staged.value
        return self._cookies.get(name)

    def set(
        self,
        name: str,
        value: str,
        *,
        max_age: Optional[int] = None,
        options: CookieOptions = DEFAULT_COOKIE_OPTIONS,
    ) -> None:
        self._staged[name] = _Staged(value=value, max_age=max_age, options=options)
        self._sent.discard(name)

    def delete(self, name: str, options: CookieOptions = DEFAULT_COOKIE_OPTIONS) -> None:
        self._staged[name] = _Staged(value=None, max_age=0, options=options)
        self._sent.discard(name)

    def names(self) -> list[str]:
        """Names of cookies present once staged changes are applied."""
        present = [n for n in self._cookies if n not in self._staged]
        present.extend(n for n, s in self._staged.items() if s.value is not None)
        return present

    def staged(self) -> dict[str, Optional[str]]:
        """Staged writes by name; deletions map to None."""
        return {name: s.value for name, s in self._staged.items()}

    def pending(self) -> list[str]:
        """Staged cookies not yet written to a response."""
        return [name for name in self._staged if name not in self._sent]

    def apply(self, response: Response) -> Response:
        """Write staged cookies not yet sent onto ``response``."""
        for name in self.pending():
            s = self._staged[name]
            self._sent.add(name)
            if s.value is None:
                response.delete_cookie(
                    name,
                    path=s.options.path,
                    secure=True,
                    httponly=True,
                    samesite=s.options.same_site,
                )
            else:
                response.set_cookie(
                    key=name,
                    value=s.value,
                    max_age=s.max_age,
                    path=s.options.path,
                    secure=True,
                    httponly=True,
                    samesite=s.options.same_site,
                )
        return response
