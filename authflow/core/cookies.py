"""
Request-scoped cookie handling.

The callback pipeline never writes to the HTTP response directly. Cookies read from the
request go into a `CookieJar`; every cookie the pipeline wants to set or clear is recorded
as a `CookieDirective` and rendered once by the boundary layer.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Mapping, Optional

from starlette.responses import Response

if TYPE_CHECKING:
    from authflow.core.settings import Settings


@dataclass(frozen=True)
class CookieDirective:
    """A single Set-Cookie instruction."""

    name: str
    value: str
    expires: Optional[datetime] = None
    max_age: Optional[int] = None
    path: str = "/"
    domain: Optional[str] = None
    secure: bool = False
    httponly: bool = True
    samesite: str = "lax"

    @property
    def is_deletion(self) -> bool:
        return self.max_age is not None and self.max_age < 0

    def apply(self, response: Response) -> None:
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            expires=self.expires,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,  # type: ignore[arg-type]
        )


class CookieJar:
    """Incoming cookies plus the directives produced while handling one request."""

    def __init__(self, incoming: Optional[Mapping[str, str]] = None, settings: Optional["Settings"] = None):
        self._incoming: Dict[str, str] = dict(incoming or {})
        self._settings = settings
        self.directives: List[CookieDirective] = []

    def get(self, name: str) -> Optional[str]:
        return self._incoming.get(name)

    def pop(self, name: str) -> Optional[str]:
        """
        Read a cookie and schedule its removal.

        The value is gone from the jar after this call, so a second read within the
        same request sees nothing.
        """
        value = self._incoming.pop(name, None)
        self.directives.append(self._directive(name, "", max_age=-1))
        return value

    def set(
        self,
        name: str,
        value: str,
        *,
        expires: Optional[datetime] = None,
        max_age: Optional[int] = None,
    ) -> CookieDirective:
        directive = self._directive(name, value, expires=expires, max_age=max_age)
        self.directives = [d for d in self.directives if d.name != name]
        self.directives.append(directive)
        self._incoming[name] = value
        return directive

    def without(self, name: str) -> List[CookieDirective]:
        """Directives excluding those that set `name`."""
        return [d for d in self.directives if d.name != name]

    def _directive(
        self,
        name: str,
        value: str,
        *,
        expires: Optional[datetime] = None,
        max_age: Optional[int] = None,
    ) -> CookieDirective:
        settings = self._settings
        if settings is None:
            return CookieDirective(name=name, value=value, expires=expires, max_age=max_age)
        return CookieDirective(
            name=name,
            value=value,
            expires=expires,
            max_age=max_age,
            domain=settings.cookie_domain,
            secure=settings.cookie_secure_effective,
            samesite=settings.cookie_samesite,
        )
