"""
Clerk identity cookies for SunoBridge.

Handles:
- Parsing the user's raw `Cookie` header into a CookieStore
- Merging `Set-Cookie` headers from Suno/Clerk responses back into the store
- Resolving the real `__client_uat` activity timestamp from session-variant cookies
- Projecting the store onto the exact per-domain browser cookies Clerk's multi-domain setup expects
"""

from typing import Iterable, Optional

from . import constants
from .console import debug_print


class CookieStore:
    """All identity cookies of one logical user. Entries are replaced or added, never dropped."""

    def __init__(self, cookies: Optional[dict] = None):
        self._cookies: dict[str, str] = {}
        for name, value in (cookies or {}).items():
            self.set(name, value)

    @classmethod
    def from_header(cls, raw: str) -> "CookieStore":
        store = cls()
        for part in str(raw or "").split(";"):
            if "=" not in part:
                continue
            name, value = part.split("=", 1)
            name = name.strip()
            if not name:
                continue
            store.set(name, value.strip())
        return store

    def set(self, name: str, value) -> None:
        self._cookies[str(name)] = "" if value is None else str(value)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._cookies.get(name, default)

    def items(self):
        return self._cookies.items()

    def __contains__(self, name: object) -> bool:
        return name in self._cookies

    def __len__(self) -> int:
        return len(self._cookies)

    @property
    def client(self) -> str:
        """The primary refresh credential (`__client`)."""
        return self._cookies.get(constants.CLIENT_COOKIE, "")

    def merge_set_cookie_headers(self, headers: Iterable[str]) -> list[str]:
        """Merge raw `Set-Cookie` header values. Returns the names that were updated."""
        updated: list[str] = []
        for header in headers or []:
            if not isinstance(header, str) or "=" not in header:
                continue
            try:
                name, value = header.split(";", 1)[0].split("=", 1)
            except ValueError:
                continue
            name = name.strip()
            if not name:
                continue
            self.set(name, value.strip())
            updated.append(name)
        return updated

    def to_header(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def resolve_client_uat(self) -> str:
        """
        Find the real activity timestamp.

        The plain `__client_uat` is often "0" (unauthenticated); the real value lives in a session-variant
        cookie such as `__client_uat_Jnxw-muT`. The first non-zero variant wins.
        """
        for name, value in self._cookies.items():
            if not name.startswith(constants.CLIENT_UAT_VARIANT_PREFIX):
                continue
            if value and value != constants.CLIENT_UAT_SENTINEL:
                debug_print(f"🔎 Found session-variant UAT: {name}={value}")
                return value
        return self._cookies.get(constants.CLIENT_UAT_COOKIE) or constants.CLIENT_UAT_SENTINEL

    @property
    def device_id(self) -> Optional[str]:
        return self._cookies.get(constants.ANONYMOUS_ID_COOKIE) or None


def _cookie_spec(name: str, value: str, domain: str, same_site: str, *, secure: bool = False, http_only: bool = False) -> dict:
    spec = {
        "name": name,
        "value": value,
        "domain": domain,
        "path": "/",
        "sameSite": same_site,
    }
    if secure:
        spec["secure"] = True
    if http_only:
        spec["httpOnly"] = True
    return spec


def project_browser_cookies(store: CookieStore) -> list[dict]:
    """
    Map the CookieStore onto Playwright cookie specs for the browser context.

    `__session` is never projected: Clerk JS has to mint it in the page (its claims differ from the API
    JWT), and a forged one keeps the challenge flow from ever reaching /create.
    """
    projected: list[dict] = []
    special = {constants.CLIENT_COOKIE, constants.CLIENT_UAT_COOKIE, constants.SESSION_COOKIE}

    for name, value in store.items():
        if name in special:
            continue
        projected.append(_cookie_spec(name, value, constants.SUNO_COOKIE_DOMAIN, "Lax"))

    client = store.client
    if client:
        projected.append(
            _cookie_spec(
                constants.CLIENT_COOKIE,
                client,
                constants.CLERK_PRIMARY_DOMAIN,
                "None",
                secure=True,
                http_only=True,
            )
        )
        projected.append(
            _cookie_spec(
                constants.CLIENT_COOKIE,
                client,
                constants.CLERK_SECONDARY_DOMAIN,
                "Lax",
                secure=True,
                http_only=True,
            )
        )

    client_uat = store.resolve_client_uat()
    if client_uat and client_uat != constants.CLIENT_UAT_SENTINEL:
        projected.append(
            _cookie_spec(
                constants.CLIENT_UAT_COOKIE,
                constants.CLIENT_UAT_SENTINEL,
                constants.CLERK_PRIMARY_DOMAIN,
                "None",
                secure=True,
            )
        )
        projected.append(
            _cookie_spec(
                constants.CLIENT_UAT_COOKIE,
                client_uat,
                constants.SUNO_COOKIE_DOMAIN,
                "Lax",
                secure=True,
            )
        )
        debug_print(f"🍪 Setting __client_uat={client_uat} on {constants.SUNO_COOKIE_DOMAIN}")
    else:
        debug_print("⚠️  No valid __client_uat timestamp found! Browser auth will fail.")

    return projected
