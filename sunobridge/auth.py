"""
Clerk session management for SunoBridge.

Handles:
- The explicit per-user SessionContext (cookies, Clerk session id, current API JWT)
- Session acquisition against auth.suno.com (`/v1/client`)
- JWT renewal (`/v1/client/sessions/{sid}/tokens`), called before every authorized API call
- Request headers for the Suno studio API (Android webview fingerprint + cookie jar + bearer)
- The process-wide registry lookup (get_session_manager)

The JWT is a capability, not a counter: concurrent renewals are allowed and the last response wins.
"""

import asyncio
import random
import time
import uuid
from typing import Optional

import httpx

from . import config as _config_module
from . import constants
from .console import debug_print, log_http_status, redact
from .cookies import CookieStore
from .errors import MissingCookie, NoActiveSession, SessionAcquisitionFailed, SunoApiError
from .state import session_registry


class SessionContext:
    """
    Mutable session state shared by reference between the SessionManager (renewal) and the challenge
    interceptor (which adopts the bearer token of the captured generate request).
    """

    def __init__(self, cookies: CookieStore, *, user_agent: Optional[str] = None):
        self.cookies = cookies
        self.session_id: Optional[str] = None
        self.token: Optional[str] = None
        self.issued_at: Optional[float] = None
        self.device_id: str = cookies.device_id or str(uuid.uuid4())
        self.user_agent: str = user_agent or constants.DEFAULT_USER_AGENT

    @classmethod
    def from_cookie_header(cls, raw: str, *, user_agent: Optional[str] = None) -> "SessionContext":
        return cls(CookieStore.from_header(raw), user_agent=user_agent)

    def set_token(self, token: Optional[str]) -> None:
        """Adopt a new JWT. Last writer wins."""
        token = str(token or "").strip()
        if not token:
            return
        self.token = token
        self.issued_at = time.time()

    @property
    def is_authenticated(self) -> bool:
        return bool(self.session_id and self.token)


def _clerk_params() -> dict:
    return {
        "_is_native": "true",
        "_clerk_js_version": constants.CLERK_JS_VERSION,
        "__clerk_api_version": constants.CLERK_API_VERSION,
    }


class SessionManager:
    """Owns one SessionContext and performs every HTTP call made on its behalf."""

    def __init__(
        self,
        session: SessionContext,
        *,
        config: Optional[dict] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self.config = config if config is not None else _config_module.get_config()
        self.timeouts = _config_module.get_timeouts(self.config)
        self._transport = transport

    def build_headers(self, extra: Optional[dict] = None, *, authorization: Optional[str] = None) -> dict:
        headers = dict(constants.SUNO_CLIENT_HEADERS)
        headers["Device-Id"] = f'"{self.session.device_id}"'
        headers["User-Agent"] = self.session.user_agent
        cookie_header = self.session.cookies.to_header()
        if cookie_header:
            headers["Cookie"] = cookie_header
        if authorization is not None:
            headers["Authorization"] = authorization
        elif self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        url: str,
        *,
        json=None,
        params: Optional[dict] = None,
        authorization: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """
        Send a request with the session's headers and merge any Set-Cookie back into the CookieStore.

        Without an explicit authorization or a current token the request would be anonymous, which only
        the Clerk session-acquisition call may be.
        """
        if authorization is None and not self.session.token:
            raise NoActiveSession("No authorization token. Call init() before using the API.")

        headers = self.build_headers(authorization=authorization)
        client_timeout = httpx.Timeout(timeout) if timeout else httpx.Timeout(connect=10.0, read=30.0, write=10.0, pool=10.0)
        async with httpx.AsyncClient(
            headers=headers,
            timeout=client_timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as client:
            resp = await client.request(method, url, json=json, params=params)

        updated = self.session.cookies.merge_set_cookie_headers(resp.headers.get_list("set-cookie"))
        if updated:
            debug_print(f"🍪 Updated cookies from response: {', '.join(updated)}")
        return resp

    async def acquire_session(self) -> str:
        """Exchange the `__client` cookie for the Clerk session id. Not retried on failure."""
        client_cookie = self.session.cookies.client
        if not client_cookie:
            raise SessionAcquisitionFailed("Cookie has no __client value, you may need to update the SUNO_COOKIE")

        debug_print("🔑 Getting the session ID from auth.suno.com")
        resp = await self.request(
            "GET",
            f"{constants.CLERK_BASE_URL}/v1/client",
            params=_clerk_params(),
            authorization=client_cookie,
        )
        log_http_status(resp.status_code, "clerk client")
        try:
            data = resp.json()
        except ValueError:
            data = None

        session_id = None
        if isinstance(data, dict) and isinstance(data.get("response"), dict):
            session_id = data["response"].get("last_active_session_id")
        if not session_id:
            raise SessionAcquisitionFailed("Failed to get session id, you may need to update the SUNO_COOKIE")

        self.session.session_id = str(session_id)
        debug_print(f"✅ Clerk session acquired: {redact(self.session.session_id)}")
        return self.session.session_id

    async def renew_token(self, wait: bool = False) -> str:
        """
        Renew the JWT for the current session.

        Args:
            wait: sleep a random keep-alive interval afterwards to throttle call bursts
        """
        if not self.session.session_id:
            raise NoActiveSession("Session ID is not set. Cannot renew token.")

        debug_print("🔄 KeepAlive...")
        resp = await self.request(
            "POST",
            f"{constants.CLERK_BASE_URL}/v1/client/sessions/{self.session.session_id}/tokens",
            params=_clerk_params(),
            json={},
            authorization=self.session.cookies.client,
        )
        try:
            data = resp.json()
        except ValueError:
            data = None
        token = data.get("jwt") if isinstance(data, dict) else None
        if not token:
            log_http_status(resp.status_code, "clerk token renewal")
            raise SunoApiError("Clerk token renewal returned no jwt", resp.status_code)

        self.session.set_token(token)

        if wait:
            await asyncio.sleep(
                random.uniform(self.timeouts["keep_alive_sleep_min"], self.timeouts["keep_alive_sleep_max"])
            )
        return self.session.token

    async def init(self) -> "SessionManager":
        await self.acquire_session()
        await self.renew_token()
        return self


def resolve_cookie(cookie: Optional[str], config: Optional[dict] = None) -> str:
    """
    Pick the cookie to authenticate with: the request's own Cookie header when it carries `__client`,
    otherwise the configured SUNO_COOKIE.
    """
    if cookie and constants.CLIENT_COOKIE in cookie:
        return cookie
    cfg = config if config is not None else _config_module.get_config()
    configured = str(cfg.get("suno_cookie") or "").strip()
    if not configured:
        debug_print("❌ No cookie provided! Set SUNO_COOKIE or send a Cookie header.")
        raise MissingCookie("Please provide a cookie either in the config/env (SUNO_COOKIE) or in the Cookie header of your request.")
    return configured


async def get_session_manager(cookie: Optional[str] = None, *, config: Optional[dict] = None) -> SessionManager:
    """Return the initialized SessionManager for this identity, creating it on first use."""
    cfg = config if config is not None else _config_module.get_config()
    resolved = resolve_cookie(cookie, cfg)
    session_registry.configure(
        ttl_seconds=cfg.get("session_cache_ttl_seconds"),
        max_entries=cfg.get("session_cache_max_entries"),
    )
    user_agent = _config_module.get_browser_settings(cfg)["user_agent"]

    async def _create(raw: str) -> SessionManager:
        session = SessionContext.from_cookie_header(raw, user_agent=user_agent)
        manager = SessionManager(session, config=cfg)
        return await manager.init()

    return await session_registry.get_or_create(resolved, _create)
