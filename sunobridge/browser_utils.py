"""
Browser utility functions for SunoBridge.

Handles:
- Launching an isolated Chromium (Playwright) or Firefox (Camoufox) instance with projected cookies
- Single-shot, idempotent browser teardown (BrowserHandle)
- The two-step navigation that lets Clerk JS mint the page `__session` cookie
- Best-effort popup dismissal
- Async task lifecycle helpers
"""

import asyncio
from typing import Awaitable, Callable, Optional

from camoufox.async_api import AsyncCamoufox
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from . import constants
from .console import debug_print
from .errors import NavigationTimeout


def _ms(seconds: float) -> float:
    return float(seconds) * 1000.0


def is_closed_error(exc: BaseException) -> bool:
    """Playwright raises `... has been closed` once the page, context or browser is gone."""
    message = str(exc)
    return constants.CLOSED_ERROR_MARKER in message or "Target closed" in message


class BrowserHandle:
    """
    A launched browser context plus its teardown.

    Teardown runs at most once no matter how many paths request it (route callback, solver error, the
    coordinator's finally); later requests wait for the first one and never raise.
    """

    def __init__(self, context, closer: Callable[[], Awaitable[None]]):
        self.context = context
        self._closer = closer
        self._close_task: Optional[asyncio.Task] = None
        self.teardown_count = 0

    @property
    def closing(self) -> bool:
        return self._close_task is not None

    async def _shutdown(self) -> None:
        self.teardown_count += 1
        debug_print("🧹 Closing browser...")
        try:
            await self._closer()
        except Exception as e:
            debug_print(f"⚠️ Failed to close browser: {e}")

    def schedule_close(self) -> asyncio.Task:
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._shutdown())
        return self._close_task

    async def close(self) -> None:
        await asyncio.shield(self.schedule_close())


def build_chromium_args(*, headless: bool, disable_gpu: bool) -> list[str]:
    args = list(constants.CHROMIUM_LAUNCH_ARGS)
    if disable_gpu:
        args.extend(constants.CHROMIUM_DISABLE_GPU_ARGS)
    if not headless:
        # Visible mode is for debugging: open DevTools so the network tab can be watched
        args.append(constants.CHROMIUM_DEVTOOLS_ARG)
    return args


async def launch_browser(cookies: list[dict], settings: dict) -> BrowserHandle:
    """
    Start an isolated browser, create a context with the configured UA/locale and inject `cookies`.
    Does not navigate.
    """
    engine = settings.get("engine") or constants.DEFAULT_BROWSER
    headless = bool(settings.get("headless", True))
    locale = settings.get("locale")
    user_agent = settings.get("user_agent") or constants.DEFAULT_USER_AGENT

    debug_print(f"🚀 Launching {engine} (headless={headless})...")
    if engine == "firefox":
        browser_cm = AsyncCamoufox(headless=headless, locale=locale) if locale else AsyncCamoufox(headless=headless)
        browser = await browser_cm.__aenter__()

        async def _closer() -> None:
            await browser_cm.__aexit__(None, None, None)
    else:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(
                args=build_chromium_args(headless=headless, disable_gpu=bool(settings.get("disable_gpu"))),
                headless=headless,
            )
        except Exception:
            await playwright.stop()
            raise

        async def _closer() -> None:
            try:
                await browser.close()
            finally:
                await playwright.stop()

    try:
        context = await browser.new_context(user_agent=user_agent, locale=locale, no_viewport=True)
        try:
            await context.add_init_script("Object.defineProperty(navigator, 'webdriver', {get: () => undefined});")
        except PlaywrightError:
            pass
        if cookies:
            debug_print(
                "🍪 Setting browser cookies: "
                + ", ".join(f"{c['name']}@{c['domain']}({c['sameSite']})" for c in cookies)
            )
            await context.add_cookies(cookies)
    except BaseException:
        await _closer()
        raise

    return BrowserHandle(context, _closer)


async def wait_for_response(page, marker: str, timeout_seconds: float, *, status: int = 200):
    """Wait for a response whose URL contains `marker`. Raises NavigationTimeout when the wait runs out."""
    try:
        return await page.wait_for_event(
            "response",
            predicate=lambda response: marker in response.url and response.status == status,
            timeout=_ms(timeout_seconds),
        )
    except PlaywrightTimeoutError as e:
        raise NavigationTimeout(f"No {status} response matching {marker!r} within {timeout_seconds}s") from e


async def _goto_and_wait(page, url: str, *, referer: str, marker: str, wait_seconds: float, navigation_seconds: float):
    # Start listening before navigating so an early response is not missed
    waiter = asyncio.ensure_future(wait_for_response(page, marker, wait_seconds))
    try:
        await page.goto(url, referer=referer, wait_until="domcontentloaded", timeout=_ms(navigation_seconds))
    except PlaywrightTimeoutError:
        debug_print(f"⚠️ Navigation to {url} timed out - continuing anyway")
    except BaseException:
        await _cancel_background_task(waiter)
        raise
    return await waiter


async def establish_clerk_session(page, timeouts: dict) -> None:
    """
    Land on the public homepage first, let Clerk JS validate `__client` against auth.suno.com (which sets
    `__session`), and only then open /create. Going straight to /create redirects to sign-in.
    """
    debug_print("🌐 Step 1: Navigating to suno.com homepage to establish Clerk session...")
    try:
        await _goto_and_wait(
            page,
            constants.SUNO_ORIGIN,
            referer=constants.HOMEPAGE_REFERER,
            marker=constants.CLERK_CLIENT_RESPONSE_MARKER,
            wait_seconds=timeouts["clerk_auth_response"],
            navigation_seconds=timeouts["page_navigation"],
        )
        debug_print("✅ Clerk authentication response received")
        await asyncio.sleep(timeouts["clerk_settle_delay"])
    except NavigationTimeout:
        debug_print("⚠️ Clerk auth response timeout - continuing anyway")

    debug_print("🌐 Step 2: Navigating to suno.com/create...")
    try:
        await _goto_and_wait(
            page,
            constants.SUNO_CREATE_URL,
            referer=constants.CREATE_PAGE_REFERER,
            marker=constants.PROJECT_API_RESPONSE_MARKER,
            wait_seconds=timeouts["page_api_response"],
            navigation_seconds=timeouts["page_navigation"],
        )
        debug_print("✅ Page fully loaded")
    except NavigationTimeout:
        debug_print("⚠️ API response timeout - page might not be fully loaded, continuing anyway")


async def dismiss_popups(page, timeout_seconds: float) -> bool:
    """Try a few ways of closing the welcome/promo popup. Missing popups are normal."""
    try:
        await page.get_by_label(constants.POPUP_CLOSE_LABEL).click(timeout=_ms(timeout_seconds))
        debug_print("✅ Popup closed")
        return True
    except PlaywrightError:
        pass

    for selector in constants.POPUP_CLOSE_SELECTORS:
        try:
            await page.locator(selector).click(timeout=_ms(timeout_seconds))
            debug_print(f"✅ Popup closed with {selector}")
            return True
        except PlaywrightError:
            continue

    debug_print("ℹ️ No popup found or unable to close - continuing anyway")
    return False


def _consume_background_task_exception(task: "asyncio.Task") -> None:
    try:
        task.exception()
    except asyncio.CancelledError:
        pass
    except Exception:
        pass


async def _cancel_background_task(task: Optional["asyncio.Task"], *, timeout_seconds: float = 1.0) -> None:
    if task is None:
        return
    if task.done():
        _consume_background_task_exception(task)
        return

    task.cancel()
    try:
        await asyncio.wait_for(task, timeout=float(timeout_seconds))
    except (asyncio.CancelledError, asyncio.TimeoutError):
        pass
    except Exception:
        pass

    if task.done():
        _consume_background_task_exception(task)
    else:
        task.add_done_callback(_consume_background_task_exception)
