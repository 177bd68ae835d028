"""
hCaptcha handling for SunoBridge.

Handles:
- Intercepting the browser's generate request to capture the bearer JWT and the hCaptcha completion token
- The challenge-solving loop (classify -> 2Captcha -> pointer actions -> submit), run until cancelled
- The race between interception and solving, with exactly one browser teardown
- get_captcha_token(): the full flow from a SessionContext to a completion token

The generate request itself is never let through: capturing it proves the challenge was passed, and the
real generation is made afterwards by the API layer with the user's prompt.
"""

import asyncio
import base64
from enum import Enum
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from . import config as _config_module
from . import constants
from .browser_utils import (
    BrowserHandle,
    _cancel_background_task,
    _ms,
    dismiss_popups,
    establish_clerk_session,
    is_closed_error,
    launch_browser,
)
from .console import debug_print, redact
from .cookies import project_browser_cookies
from .errors import ChallengeSolveFailed, SunoBridgeError
from .twocaptcha import CaptchaSolution, TwoCaptchaClient


class ChallengeKind(str, Enum):
    CLICK = "click"
    DRAG = "drag"


class CycleState(str, Enum):
    AWAITING_IMAGES = "awaiting_images"
    CLASSIFYING = "classifying"
    SOLVING = "solving"
    ACTING = "acting"
    SUBMITTING = "submitting"
    TERMINATED = "terminated"


class CycleOutcome(str, Enum):
    SUBMITTED = "submitted"
    # Solution unusable; ask for a new one without waiting for new images
    BAD_SOLUTION = "bad_solution"


def classify_challenge(prompt_text: str) -> ChallengeKind:
    if constants.DRAG_KEYWORD in str(prompt_text or "").lower():
        return ChallengeKind.DRAG
    return ChallengeKind.CLICK


def extract_captcha_token(body) -> Optional[str]:
    """Completion token from the generate payload (`token`, falling back to `hcaptcha_token`)."""
    if not isinstance(body, dict):
        return None
    for field in constants.CAPTCHA_TOKEN_FIELDS:
        value = body.get(field)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def extract_bearer_token(headers) -> Optional[str]:
    if not isinstance(headers, dict):
        return None
    value = headers.get("authorization") or headers.get("Authorization")
    if not isinstance(value, str) or not value.strip():
        return None
    token = value.split("Bearer ")[-1].strip()
    return token or None


class ChallengeInterceptor:
    """
    Route listener for the generate endpoint.

    The first matching request resolves `captured`; the request is aborted, the shared abort event is set
    and browser teardown is scheduled. Any later match is only aborted.
    """

    def __init__(self, page, session, handle: BrowserHandle, abort_event: asyncio.Event, patterns=None):
        self.page = page
        self.session = session
        self.handle = handle
        self.abort_event = abort_event
        self.patterns = list(patterns or constants.GENERATE_ROUTE_PATTERNS)
        self.captured: asyncio.Future = asyncio.get_running_loop().create_future()

    async def install(self) -> None:
        """Must complete before any UI action that can fire the generate request."""
        for pattern in self.patterns:
            await self.page.route(pattern, self._handle_route)
        debug_print(f"🎯 Route interceptors installed for {len(self.patterns)} generate patterns")

    async def _abort(self, route) -> None:
        try:
            await route.abort()
        except PlaywrightError as e:
            debug_print(f"⚠️ Could not abort intercepted request: {e}")

    async def _handle_route(self, route) -> None:
        if self.captured.done():
            await self._abort(route)
            return

        try:
            request = route.request
            debug_print(f"🎯 Route intercepted! URL: {request.url}")
            headers = request.headers
            try:
                body = request.post_data_json
            except ValueError:
                body = None
            debug_print(f"   Request headers: {redact(headers)}")
            debug_print(f"   Request body: {redact(body)}")
            token = extract_captcha_token(body)
            bearer = extract_bearer_token(headers)
        except Exception as e:
            debug_print(f"❌ Route interception error: {e}")
            await self._abort(route)
            self._finish()
            if not self.captured.done():
                self.captured.set_exception(e)
            return

        if bearer:
            self.session.set_token(bearer)
        debug_print(f"🔐 Captured token: {'Yes' if token else 'No'}")
        debug_print("🛑 Aborting request and closing browser")
        await self._abort(route)
        self._finish()
        if not self.captured.done():
            self.captured.set_result(token)

    def _finish(self) -> None:
        self.abort_event.set()
        self.handle.schedule_close()

    async def wait(self) -> Optional[str]:
        return await asyncio.shield(self.captured)


class ChallengeSolver:
    """
    Solves hCaptcha cycles until cancelled.

    The number of cycles a challenge needs is not knowable up front, so there is no cycle limit: the loop
    ends when the interceptor sets the abort event, when the browser is closed, or on an unexpected error.
    """

    def __init__(
        self,
        page,
        create_button,
        solver_client: TwoCaptchaClient,
        *,
        timeouts: dict,
        abort_event: asyncio.Event,
        locale: Optional[str] = None,
        drag_image_b64: Optional[str] = None,
    ):
        self.page = page
        self.create_button = create_button
        self.solver_client = solver_client
        self.timeouts = timeouts
        self.abort_event = abort_event
        self.locale = locale
        self.drag_image_b64 = drag_image_b64
        self.frame = page.frame_locator(constants.HCAPTCHA_IFRAME_SELECTOR)
        self.challenge = self.frame.locator(constants.CHALLENGE_CONTAINER_SELECTOR)
        self.state = CycleState.AWAITING_IMAGES
        self.cycles = 0

    async def solve_with_retry(self, kind: ChallengeKind) -> CaptchaSolution:
        last_error: Optional[Exception] = None
        for attempt in range(1, constants.CAPTCHA_SOLVE_MAX_ATTEMPTS + 1):
            try:
                debug_print(f"📤 Sending the CAPTCHA to 2Captcha (attempt {attempt}/{constants.CAPTCHA_SOLVE_MAX_ATTEMPTS})")
                screenshot = await self.challenge.screenshot(timeout=_ms(self.timeouts["captcha_screenshot"]))
                kwargs = {"lang": self.locale}
                if kind is ChallengeKind.DRAG:
                    kwargs["text_instructions"] = constants.DRAG_TEXT_INSTRUCTIONS
                    kwargs["image_instructions_b64"] = self.drag_image_b64
                return await self.solver_client.coordinates(base64.b64encode(screenshot).decode("ascii"), **kwargs)
            except Exception as e:
                if is_closed_error(e):
                    raise
                last_error = e
                debug_print(f"⚠️ {e}")
                if attempt < constants.CAPTCHA_SOLVE_MAX_ATTEMPTS:
                    debug_print("🔁 Retrying...")
        raise ChallengeSolveFailed(
            f"Failed to solve CAPTCHA after {constants.CAPTCHA_SOLVE_MAX_ATTEMPTS} attempts: {last_error}"
        ) from last_error

    async def perform_drag(self, box: dict, solution: CaptchaSolution) -> None:
        points = solution.points
        for start, end in zip(points[0::2], points[1::2]):
            debug_print(f"🖱️ Drag {start} -> {end}")
            await self.page.mouse.move(box["x"] + start[0], box["y"] + start[1])
            await self.page.mouse.down()
            # The puzzle piece only unlocks after being held for a moment
            await asyncio.sleep(self.timeouts["captcha_piece_unlock_delay"])
            await self.page.mouse.move(box["x"] + end[0], box["y"] + end[1], steps=constants.DRAG_MOVE_STEPS)
            await self.page.mouse.up()

    async def perform_clicks(self, solution: CaptchaSolution) -> None:
        for x, y in solution.points:
            debug_print(f"🖱️ Click ({x}, {y})")
            await self.challenge.click(force=True, position={"x": x, "y": y})

    async def submit(self) -> None:
        try:
            await self.frame.locator(constants.CHALLENGE_SUBMIT_SELECTOR).click()
        except PlaywrightError as e:
            if constants.VIEWPORT_ERROR_MARKER not in str(e):
                raise
            # Challenge window closed from inactivity; clicking Create brings it back
            debug_print("🔁 CAPTCHA window closed, re-triggering it")
            await self.create_button.click()

    async def run_cycle(self, wait_for_images: bool = True) -> CycleOutcome:
        if wait_for_images:
            self.state = CycleState.AWAITING_IMAGES
            await asyncio.sleep(self.timeouts["captcha_image_load_delay"])

        self.state = CycleState.CLASSIFYING
        prompt_text = await self.challenge.locator(constants.CHALLENGE_PROMPT_SELECTOR).first.inner_text()
        kind = classify_challenge(prompt_text)
        debug_print(f"🧩 Challenge ({kind.value}): {prompt_text}")

        self.state = CycleState.SOLVING
        solution = await self.solve_with_retry(kind)

        self.state = CycleState.ACTING
        if kind is ChallengeKind.DRAG:
            if len(solution.points) % 2 != 0:
                debug_print("⚠️ Solution does not have even amount of points required for dragging. Requesting new solution...")
                await self.solver_client.report_bad(solution.id)
                return CycleOutcome.BAD_SOLUTION
            box = await self.challenge.bounding_box()
            if not box:
                raise SunoBridgeError(".challenge-container bounding box is null!")
            await self.perform_drag(box, solution)
        else:
            await self.perform_clicks(solution)

        self.state = CycleState.SUBMITTING
        await self.submit()
        return CycleOutcome.SUBMITTED

    async def run(self) -> None:
        wait_for_images = True
        try:
            while not self.abort_event.is_set():
                self.cycles += 1
                outcome = await self.run_cycle(wait_for_images)
                wait_for_images = outcome is not CycleOutcome.BAD_SOLUTION
        except Exception as e:
            if self.abort_event.is_set() or is_closed_error(e):
                debug_print("ℹ️ Challenge loop stopped: browser closed")
                return
            raise
        finally:
            self.state = CycleState.TERMINATED


async def race_challenge(
    interceptor: ChallengeInterceptor,
    solver: ChallengeSolver,
    handle: BrowserHandle,
    *,
    grace_seconds: float = 5.0,
) -> Optional[str]:
    """
    Run interception and solving concurrently. The first to finish decides; the other is cancelled and the
    browser is torn down exactly once. Solver errors are re-raised after teardown.
    """
    capture_task = asyncio.ensure_future(interceptor.wait())
    solve_task = asyncio.ensure_future(solver.run())
    try:
        done, _ = await asyncio.wait({capture_task, solve_task}, return_when=asyncio.FIRST_COMPLETED)
        if capture_task in done:
            return capture_task.result()

        error = solve_task.exception()
        if error is not None:
            raise error

        # The loop ended because the browser went away; the capture may still be settling
        try:
            return await asyncio.wait_for(asyncio.shield(capture_task), timeout=grace_seconds)
        except asyncio.TimeoutError:
            debug_print("⚠️ Challenge loop ended without an intercepted generate request")
            return None
    finally:
        interceptor.abort_event.set()
        await _cancel_background_task(solve_task)
        await _cancel_background_task(capture_task)
        await handle.close()


async def find_prompt_textarea(page, timeout_seconds: float):
    textarea = page.locator(constants.PROMPT_TEXTAREA_SELECTOR)
    try:
        await textarea.wait_for(state="visible", timeout=_ms(timeout_seconds))
        debug_print("✅ Found textarea with Hip-hop placeholder")
        return textarea
    except PlaywrightTimeoutError:
        debug_print("ℹ️ Hip-hop placeholder not found, trying alternative selectors...")

    textareas = page.locator(constants.ANY_TEXTAREA_SELECTOR)
    count = await textareas.count()
    for index in range(count):
        candidate = textareas.nth(index)
        if await candidate.is_visible():
            debug_print(f"✅ Using textarea at index {index}")
            return candidate
    raise SunoBridgeError("Could not find any visible textarea on the page")


def _load_drag_instructions_image(config: dict) -> Optional[str]:
    path = str(config.get("captcha_drag_instructions_image") or "").strip()
    if not path:
        return None
    try:
        return base64.b64encode(Path(path).expanduser().read_bytes()).decode("ascii")
    except OSError as e:
        debug_print(f"⚠️ Could not read drag instructions image {path}: {e}")
        return None


def _log_api_request(request) -> None:
    if "/api/" in request.url:
        debug_print(f"📡 API Request: {request.method} {request.url}")


async def get_captcha_token(
    session,
    *,
    config: Optional[dict] = None,
    solver_client: Optional[TwoCaptchaClient] = None,
    launcher=launch_browser,
) -> Optional[str]:
    """
    Open Suno in an isolated browser as this session's user, press Create, solve whatever hCaptcha appears
    and return the completion token from the intercepted generate request (None if it carried none).
    The intercepted bearer JWT is adopted into `session`.
    """
    cfg = config if config is not None else _config_module.get_config()
    timeouts = _config_module.get_timeouts(cfg)
    settings = _config_module.get_browser_settings(cfg)
    settings["user_agent"] = session.user_agent or settings["user_agent"]
    if solver_client is None:
        solver_client = TwoCaptchaClient(
            cfg.get("twocaptcha_key") or "",
            poll_interval=timeouts["captcha_poll_interval"],
            solve_timeout=timeouts["captcha_solve_timeout"],
        )

    handle = await launcher(project_browser_cookies(session.cookies), settings)
    abort_event = asyncio.Event()
    try:
        page = await handle.context.new_page()

        if settings["engine"] == "chromium" and not settings["headless"]:
            debug_print("⏳ Waiting for DevTools to open... (switch to Network tab now!)")
            await asyncio.sleep(timeouts["devtools_open_delay"])

        await establish_clerk_session(page, timeouts)

        debug_print("🎯 Triggering the CAPTCHA")
        await dismiss_popups(page, timeouts["popup_close"])
        page.on("request", _log_api_request)

        interceptor = ChallengeInterceptor(page, session, handle, abort_event)
        await interceptor.install()

        textarea = await find_prompt_textarea(page, timeouts["textarea_wait"])
        await textarea.focus()
        await textarea.fill(str(cfg.get("captcha_test_prompt") or constants.DEFAULT_CAPTCHA_TEST_PROMPT))

        button = page.locator(constants.CREATE_BUTTON_SELECTOR)
        try:
            await button.wait_for(state="visible", timeout=_ms(timeouts["create_button_wait"]))
            debug_print("🖱️ Clicking Create button - waiting for CAPTCHA...")
            await button.click()
        except PlaywrightError as e:
            # Without a challenge the click itself fires the generate request and the browser closes under it
            if not (interceptor.captured.done() or is_closed_error(e)):
                raise
            debug_print(f"ℹ️ Browser closed while pressing Create, using the interception result: {e}")

        solver = ChallengeSolver(
            page,
            button,
            solver_client,
            timeouts=timeouts,
            abort_event=abort_event,
            locale=settings["locale"],
            drag_image_b64=_load_drag_instructions_image(cfg),
        )
    except BaseException:
        await handle.close()
        raise

    return await race_challenge(interceptor, solver, handle, grace_seconds=timeouts["interception_grace"])
