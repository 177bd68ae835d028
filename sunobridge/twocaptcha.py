"""
2Captcha client for coordinate-type challenges.

Submits a base64 screenshot to `in.php` (coordinatescaptcha=1), polls `res.php` until the worker answers,
and reports wrong answers with `reportbad`.
"""

import asyncio
import time
from typing import Optional

import httpx

from . import constants
from .console import debug_print
from .errors import CaptchaServiceError


class CaptchaSolution:
    """Answer from the solving service: its id plus the ordered click/drag points."""

    def __init__(self, id: str, points: list[tuple[float, float]]):
        self.id = str(id)
        self.points = list(points)

    def __repr__(self) -> str:
        return f"CaptchaSolution(id={self.id!r}, points={self.points!r})"


def _parse_points(raw) -> list[tuple[float, float]]:
    """Accept both the JSON form ([{"x": "12", "y": "34"}]) and the legacy text form (coordinates:x=12,y=34;...)."""
    points: list[tuple[float, float]] = []
    if isinstance(raw, list):
        for item in raw:
            if not isinstance(item, dict):
                continue
            try:
                points.append((float(item["x"]), float(item["y"])))
            except (KeyError, TypeError, ValueError):
                raise CaptchaServiceError(f"Malformed coordinate in solution: {item!r}")
        return points

    text = str(raw or "")
    if text.startswith("coordinates:"):
        text = text[len("coordinates:"):]
    for chunk in text.split(";"):
        chunk = chunk.strip()
        if not chunk:
            continue
        fields = dict(part.split("=", 1) for part in chunk.split(",") if "=" in part)
        try:
            points.append((float(fields["x"]), float(fields["y"])))
        except (KeyError, ValueError):
            raise CaptchaServiceError(f"Malformed coordinate in solution: {chunk!r}")
    return points


class TwoCaptchaClient:
    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = constants.TWOCAPTCHA_BASE_URL,
        poll_interval: float = 5.0,
        solve_timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = str(api_key or "").strip()
        self.base_url = base_url.rstrip("/")
        self.poll_interval = max(0.0, float(poll_interval))
        self.solve_timeout = max(0.0, float(solve_timeout))
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(connect=10.0, read=30.0, write=30.0, pool=10.0),
            transport=self._transport,
        )

    @staticmethod
    def _json(resp: httpx.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            raise CaptchaServiceError(f"2Captcha returned non-JSON response (HTTP {resp.status_code})")
        if not isinstance(data, dict):
            raise CaptchaServiceError(f"2Captcha returned unexpected payload: {data!r}")
        return data

    async def coordinates(
        self,
        image_b64: str,
        *,
        lang: Optional[str] = None,
        text_instructions: Optional[str] = None,
        image_instructions_b64: Optional[str] = None,
    ) -> CaptchaSolution:
        if not self.api_key:
            raise CaptchaServiceError("TWOCAPTCHA_KEY is not configured")

        form = {
            "key": self.api_key,
            "method": "base64",
            "coordinatescaptcha": "1",
            "body": image_b64,
            "json": "1",
        }
        if lang:
            form["lang"] = lang
        if text_instructions:
            form["textinstructions"] = text_instructions
        if image_instructions_b64:
            form["imginstructions"] = image_instructions_b64

        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/in.php", data=form)
            data = self._json(resp)
            if data.get("status") != 1:
                raise CaptchaServiceError(f"2Captcha request failed: {data.get('request')}")
            captcha_id = str(data.get("request"))
            debug_print(f"🧩 2Captcha request created: id={captcha_id}")

            deadline = time.monotonic() + self.solve_timeout
            params = {"key": self.api_key, "action": "get", "id": captcha_id, "json": "1"}
            while True:
                await asyncio.sleep(self.poll_interval)
                resp = await client.get(f"{self.base_url}/res.php", params=params)
                result = self._json(resp)
                if result.get("status") == 1:
                    debug_print(f"✅ 2Captcha solved: id={captcha_id}")
                    return CaptchaSolution(captcha_id, _parse_points(result.get("request")))
                if result.get("request") != constants.TWOCAPTCHA_NOT_READY:
                    raise CaptchaServiceError(f"2Captcha returned error: {result.get('request')}")
                if time.monotonic() >= deadline:
                    raise CaptchaServiceError(f"2Captcha did not answer within {self.solve_timeout:.0f}s")

    async def report_bad(self, captcha_id: str) -> None:
        """Tell the service a solution was wrong. Best-effort: failures are only logged."""
        params = {"key": self.api_key, "action": "reportbad", "id": str(captcha_id), "json": "1"}
        try:
            async with self._client() as client:
                await client.get(f"{self.base_url}/res.php", params=params)
        except httpx.HTTPError as e:
            debug_print(f"⚠️ Failed to report bad solution {captcha_id}: {e}")
