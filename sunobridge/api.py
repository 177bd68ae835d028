"""
Suno studio API client.

Thin wrappers around https://studio-api.prod.suno.com. Every call renews the Clerk JWT first; generation
calls obtain a fresh hCaptcha completion token from the browser flow and embed it in the payload.
"""

import asyncio
import random
import time
from typing import Optional

from . import constants
from .auth import SessionManager
from .captcha import get_captcha_token
from .config import parse_bool
from .console import debug_print, log_http_status, redact
from .errors import SunoApiError


def _require_string(value, name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"Invalid parameter '{name}': expected string, got {type(value).__name__}")
    if not value.strip():
        raise ValueError(f"Invalid parameter '{name}': must not be empty")
    return value


def _optional_string(value, name: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"Invalid parameter '{name}': expected string or null, got {type(value).__name__}")
    return value


def _require_number(value, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value != value:
        raise ValueError(f"Invalid parameter '{name}': expected number, got {type(value).__name__}")
    return value


def parse_lyrics(prompt: str) -> str:
    """Drop empty lines from clip lyrics."""
    return "\n".join(line for line in str(prompt or "").split("\n") if line.strip())


def audio_info(clip: dict, *, parse_prompt: bool = False) -> dict:
    metadata = clip.get("metadata") or {}
    prompt = metadata.get("prompt")
    if parse_prompt:
        lyric = parse_lyrics(prompt) if prompt else ""
    else:
        lyric = prompt
    return {
        "id": clip.get("id"),
        "title": clip.get("title"),
        "image_url": clip.get("image_url"),
        "lyric": lyric,
        "audio_url": clip.get("audio_url"),
        "video_url": clip.get("video_url"),
        "created_at": clip.get("created_at"),
        "model_name": clip.get("model_name"),
        "status": clip.get("status"),
        "gpt_description_prompt": metadata.get("gpt_description_prompt"),
        "prompt": prompt,
        "type": metadata.get("type"),
        "tags": metadata.get("tags"),
        "negative_tags": metadata.get("negative_tags"),
        "duration": metadata.get("duration"),
        "error_message": metadata.get("error_message"),
    }


class SunoClient:
    def __init__(self, manager: SessionManager):
        self.manager = manager
        self.timeouts = manager.timeouts

    @property
    def config(self) -> dict:
        return self.manager.config

    async def keep_alive(self, wait: bool = False) -> None:
        await self.manager.renew_token(wait)

    async def _call(self, method: str, path: str, *, json=None, params=None, timeout_name: Optional[str] = None):
        timeout = self.timeouts.get(timeout_name) if timeout_name else None
        resp = await self.manager.request(
            method,
            f"{constants.SUNO_API_BASE_URL}{path}",
            json=json,
            params=params,
            timeout=timeout or None,
        )
        log_http_status(resp.status_code, f"{method} {path}")
        if resp.status_code != constants.HTTPStatus.OK:
            raise SunoApiError(f"Error response: {resp.status_code} {resp.reason_phrase}", resp.status_code)
        try:
            return resp.json()
        except ValueError:
            raise SunoApiError(f"Non-JSON response from {path}", resp.status_code)

    async def captcha_required(self) -> bool:
        data = await self._call("POST", "/api/c/check", json={"ctype": "generation"})
        debug_print(f"🔍 CAPTCHA check response: {redact(data)}")
        return bool(isinstance(data, dict) and data.get("required"))

    async def _generation_token(self) -> Optional[str]:
        if parse_bool(self.config.get("captcha_check_before_generate"), default=False):
            if not await self.captcha_required():
                debug_print("✅ CAPTCHA not required, skipping browser")
                return None
        return await get_captcha_token(self.manager.session, config=self.config)

    async def generate(
        self,
        prompt: str,
        make_instrumental: bool = False,
        model: Optional[str] = None,
        wait_audio: bool = False,
    ) -> list[dict]:
        _require_string(prompt, "prompt")
        _optional_string(model, "model")
        start = time.monotonic()
        audios = await self._generate_songs(
            prompt, False, make_instrumental=make_instrumental, model=model, wait_audio=wait_audio
        )
        debug_print(f"⏱️ Generate cost time: {time.monotonic() - start:.1f}s")
        return audios

    async def custom_generate(
        self,
        prompt: str,
        tags: str,
        title: str,
        make_instrumental: bool = False,
        model: Optional[str] = None,
        wait_audio: bool = False,
        negative_tags: Optional[str] = None,
    ) -> list[dict]:
        _require_string(prompt, "prompt")
        _require_string(tags, "tags")
        _require_string(title, "title")
        _optional_string(model, "model")
        _optional_string(negative_tags, "negative_tags")
        start = time.monotonic()
        audios = await self._generate_songs(
            prompt,
            True,
            tags=tags,
            title=title,
            make_instrumental=make_instrumental,
            model=model,
            wait_audio=wait_audio,
            negative_tags=negative_tags,
        )
        debug_print(f"⏱️ Custom generate cost time: {time.monotonic() - start:.1f}s")
        return audios

    async def extend_audio(
        self,
        audio_id: str,
        continue_at,
        prompt: str = "",
        tags: str = "",
        negative_tags: str = "",
        title: str = "",
        model: Optional[str] = None,
        wait_audio: bool = False,
    ) -> list[dict]:
        _require_string(audio_id, "audio_id")
        _optional_string(model, "model")
        _require_number(continue_at, "continue_at")
        return await self._generate_songs(
            prompt,
            True,
            tags=tags,
            title=title,
            model=model,
            wait_audio=wait_audio,
            negative_tags=negative_tags,
            task="extend",
            continue_clip_id=audio_id,
            continue_at=continue_at,
        )

    async def _generate_songs(
        self,
        prompt: str,
        is_custom: bool,
        *,
        tags: Optional[str] = None,
        title: Optional[str] = None,
        make_instrumental: bool = False,
        model: Optional[str] = None,
        wait_audio: bool = False,
        negative_tags: Optional[str] = None,
        task: Optional[str] = None,
        continue_clip_id: Optional[str] = None,
        continue_at=None,
    ) -> list[dict]:
        _optional_string(task, "task")
        _optional_string(continue_clip_id, "continue_clip_id")
        if continue_at is not None:
            _require_number(continue_at, "continue_at")
        if task == "extend":
            _require_string(continue_clip_id, 'continue_clip_id (required when task is "extend")')

        await self.keep_alive()
        payload = {
            "make_instrumental": bool(make_instrumental),
            "mv": model or constants.DEFAULT_MODEL,
            "prompt": "",
            "generation_type": "EXTEND" if task == "extend" else "TEXT",
            "continue_at": continue_at,
            "continue_clip_id": continue_clip_id,
            "task": task,
            "token": await self._generation_token(),
        }
        if is_custom:
            payload["tags"] = tags
            payload["title"] = title
            payload["negative_tags"] = negative_tags
            payload["prompt"] = prompt
        else:
            payload["gpt_description_prompt"] = prompt
        debug_print(f"🎵 generateSongs payload: {redact(payload)}")

        data = await self._call("POST", "/api/generate/v2/", json=payload, timeout_name="api_generate")
        clips = data.get("clips") or []
        if wait_audio:
            return await self.wait_for_audio([clip.get("id") for clip in clips])
        return [audio_info(clip) for clip in clips]

    async def wait_for_audio(self, song_ids: list[str]) -> list[dict]:
        """
        Poll the feed until every clip is streaming/complete or every clip failed. Returns the last
        response seen when `audio_generation_max` runs out.
        """
        start = time.monotonic()
        last_response: list[dict] = []
        await asyncio.sleep(self.timeouts["audio_poll_initial_delay"])
        while time.monotonic() - start < self.timeouts["audio_generation_max"]:
            response = await self.get(song_ids)
            all_completed = all(audio.get("status") in ("streaming", "complete") for audio in response)
            all_error = all(audio.get("status") == "error" for audio in response)
            if all_completed or all_error:
                return response
            last_response = response
            await asyncio.sleep(
                random.uniform(self.timeouts["audio_poll_delay_min"], self.timeouts["audio_poll_delay_max"])
            )
            await self.keep_alive(True)
        debug_print("⏰ Audio generation did not finish in time, returning last status")
        return last_response

    async def concatenate(self, clip_id: str) -> dict:
        _require_string(clip_id, "clip_id")
        await self.keep_alive()
        return await self._call(
            "POST", "/api/generate/concat/v2/", json={"clip_id": clip_id}, timeout_name="api_concatenate"
        )

    async def generate_lyrics(self, prompt: str) -> dict:
        _require_string(prompt, "prompt")
        await self.keep_alive()
        generated = await self._call("POST", "/api/generate/lyrics/", json={"prompt": prompt})
        generate_id = generated.get("id")
        if not generate_id:
            raise SunoApiError("Lyrics generation returned no id")

        lyrics = await self._call("GET", f"/api/generate/lyrics/{generate_id}")
        while lyrics.get("status") != "complete":
            if lyrics.get("status") == "error":
                raise SunoApiError(f"Lyrics generation failed: {lyrics.get('error_message') or 'unknown error'}")
            await asyncio.sleep(self.timeouts["lyrics_poll_delay"])
            lyrics = await self._call("GET", f"/api/generate/lyrics/{generate_id}")
        return lyrics

    async def get(self, song_ids: Optional[list[str]] = None, page: Optional[str] = None) -> list[dict]:
        await self.keep_alive()
        params = {}
        if song_ids:
            params["ids"] = ",".join(song_ids)
        if page:
            params["page"] = str(page)
        debug_print(f"📡 Get audio status: ids={params.get('ids')} page={params.get('page')}")
        data = await self._call("GET", "/api/feed/v2", params=params or None, timeout_name="api_feed")
        return [audio_info(clip, parse_prompt=True) for clip in data.get("clips") or []]

    async def get_clip(self, clip_id: str) -> dict:
        _require_string(clip_id, "clip_id")
        await self.keep_alive()
        return await self._call("GET", f"/api/clip/{clip_id}")

    async def get_credits(self) -> dict:
        await self.keep_alive()
        data = await self._call("GET", "/api/billing/info/")
        return {
            "credits_left": data.get("total_credits_left"),
            "period": data.get("period"),
            "monthly_limit": data.get("monthly_limit"),
            "monthly_usage": data.get("monthly_usage"),
        }

    async def get_persona_paginated(self, persona_id: str, page: int = 1) -> dict:
        _require_string(persona_id, "persona_id")
        _require_number(page, "page")
        await self.keep_alive()
        debug_print(f"📡 Fetching persona data: {persona_id} page={page}")
        return await self._call(
            "GET",
            f"/api/persona/get-persona-paginated/{persona_id}/",
            params={"page": str(page)},
            timeout_name="api_persona",
        )

    async def generate_stems(self, song_id: str) -> list[dict]:
        _require_string(song_id, "song_id")
        await self.keep_alive()
        data = await self._call("POST", f"/api/edit/stems/{song_id}", json={})
        debug_print(f"🎚️ generateStems response: {redact(data)}")
        stems = []
        for clip in data.get("clips") or []:
            metadata = clip.get("metadata") or {}
            stems.append({
                "id": clip.get("id"),
                "status": clip.get("status"),
                "created_at": clip.get("created_at"),
                "title": clip.get("title"),
                "model_name": clip.get("model_name"),
                "stem_from_id": metadata.get("stem_from_id"),
                "duration": metadata.get("duration"),
            })
        return stems

    async def get_lyric_alignment(self, song_id: str) -> list[dict]:
        _require_string(song_id, "song_id")
        await self.keep_alive()
        data = await self._call("GET", f"/api/gen/{song_id}/aligned_lyrics/v2/")
        words = data.get("aligned_words") or []
        return [
            {
                "word": word.get("word"),
                "start_s": word.get("start_s"),
                "end_s": word.get("end_s"),
                "success": word.get("success"),
                "p_align": word.get("p_align"),
            }
            for word in words
        ]
