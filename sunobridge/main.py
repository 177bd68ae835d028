import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request

from . import config as _config_module
from . import constants
from .api import SunoClient
from .auth import get_session_manager
from .config import parse_bool
from .console import debug_print, safe_print
from .errors import (
    CaptchaServiceError,
    ChallengeSolveFailed,
    MissingCookie,
    SessionAcquisitionFailed,
    SunoApiError,
)

PORT = constants.PORT


async def startup_event():
    config = _config_module.get_config()
    settings = _config_module.get_browser_settings(config)
    debug_print("🔧 SunoBridge configuration:")
    debug_print(f"   Cookie configured: {'Yes' if config.get('suno_cookie') else 'No (per-request Cookie header required)'}")
    debug_print(f"   2Captcha key configured: {'Yes' if config.get('twocaptcha_key') else 'No'}")
    debug_print(f"   Browser: {settings['engine']} (headless={settings['headless']}, locale={settings['locale']})")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        await startup_event()
    except Exception as e:
        debug_print(f"❌ Error during startup: {e}")
    yield


app = FastAPI(lifespan=lifespan)


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, (MissingCookie, SessionAcquisitionFailed)):
        return HTTPException(status_code=constants.HTTPStatus.UNAUTHORIZED, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=constants.HTTPStatus.BAD_REQUEST, detail=str(e))
    if isinstance(e, (ChallengeSolveFailed, CaptchaServiceError, SunoApiError)):
        return HTTPException(status_code=constants.HTTPStatus.BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=constants.HTTPStatus.INTERNAL_SERVER_ERROR, detail=f"Internal server error: {str(e)}")


async def _read_json(request: Request) -> dict:
    try:
        body = await request.json()
    except json.JSONDecodeError as e:
        debug_print(f"❌ Invalid JSON in request body: {e}")
        raise HTTPException(status_code=400, detail=f"Invalid JSON in request body: {str(e)}")
    except Exception as e:
        debug_print(f"❌ Failed to read request body: {e}")
        raise HTTPException(status_code=400, detail=f"Failed to read request body: {str(e)}")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Request body must be a JSON object.")
    return body


async def _run(request: Request, operation: Callable[[SunoClient], Awaitable]):
    """Resolve the caller's session from its Cookie header and run `operation` with error mapping."""
    try:
        manager = await get_session_manager(request.headers.get("cookie"))
        return await operation(SunoClient(manager))
    except Exception as e:
        error = _http_error(e)
        debug_print(f"❌ {request.method} {request.url.path} failed ({error.status_code}): {type(e).__name__}: {e}")
        raise error


def _optional_int(value: Optional[str], name: str, default: int) -> int:
    if value is None or not str(value).strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid parameter '{name}': expected integer")


@app.get("/api/health")
async def health_check():
    """Health check endpoint for monitoring"""
    config = _config_module.get_config()
    has_cookie = bool(config.get("suno_cookie"))
    has_solver = bool(config.get("twocaptcha_key"))
    return {
        "status": "healthy" if has_solver else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "cookie_configured": has_cookie,
            "twocaptcha_configured": has_solver,
            "browser": _config_module.get_browser_settings(config)["engine"],
        },
    }


@app.post("/api/generate")
async def generate(request: Request):
    body = await _read_json(request)
    debug_print(f"📥 /api/generate body keys: {list(body.keys())}")
    return await _run(
        request,
        lambda client: client.generate(
            body.get("prompt"),
            make_instrumental=parse_bool(body.get("make_instrumental")),
            model=body.get("model"),
            wait_audio=parse_bool(body.get("wait_audio")),
        ),
    )


@app.post("/api/custom_generate")
async def custom_generate(request: Request):
    body = await _read_json(request)
    debug_print(f"📥 /api/custom_generate body keys: {list(body.keys())}")
    return await _run(
        request,
        lambda client: client.custom_generate(
            body.get("prompt"),
            body.get("tags"),
            body.get("title"),
            make_instrumental=parse_bool(body.get("make_instrumental")),
            model=body.get("model"),
            wait_audio=parse_bool(body.get("wait_audio")),
            negative_tags=body.get("negative_tags"),
        ),
    )


@app.post("/api/extend_audio")
async def extend_audio(request: Request):
    body = await _read_json(request)
    return await _run(
        request,
        lambda client: client.extend_audio(
            body.get("audio_id"),
            body.get("continue_at"),
            prompt=body.get("prompt") or "",
            tags=body.get("tags") or "",
            negative_tags=body.get("negative_tags") or "",
            title=body.get("title") or "",
            model=body.get("model"),
            wait_audio=parse_bool(body.get("wait_audio")),
        ),
    )


@app.post("/api/concat")
async def concat(request: Request):
    body = await _read_json(request)
    return await _run(request, lambda client: client.concatenate(body.get("clip_id")))


@app.post("/api/generate_lyrics")
async def generate_lyrics(request: Request):
    body = await _read_json(request)
    return await _run(request, lambda client: client.generate_lyrics(body.get("prompt")))


@app.post("/api/generate_stems")
async def generate_stems(request: Request):
    body = await _read_json(request)
    return await _run(request, lambda client: client.generate_stems(body.get("audio_id")))


@app.get("/api/get")
async def get_audio(request: Request, ids: Optional[str] = None, page: Optional[str] = None):
    song_ids = [song_id.strip() for song_id in ids.split(",") if song_id.strip()] if ids else None
    return await _run(request, lambda client: client.get(song_ids, page))


@app.get("/api/clip")
async def get_clip(request: Request, id: Optional[str] = None):
    if not id:
        raise HTTPException(status_code=400, detail="Missing parameter id")
    return await _run(request, lambda client: client.get_clip(id))


@app.get("/api/get_limit")
async def get_limit(request: Request):
    return await _run(request, lambda client: client.get_credits())


@app.get("/api/persona")
async def get_persona(request: Request, id: Optional[str] = None, page: Optional[str] = None):
    if not id:
        raise HTTPException(status_code=400, detail="Missing parameter id")
    page_number = _optional_int(page, "page", 1)
    return await _run(request, lambda client: client.get_persona_paginated(id, page_number))


@app.get("/api/get_aligned_lyrics")
async def get_aligned_lyrics(request: Request, song_id: Optional[str] = None):
    if not song_id:
        raise HTTPException(status_code=400, detail="Song ID is required")
    return await _run(request, lambda client: client.get_lyric_alignment(song_id))


if __name__ == "__main__":
    # Avoid crashes on Windows consoles with non-UTF8 code pages (e.g., GBK) when printing emojis.
    try:
        import sys

        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    except Exception:
        pass

    safe_print("=" * 60)
    safe_print("🚀 SunoBridge Server Starting...")
    safe_print("=" * 60)
    safe_print(f"📚 API Base URL: http://localhost:{PORT}/api")
    safe_print(f"🩺 Health: http://localhost:{PORT}/api/health")
    safe_print("=" * 60)
    uvicorn.run(app, host="0.0.0.0", port=PORT)
