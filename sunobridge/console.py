"""
Console output helpers for SunoBridge.

All modules print through `safe_print`/`debug_print` so that a console with a narrow encoding
(e.g. GBK on Windows) can never crash a request handler or the challenge loop.
"""

import builtins as _builtins
import re
import sys

from . import constants


def safe_print(*args, **kwargs) -> None:
    """
    Print without crashing on Windows console encoding issues (e.g., GBK can't encode emoji).
    This must never raise, because it's used inside request handlers and route callbacks.
    """
    try:
        _builtins.print(*args, **kwargs)
    except UnicodeEncodeError:
        file = kwargs.get("file") or sys.stdout
        sep = kwargs.get("sep", " ")
        end = kwargs.get("end", "\n")
        flush = bool(kwargs.get("flush", False))

        try:
            text = sep.join(str(a) for a in args) + end
            encoding = getattr(file, "encoding", None) or getattr(sys.stdout, "encoding", None) or "utf-8"
            safe_text = text.encode(encoding, errors="backslashreplace").decode(encoding, errors="ignore")
            file.write(safe_text)
            if flush:
                try:
                    file.flush()
                except Exception:
                    pass
        except Exception:
            return


def debug_print(*args, **kwargs):
    """Print debug messages only if DEBUG is True"""
    if constants.DEBUG:
        safe_print(*args, **kwargs)


def get_status_emoji(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "✅"
    elif 300 <= status_code < 400:
        return "↪️"
    elif 400 <= status_code < 500:
        if status_code == 401:
            return "🔒"
        elif status_code == 403:
            return "🚫"
        elif status_code == 429:
            return "⏱️"
        return "⚠️"
    elif 500 <= status_code < 600:
        return "❌"
    return "ℹ️"


def log_http_status(status_code: int, context: str = "") -> None:
    emoji = get_status_emoji(status_code)
    message = constants.STATUS_MESSAGES.get(status_code, f"Unknown Status {status_code}")
    if context:
        debug_print(f"{emoji} HTTP {status_code}: {message} ({context})")
    else:
        debug_print(f"{emoji} HTTP {status_code}: {message}")


_SENSITIVE_KEY_PARTS = ("cookie", "token", "authorization", "auth", "key", "secret")
_LONG_SECRET_PATTERN = re.compile(r"[A-Za-z0-9_-]{20,}")


def redact(data):
    """
    Shorten credentials before they reach the console.

    Strings keep only the first 8 characters of anything that looks like a token; dicts have values of
    sensitive keys (cookie/token/auth/key/secret) replaced with a short prefix.
    """
    if not data:
        return data
    if isinstance(data, str):
        return _LONG_SECRET_PATTERN.sub(lambda m: f"{m.group(0)[:8]}...", data)
    if isinstance(data, dict):
        cleaned = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if any(part in lowered for part in _SENSITIVE_KEY_PARTS):
                text = str(value)
                cleaned[key] = f"{text[:8]}...[REDACTED]" if len(text) > 8 else "[REDACTED]"
            else:
                cleaned[key] = redact(value)
        return cleaned
    if isinstance(data, (list, tuple)):
        return [redact(item) for item in data]
    return data
