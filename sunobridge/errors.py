"""
Error taxonomy for SunoBridge.

Fatal conditions are raised to the caller of the subsystem; the FastAPI layer in main.py converts them
into HTTP errors. Transient conditions (missing popups, slow navigation) never surface as exceptions.
"""


class SunoBridgeError(Exception):
    """Base class for all SunoBridge errors."""


class MissingCookie(SunoBridgeError):
    """No usable Suno cookie was supplied in the request or the configuration."""


class SessionAcquisitionFailed(SunoBridgeError):
    """Clerk returned no active session. Usually an expired or invalid `__client` cookie."""


class NoActiveSession(SunoBridgeError):
    """Token renewal was attempted before a session id was acquired."""


class CaptchaServiceError(SunoBridgeError):
    """The external solving service rejected a request or never produced an answer."""


class ChallengeSolveFailed(SunoBridgeError):
    """The solving service failed on every attempt of one challenge cycle."""


class NavigationTimeout(SunoBridgeError):
    """A bounded wait during page navigation ran out. Logged and ignored by the browser flow."""


class SunoApiError(SunoBridgeError):
    """The Suno studio API answered with a non-success status."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = int(status_code or 0)
