"""
Constants for SunoBridge.
All hardcoded values should be defined here.
"""

# ============================================================
# APPLICATION CONFIGURATION
# ============================================================

# Set to True for detailed logging, False for minimal logging
DEBUG = True

# Port to run the server on
PORT = 3000

# Default config file path
CONFIG_FILE = "config.json"

# ============================================================
# HTTP STATUS CODES
# ============================================================

class HTTPStatus:
    """HTTP Status Codes"""
    OK = 200
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    PAYMENT_REQUIRED = 402
    FORBIDDEN = 403
    NOT_FOUND = 404
    UNPROCESSABLE_ENTITY = 422
    TOO_MANY_REQUESTS = 429
    INTERNAL_SERVER_ERROR = 500
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


# Status code descriptions for logging
STATUS_MESSAGES = {
    200: "OK - Success",
    400: "Bad Request - Invalid request syntax",
    401: "Unauthorized - Invalid or expired token",
    402: "Payment Required - Out of credits",
    403: "Forbidden - Access denied",
    404: "Not Found - Resource doesn't exist",
    422: "Unprocessable Entity",
    429: "Too Many Requests - Rate limit exceeded",
    500: "Internal Server Error",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}

# ============================================================
# SUNO / CLERK ORIGINS
# ============================================================

SUNO_ORIGIN = "https://suno.com"
SUNO_CREATE_URL = "https://suno.com/create"
SUNO_API_BASE_URL = "https://studio-api.prod.suno.com"

CLERK_BASE_URL = "https://auth.suno.com"
CLERK_JS_VERSION = "5.117.0"
CLERK_API_VERSION = "2025-11-10"

# Referers used for the two-step navigation
HOMEPAGE_REFERER = "https://www.google.com/"
CREATE_PAGE_REFERER = "https://suno.com/"

# Default model (v5)
DEFAULT_MODEL = "chirp-crow"

# ============================================================
# COOKIE NAMES AND DOMAINS
# ============================================================

CLIENT_COOKIE = "__client"
CLIENT_UAT_COOKIE = "__client_uat"
CLIENT_UAT_VARIANT_PREFIX = "__client_uat_"
SESSION_COOKIE = "__session"
ANONYMOUS_ID_COOKIE = "ajs_anonymous_id"

# Value of __client_uat meaning "not authenticated"
CLIENT_UAT_SENTINEL = "0"

# suno.com talks to Clerk through auth.suno.com, accounts.suno.com through clerk.suno.com
CLERK_PRIMARY_DOMAIN = "auth.suno.com"
CLERK_SECONDARY_DOMAIN = "clerk.suno.com"
SUNO_COOKIE_DOMAIN = ".suno.com"

# ============================================================
# HTTP HEADERS
# ============================================================

SUNO_CLIENT_HEADERS = {
    "Affiliate-Id": "undefined",
    "x-suno-client": "Android prerelease-4nt180t 1.0.42",
    "X-Requested-With": "com.suno.android",
    "sec-ch-ua": '"Chromium";v="130", "Android WebView";v="130", "Not?A_Brand";v="99"',
    "sec-ch-ua-mobile": "?1",
    "sec-ch-ua-platform": '"Android"',
}

# Mac systems usually get fewer challenges
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/130.0.0.0 Safari/537.36"
)

# ============================================================
# BROWSER SETTINGS
# ============================================================

SUPPORTED_BROWSERS = ("chromium", "firefox")
DEFAULT_BROWSER = "chromium"
DEFAULT_BROWSER_LOCALE = "en"

CHROMIUM_LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--disable-web-security",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-features=site-per-process",
    "--disable-features=IsolateOrigins",
    "--disable-extensions",
    "--disable-infobars",
]

# Recommended for Docker / machines without a GPU
CHROMIUM_DISABLE_GPU_ARGS = [
    "--enable-unsafe-swiftshader",
    "--disable-gpu",
    "--disable-setuid-sandbox",
]

CHROMIUM_DEVTOOLS_ARG = "--auto-open-devtools-for-tabs"

# ============================================================
# CAPTCHA (hCaptcha) PAGE SELECTORS
# ============================================================

HCAPTCHA_IFRAME_SELECTOR = 'iframe[title*="hCaptcha"]'
CHALLENGE_CONTAINER_SELECTOR = ".challenge-container"
CHALLENGE_PROMPT_SELECTOR = ".prompt-text"
CHALLENGE_SUBMIT_SELECTOR = ".button-submit"

PROMPT_TEXTAREA_SELECTOR = 'textarea[placeholder*="Hip-hop"]'
ANY_TEXTAREA_SELECTOR = "textarea"
CREATE_BUTTON_SELECTOR = 'button[aria-label="Create song"]'

POPUP_CLOSE_LABEL = "Close"
POPUP_CLOSE_SELECTORS = [
    'button[aria-label="Close"]',
    'svg[data-testid="close-icon"]',
]

# The generate endpoint has moved between versioned paths; listen on all of them
GENERATE_ROUTE_PATTERNS = [
    "**/api/generate/v2/**",
    "**/api/generate/v3/**",
    "**/api/generate/**",
    "**/generate/**",
]

# Body fields that may carry the completion token, in priority order
CAPTCHA_TOKEN_FIELDS = ("token", "hcaptcha_token")

CLERK_CLIENT_RESPONSE_MARKER = "auth.suno.com/v1/client"
PROJECT_API_RESPONSE_MARKER = "/api/project/"

DEFAULT_CAPTCHA_TEST_PROMPT = "Lorem ipsum"
DRAG_KEYWORD = "drag"
DRAG_MOVE_STEPS = 30
VIEWPORT_ERROR_MARKER = "viewport"
CLOSED_ERROR_MARKER = "been closed"

# ============================================================
# 2CAPTCHA
# ============================================================

TWOCAPTCHA_BASE_URL = "https://2captcha.com"
TWOCAPTCHA_NOT_READY = "CAPCHA_NOT_READY"
CAPTCHA_SOLVE_MAX_ATTEMPTS = 3
DRAG_TEXT_INSTRUCTIONS = "CLICK on the shapes at their edge or center as shown above - please be precise!"

# ============================================================
# TIMEOUTS AND DELAYS (seconds)
# ============================================================

DEFAULT_TIMEOUTS = {
    # Browser navigation (0 = unlimited)
    "page_navigation": 0,
    "page_api_response": 30,
    "clerk_auth_response": 10,
    "clerk_settle_delay": 2,
    "devtools_open_delay": 5,
    # UI element interaction
    "popup_close": 2,
    "textarea_wait": 3,
    "create_button_wait": 5,
    # Challenge solving
    "captcha_screenshot": 5,
    "captcha_image_load_delay": 3,
    "captcha_piece_unlock_delay": 1.1,
    "captcha_solve_timeout": 120,
    "captcha_poll_interval": 5,
    "interception_grace": 5,
    # Studio API requests
    "api_generate": 10,
    "api_concatenate": 10,
    "api_feed": 10,
    "api_persona": 10,
    # Polling and throttling
    "keep_alive_sleep_min": 1,
    "keep_alive_sleep_max": 2,
    "lyrics_poll_delay": 2,
    "audio_poll_initial_delay": 5,
    "audio_poll_delay_min": 3,
    "audio_poll_delay_max": 6,
    "audio_generation_max": 100,
}

# ============================================================
# SESSION REGISTRY
# ============================================================

DEFAULT_SESSION_CACHE_TTL_SECONDS = 3600
DEFAULT_SESSION_CACHE_MAX_ENTRIES = 32
