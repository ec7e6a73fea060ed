"""
Configuration
=============

Constants shared by the credential layers and the provider fetchers.

Per-user locations follow the Windows layout (``%LOCALAPPDATA%`` and the
user's home directory); every path can be overridden by passing explicit
arguments to the classes that use it.
"""
from __future__ import annotations

import os
from pathlib import Path

HOME = Path.home()
LOCAL_APP_DATA = Path(os.environ.get('LOCALAPPDATA') or HOME / 'AppData' / 'Local')

# ── Application ────────────────────────────────────────────────
APP_NAME = 'UsageMonitor'
DATA_DIR = LOCAL_APP_DATA / APP_NAME
LOG_FILE = DATA_DIR / 'debug.log'
LOG_LEVEL_ENV = 'USAGE_MONITOR_LOG_LEVEL'
LOG_MAX_BYTES = 1024 * 1024
LOG_BACKUP_COUNT = 2
USER_AGENT = 'usage-monitor/1.0'
BROWSER_USER_AGENT = (
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'
)

# ── Chromium cookie store ──────────────────────────────────────
# Ordered: the first browser with an existing cookie database wins.
BROWSER_USER_DATA_DIRS = (
    ('Chrome', LOCAL_APP_DATA / 'Google' / 'Chrome' / 'User Data'),
    ('Edge', LOCAL_APP_DATA / 'Microsoft' / 'Edge' / 'User Data'),
    ('Brave', LOCAL_APP_DATA / 'BraveSoftware' / 'Brave-Browser' / 'User Data'),
)
COOKIE_DB_CANDIDATES = (
    Path('Default') / 'Network' / 'Cookies',
    Path('Default') / 'Cookies',
)
LOCAL_STATE_FILE = 'Local State'
DPAPI_KEY_PREFIX = b'DPAPI'
COPY_ATTEMPTS = 3
COPY_BACKOFF = 0.1  # Seconds, multiplied by the attempt number
COPY_BUFFER = 81920

# ── Timeouts (seconds) ─────────────────────────────────────────
TIMEOUT_CLAUDE = 10
TIMEOUT_CODEX = 15
TIMEOUT_CURSOR = 15
TIMEOUT_GEMINI = 10
TIMEOUT_ZAI = 15
TIMEOUT_REFRESH = 15

# ── Claude ─────────────────────────────────────────────────────
CLAUDE_CREDENTIALS = (
    HOME / '.claude' / '.credentials.json',
    HOME / '.claude' / 'credentials.json',
)
CLAUDE_API_URL_USAGE = 'https://api.anthropic.com/api/oauth/usage'
CLAUDE_API_URL_PROFILE = 'https://api.anthropic.com/api/oauth/profile'
CLAUDE_TOKEN_URL = 'https://platform.claude.com/v1/oauth/token'
CLAUDE_CLIENT_ID = '9d1c250a-e61b-44d9-88ed-5944d1962f5e'
CLAUDE_OAUTH_BETA = 'oauth-2025-04-20'
CLAUDE_PROFILE_SCOPE = 'user:profile'
CLAUDE_WEB_API = 'https://claude.ai/api'
CLAUDE_COOKIE_DOMAIN = 'claude.ai'
CLAUDE_SESSION_COOKIE = 'sessionKey'

# ── Codex ──────────────────────────────────────────────────────
CODEX_CREDENTIALS = (HOME / '.codex' / 'auth.json',)
CODEX_USAGE_URL = 'https://chatgpt.com/backend-api/wham/usage'
CODEX_TOKEN_URL = 'https://auth.openai.com/oauth/token'
CODEX_CLIENT_ID = 'app_EMoamEEZ73f0CkXaXp7hrann'
CODEX_REFRESH_SCOPE = 'openid profile email'
CODEX_TOKEN_MAX_AGE_DAYS = 8
CODEX_COOKIE_DOMAIN = 'chatgpt.com'
CODEX_SESSION_COOKIE = '__Secure-next-auth.session-token'

# ── Cursor ─────────────────────────────────────────────────────
CURSOR_USAGE_URL = 'https://cursor.com/api/usage-summary'
CURSOR_USER_URL = 'https://cursor.com/api/auth/me'
CURSOR_COOKIE_DOMAIN = 'cursor.com'
CURSOR_SESSION_COOKIES = (
    'WorkosCursorSessionToken',
    '__Secure-next-auth.session-token',
    'next-auth.session-token',
)
CURSOR_DEFAULT_ON_DEMAND_LIMIT_CENTS = 5000

# ── Gemini ─────────────────────────────────────────────────────
GEMINI_CREDENTIALS = (HOME / '.gemini' / 'oauth_creds.json',)
GEMINI_QUOTA_URL = 'https://cloudcode-pa.googleapis.com/v1internal:retrieveUserQuota'
GEMINI_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GEMINI_CLIENT_ID_ENV = 'GEMINI_OAUTH_CLIENT_ID'
GEMINI_CLIENT_SECRET_ENV = 'GEMINI_OAUTH_CLIENT_SECRET'
GEMINI_AUTH_TYPE = 'oauth-personal'

# ── Zai ────────────────────────────────────────────────────────
ZAI_USAGE_URL = 'https://api.z.ai/v1/usage'
ZAI_TOKEN_ENV = 'ZAI_API_TOKEN'
ZAI_CONFIG = HOME / '.zai' / 'config.json'
ZAI_CONFIG_KEY = 'api_token'
# ───────────────────────────────────────────────────────────────
