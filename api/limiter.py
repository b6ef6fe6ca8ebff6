"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in both api/main.py (to mount as middleware) and
api/routes/users.py (to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. create_app() flips limiter.enabled from
Settings.rate_limit_enabled; the flag and the counters are per process, not
per app. Tests that turn limiting on must restore it (see the
rate_limited_client fixture in tests/conftest.py).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
