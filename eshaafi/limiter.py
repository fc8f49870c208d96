# eshaafi/limiter.py
# Holds the rate limiter instance so routers can import it without importing main.py.

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings

limiter = Limiter(
    key_func=get_remote_address,
    enabled=get_settings().rate_limit_enabled,
)


def booking_rate_limit() -> str:
    return get_settings().booking_rate_limit
