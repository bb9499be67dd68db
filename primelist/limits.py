from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Shared limiter instance for the application
limiter = Limiter(key_func=get_remote_address)

# Image delivery is cached by clients; uploads are the expensive path
UPLOAD_RATE_LIMIT = "30/minute"

__all__ = [
    "limiter",
    "RateLimitExceeded",
    "SlowAPIMiddleware",
    "UPLOAD_RATE_LIMIT",
]
