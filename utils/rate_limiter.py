"""
Rate Limiting
Protección contra abuso del motor de reservas público
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import RATE_LIMIT_ENABLED, RATE_LIMIT_PUBLIC, RATE_LIMIT_STORAGE

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=RATE_LIMIT_STORAGE,  # Usar Redis en producción
    strategy="fixed-window",
    enabled=RATE_LIMIT_ENABLED,
)


def setup_rate_limiting(app):
    """Configurar rate limiting en la aplicación FastAPI"""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    return limiter


public_limit = limiter.limit(RATE_LIMIT_PUBLIC)
