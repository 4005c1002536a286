"""
Configuración del motor de reservas
Todas las variables se leen del entorno (.env vía python-dotenv)
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


# Database Configuration
# DATABASE_URL tiene prioridad; si no está, se arma la URL clásica de PostgreSQL (psycopg2)
DATABASE_URL = os.getenv("DATABASE_URL") or (
    f"postgresql://{os.getenv('DB_USER')}:{os.getenv('DB_PASSWORD')}"
    f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/{os.getenv('DB_NAME')}"
)
DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

# Hotel
HOTEL_TIMEZONE = os.getenv("HOTEL_TIMEZONE", "America/Argentina/Buenos_Aires")

# Booking Configuration
BOOKING_REFERENCE_PREFIX = os.getenv("BOOKING_REFERENCE_PREFIX", "LDG-")
BOOKING_REFERENCE_LENGTH = 6
BOOKING_REFERENCE_ATTEMPTS = _env_int("BOOKING_REFERENCE_ATTEMPTS", 10)

# Transaction Configuration
BOOKING_TX_TIMEOUT_SECONDS = _env_int("BOOKING_TX_TIMEOUT_SECONDS", 15)
TX_MAX_RETRIES = _env_int("TX_MAX_RETRIES", 3)

# Auth (solo validación de tokens; la emisión vive en otro servicio)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Rate limiting (rutas públicas)
RATE_LIMIT_PUBLIC = os.getenv("RATE_LIMIT_PUBLIC", "30/minute")
RATE_LIMIT_STORAGE = os.getenv("REDIS_URL", "memory://")
RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"

# Logging
LOG_FILE = os.getenv("LOG_FILE", "lodging_logs.txt")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if origin.strip()
]
