from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import CORS_ORIGINS
from database.conexion import Base, engine
import models  # asegura que todos los modelos estén registrados
from endpoints import auditoria, caja, disponibilidad, estadisticas, housekeeping, reservas
from utils.error_handlers import setup_error_handlers
from utils.logging_utils import log_error, log_event
from utils.rate_limiter import setup_rate_limiting


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
        log_event("sistema", None, "Tablas creadas (o ya existian)", engine.url.render_as_string(hide_password=True))
    except Exception as e:
        log_error("sistema", None, "Error creando tablas", str(e))
        raise
    yield


app = FastAPI(title="Lodging Reservation Engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_rate_limiting(app)
setup_error_handlers(app)

app.include_router(disponibilidad.router)
app.include_router(reservas.router)
app.include_router(caja.router)
app.include_router(housekeeping.router)
app.include_router(estadisticas.router)
app.include_router(auditoria.router)


@app.get("/health")
def health():
    return {"status": "ok"}
