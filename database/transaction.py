"""
Ejecución transaccional con reintentos

Un único wrapper para todas las escrituras del motor: abre la transacción con
el nivel de aislamiento pedido, aplica el timeout, ejecuta la unidad de trabajo,
hace commit y, si el store reporta un conflicto de serialización, la repite
completa (la función se vuelve a llamar desde cero, nunca se reutilizan lecturas
de un intento anterior).
"""
import time
from typing import Callable, Iterable, Optional, TypeVar

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from config import TX_MAX_RETRIES
from services.exceptions import TransactionConflict, TransactionTimeout
from utils.logging_utils import log_event, log_error

T = TypeVar("T")

SERIALIZATION_FAILURE_STATES = frozenset({"40001", "40P01"})  # serialization_failure, deadlock_detected
TIMEOUT_STATES = frozenset({"57014", "55P03"})  # query_canceled, lock_not_available

SERIALIZABLE = "SERIALIZABLE"
READ_COMMITTED = "READ COMMITTED"


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def is_serialization_failure(exc: DBAPIError, extra_states: Iterable[str] = ()) -> bool:
    state = _sqlstate(exc)
    if state and (state in SERIALIZATION_FAILURE_STATES or state in extra_states):
        return True
    # SQLite no tiene SQLSTATE: el equivalente es el lock de escritura
    return isinstance(exc, OperationalError) and "database is locked" in str(exc.orig).lower()


def is_timeout(exc: DBAPIError) -> bool:
    return _sqlstate(exc) in TIMEOUT_STATES


def _apply_timeout(db: Session, timeout_seconds: Optional[float]) -> None:
    if not timeout_seconds:
        return
    if db.get_bind().dialect.name != "postgresql":
        return
    ms = int(timeout_seconds * 1000)
    db.execute(text(f"SET LOCAL statement_timeout = {ms}"))
    db.execute(text(f"SET LOCAL lock_timeout = {ms}"))


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    isolation_level: str = SERIALIZABLE,
    retries: int = TX_MAX_RETRIES,
    timeout_seconds: Optional[float] = None,
    retry_states: Iterable[str] = (),
    area: str = "db",
    actor: Optional[object] = None,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """
    Ejecuta `work(db)` dentro de una transacción y hace commit.

    El wrapper es dueño de la transacción de la sesión: cualquier estado
    pendiente previo se descarta antes de cada intento.

    Raises:
        TransactionConflict: conflicto de serialización después de `retries` intentos
        TransactionTimeout: el store canceló la consulta o el trabajo excedió el tiempo
        LodgingError: cualquier error de negocio de `work`, sin tocar
    """
    retries = max(1, retries)
    attempt = 0
    while True:
        attempt += 1
        db.rollback()
        started = clock()
        try:
            db.connection(execution_options={"isolation_level": isolation_level})
            _apply_timeout(db, timeout_seconds)

            result = work(db)
            db.flush()

            if timeout_seconds and clock() - started > timeout_seconds:
                raise TransactionTimeout(timeout_seconds)

            db.commit()
            return result

        except DBAPIError as exc:
            db.rollback()
            if is_timeout(exc):
                log_error(area, actor, "Timeout de transacción", f"intento={attempt} error={exc.orig}")
                raise TransactionTimeout(timeout_seconds or 0) from exc
            if is_serialization_failure(exc, retry_states):
                if attempt < retries:
                    log_event(area, actor, "Conflicto de serialización, reintentando", f"intento={attempt}")
                    continue
                log_error(area, actor, "Conflicto de serialización persistente", f"intentos={attempt}")
                raise TransactionConflict(attempt) from exc
            raise

        except Exception:
            db.rollback()
            raise
