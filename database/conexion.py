from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL, DB_ECHO


def _lock_sqlite_on_begin(engine) -> None:
    """
    pysqlite difiere el BEGIN hasta la primera escritura, así que dos
    transacciones pueden leer la misma disponibilidad y ambas insertar.
    Se desactiva el manejo del driver y cada transacción toma el lock de
    escritura al empezar (BEGIN IMMEDIATE): las escrituras quedan serializadas.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO):
    """
    Crea el engine sincrónico.
    PostgreSQL (psycopg2) en producción; SQLite solo para tests y desarrollo local.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # Una sola conexión compartida, si no cada conexión ve una base vacía
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(url, echo=echo, **kwargs)
        _lock_sqlite_on_begin(sqlite_engine)
        return sqlite_engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

# Las tablas se crean desde main.py luego de importar los modelos


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
