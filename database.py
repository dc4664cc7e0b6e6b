"""
=============================================================================
DATABASE.PY — Configuración de la Base de Datos
=============================================================================
Configura la conexión a la base de datos.

En DESARROLLO: SQLite (archivo local .db)
En PRODUCCIÓN: PostgreSQL

¿Cómo sabe cuál usar?
→ Si existe la variable de entorno DATABASE_URL, usa esa URL.
→ Si no, usa un SQLite local.
→ "sqlite://" (en memoria) comparte una sola conexión entre sesiones,
  que es con lo que corren los tests.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# ─────────────────────────────────────────────────────────────────────────────
# CONEXIÓN
# ─────────────────────────────────────────────────────────────────────────────

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./ardenia.db")

# Los proveedores dan "postgres://" pero SQLAlchemy necesita "postgresql://",
# y el driver es psycopg (v3), así que la URL queda "postgresql+psycopg://"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+psycopg://", 1)
elif DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+psycopg://", 1)

# ─────────────────────────────────────────────────────────────────────────────
# MOTOR (Engine)
# ─────────────────────────────────────────────────────────────────────────────
# check_same_thread=False → solo SQLite; FastAPI atiende las peticiones
# desde un pool de hilos.

engine_args = {}
if DATABASE_URL.startswith("sqlite"):
    engine_args["connect_args"] = {"check_same_thread": False}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        # Una BD en memoria vive dentro de una única conexión
        engine_args["poolclass"] = StaticPool

engine = create_engine(DATABASE_URL, echo=False, **engine_args)

# ─────────────────────────────────────────────────────────────────────────────
# SESIÓN
# ─────────────────────────────────────────────────────────────────────────────
# Una sesión = una unidad de trabajo (una petición). SessionLocal es la fábrica.

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ─────────────────────────────────────────────────────────────────────────────
# BASE
# ─────────────────────────────────────────────────────────────────────────────

Base = declarative_base()


def get_db():
    """
    Genera una sesión de BD y la cierra al terminar la petición.

    Se usa como dependencia en FastAPI:
      @app.get("/algo")
      def endpoint(db: Session = Depends(get_db)):
          ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """
    Crea todas las tablas que aún no existen.
    Se llama una vez al arrancar la aplicación.
    """
    # hay que importar los modelos para que sus tablas se registren en Base
    import models  # noqa: F401
    Base.metadata.create_all(bind=engine)


def drop_db():
    """Borra todas las tablas. Solo para tests y resets en local."""
    import models  # noqa: F401
    Base.metadata.drop_all(bind=engine)
