"""
Configuración de pytest y fixtures compartidas de los tests de Ardenia.

Cada test tiene una BD SQLite en memoria nueva, con el catálogo de logros
ya cargado.
"""

import os

# Hay que fijarlo antes de que nadie importe database.py
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("APP_TIMEZONE", "UTC")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from achievements import seed_achievements
from auth import hash_password
from database import Base, SessionLocal, drop_db, init_db
from models import User

PASSWORD = "secret123"


@pytest.fixture
def db():
    """
    Sesión sobre una BD recién creada.

    Yields:
        Session: sesión de SQLAlchemy sobre la BD en memoria
    """
    drop_db()
    init_db()
    session = SessionLocal()
    seed_achievements(session)
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Fábrica de usuarios; los kwargs extra son columnas de User."""
    password_hash = hash_password(PASSWORD)

    def _make_user(username="ada", **columns):
        user = User(
            email=f"{username}@example.com",
            username=username,
            display_name=username.title(),
            password_hash=password_hash,
            **columns,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def client(db):
    """TestClient que ejecuta el lifespan de la app (tablas + catálogo)."""
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_client(client):
    """TestClient que ya lleva un token bearer del usuario 'ada'."""
    response = client.post("/auth/register", json={
        "email": "ada@example.com",
        "username": "ada",
        "password": PASSWORD,
    })
    assert response.status_code == 201
    client.headers.update({"Authorization": f"Bearer {response.json()['access_token']}"})
    return client


@pytest.fixture
def two_sessions(tmp_path):
    """
    Dos sesiones sobre el mismo SQLite en fichero, como dos peticiones
    simultáneas. El usuario 'ada' ya existe.

    Yields:
        tuple[Session, Session]: (primera, segunda)
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ardenia.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    first, second = factory(), factory()
    seed_achievements(first)
    first.add(User(
        email="ada@example.com", username="ada", display_name="Ada",
        password_hash=hash_password(PASSWORD),
    ))
    first.commit()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()
