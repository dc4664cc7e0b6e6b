"""
=============================================================================
CLOCK.PY — Fechas y Límites de Día
=============================================================================
Toda decisión de día natural (rachas, progreso diario, misiones semanales)
pasa por aquí, así toda la app está de acuerdo en qué es "hoy".

La zona horaria canónica sale de APP_TIMEZONE (por defecto UTC).
Las marcas de tiempo en la BD son UTC sin tzinfo, como las columnas created_at.
"""

import os
from datetime import date, datetime, timedelta
from typing import Optional

import pytz

APP_TIMEZONE = pytz.timezone(os.getenv("APP_TIMEZONE", "UTC"))


def utcnow() -> datetime:
    """Instante actual en UTC sin tzinfo (el formato de almacenamiento)"""
    return datetime.now(pytz.utc).replace(tzinfo=None)


def today(now: Optional[datetime] = None) -> date:
    """
    Fecha del día en la zona horaria canónica.

    `now` puede venir sin tzinfo (se trata como UTC) o con ella.
    """
    if now is None:
        now = datetime.now(pytz.utc)
    elif now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(APP_TIMEZONE).date()


def days_between(earlier: date, later: date) -> int:
    """Días naturales completos de `earlier` a `later` (negativo si van al revés)"""
    return (later - earlier).days


def start_of_day(day: date) -> datetime:
    """Medianoche de `day` en la zona canónica, como UTC sin tzinfo"""
    local = APP_TIMEZONE.localize(datetime(day.year, day.month, day.day))
    return local.astimezone(pytz.utc).replace(tzinfo=None)


def days_ago(days: int, reference: Optional[date] = None) -> date:
    return (reference or today()) - timedelta(days=days)
