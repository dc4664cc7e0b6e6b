"""
=============================================================================
ERRORS.PY — Errores de Dominio
=============================================================================
Los módulos de dominio lanzan uno de estos en vez de un HTTPException.
main.py los convierte en respuestas JSON con el código que toca.

  NotFound          → 404  la entidad no existe
  Forbidden         → 403  existe pero es de otro usuario
  Conflict          → 409  clave duplicada o transición de estado no válida
  ValidationFailure → 422  datos mal formados o fuera de rango (no se escribe nada)
"""


class ArdeniaError(Exception):
    """Base de todos los errores que la API devuelve al cliente"""
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFound(ArdeniaError):
    status_code = 404


class Forbidden(ArdeniaError):
    status_code = 403


class Conflict(ArdeniaError):
    status_code = 409


class ValidationFailure(ArdeniaError):
    status_code = 422
