"""
=============================================================================
LEVELS.PY — Tabla de Niveles
=============================================================================
Un único sistema de niveles para toda la app:

  nivel = floor(total_points / 100) + 1        (un nivel nuevo cada 100 puntos)

Los rangos con nombre (Novice → Legend) van sobre esa misma escala. Cada
corte es múltiplo de 100, así que un rango se alcanza justo al subir de nivel:

  Novice       0 pts  → nivel 1
  Apprentice   200    → nivel 3
  Journeyman   500    → nivel 6
  Expert       1000   → nivel 11
  Master       2000   → nivel 21
  Grandmaster  4000   → nivel 41
  Legend       8000   → nivel 81
"""

from typing import Optional

from schemas import LevelInfo, LevelTier

POINTS_PER_LEVEL = 100

# (nombre, xp_required, icono) ordenados por xp_required
LEVEL_TIERS = [
    ("Novice", 0, "🌱"),
    ("Apprentice", 200, "🌿"),
    ("Journeyman", 500, "🌳"),
    ("Expert", 1000, "⚡"),
    ("Master", 2000, "🔥"),
    ("Grandmaster", 4000, "💎"),
    ("Legend", 8000, "👑"),
]


def level_for_points(total_points: int) -> int:
    """Nivel para un total de puntos (nunca menor que 1)"""
    return max(total_points, 0) // POINTS_PER_LEVEL + 1


def points_for_level(level: int) -> int:
    """Puntos necesarios para llegar a `level`"""
    return (max(level, 1) - 1) * POINTS_PER_LEVEL


def _tier(index: int) -> LevelTier:
    name, xp_required, icon = LEVEL_TIERS[index]
    return LevelTier(name=name, xp_required=xp_required, icon=icon,
                     level=level_for_points(xp_required))


def get_tier(total_points: int) -> LevelTier:
    """El rango más alto cuyo corte no supera el total de puntos"""
    index = 0
    for i, (_, xp_required, _) in enumerate(LEVEL_TIERS):
        if total_points >= xp_required:
            index = i
    return _tier(index)


def get_next_tier(total_points: int) -> Optional[LevelTier]:
    for i, (_, xp_required, _) in enumerate(LEVEL_TIERS):
        if total_points < xp_required:
            return _tier(i)
    return None


def get_level_info(total_points: int) -> LevelInfo:
    """Desglose completo del nivel para un total de puntos"""
    level = level_for_points(total_points)
    points_in_level = total_points - points_for_level(level)
    return LevelInfo(
        level=level,
        total_points=total_points,
        points_in_level=points_in_level,
        points_to_next_level=POINTS_PER_LEVEL - points_in_level,
        progress=round(points_in_level / POINTS_PER_LEVEL * 100, 1),
        tier=get_tier(total_points),
        next_tier=get_next_tier(total_points),
    )
