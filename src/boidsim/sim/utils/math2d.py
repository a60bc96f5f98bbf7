from __future__ import annotations

import math

from pygame.math import Vector2


def _safe_normalize_xy(x: float, y: float) -> Vector2:
    magnitude_sq = x * x + y * y
    if magnitude_sq < 1e-10:
        return Vector2()
    inv = 1.0 / math.sqrt(magnitude_sq)
    return Vector2(x * inv, y * inv)


def _with_length(vector: Vector2, length: float) -> Vector2:
    # Zero vectors stay zero instead of raising like Vector2.scale_to_length.
    magnitude_sq = vector.length_squared()
    if magnitude_sq < 1e-18:
        return Vector2()
    return vector * (length / math.sqrt(magnitude_sq))


def _clamp_length(vector: Vector2, max_length: float) -> Vector2:
    if max_length <= 0:
        return Vector2()
    magnitude_sq = vector.length_squared()
    if magnitude_sq <= max_length * max_length:
        return vector
    if magnitude_sq == 0:
        return Vector2()
    return vector.normalize() * max_length


def _angle_between(a: Vector2, b: Vector2) -> float:
    if a.length_squared() < 1e-12 or b.length_squared() < 1e-12:
        return 0.0
    return math.atan2(a.x * b.y - a.y * b.x, a.x * b.x + a.y * b.y)


def _heading_from_velocity(vector: Vector2) -> float:
    if vector.length_squared() < 1e-12:
        return 0.0
    return math.atan2(vector.y, vector.x)


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))
