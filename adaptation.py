"""Interaction-matrix adaptation: tribe ethos and emergence lenses nudge type attraction."""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

import numpy as np

from institutions import Tribe, parse_kind

MATRIX_LIMIT = 1.5
TRIBE_DELTA = 0.001
LENS_DELTA = 0.002


class Lens(str, Enum):
    OFF = "OFF"
    CULTURE = "CULTURE"
    FIELD = "FIELD"
    RITUAL = "RITUAL"
    LAW = "LAW"
    EVENTS = "EVENTS"


def default_matrix(types_count: int, rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """Mild self-attraction on the diagonal; random cross-type terms when an RNG is given."""
    size = max(1, int(types_count))
    if rng is None:
        matrix = np.zeros((size, size))
    else:
        matrix = rng.uniform(-0.5, 0.5, (size, size))
    np.fill_diagonal(matrix, 0.6)
    return matrix


def apply_tribe_effects(matrix: np.ndarray, tribes: List[Tribe]) -> None:
    size = matrix.shape[0]
    for tribe in tribes:
        t = tribe.type_id
        if t >= size:
            continue
        matrix[t, t] = min(MATRIX_LIMIT, matrix[t, t] + TRIBE_DELTA * (1 + tribe.cohesion_bias))
        tension = TRIBE_DELTA * (0.5 + tribe.tension_bias)
        for j in range(size):
            if j != t and matrix[t, j] > -1:
                matrix[t, j] = max(-MATRIX_LIMIT, matrix[t, j] - tension)


def apply_emergence_lens(matrix: np.ndarray, lens) -> None:
    """Small bounded per-tick modulation; OFF leaves the matrix untouched."""
    lens = parse_kind(Lens, lens)
    if lens is Lens.OFF:
        return
    diag = np.diag_indices_from(matrix)
    if lens is Lens.CULTURE:
        matrix[diag] = np.minimum(MATRIX_LIMIT, matrix[diag] + LENS_DELTA * 3)
    elif lens is Lens.RITUAL:
        matrix[diag] = np.minimum(MATRIX_LIMIT, matrix[diag] + LENS_DELTA * 4)
    elif lens is Lens.FIELD:
        matrix += np.sign(matrix) * LENS_DELTA * 2
    elif lens is Lens.LAW:
        matrix *= 1 - LENS_DELTA * 3
    elif lens is Lens.EVENTS:
        strong = np.abs(matrix) > 0.3
        matrix[strong] += np.sign(matrix[strong]) * LENS_DELTA * 4
    np.clip(matrix, -MATRIX_LIMIT, MATRIX_LIMIT, out=matrix)
