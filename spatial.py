"""Spatial grid analyzer: per-cell counts, type histograms, mean velocity and centroid."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np

from substrate import AgentSubstrate

GRID_RESOLUTION = 10

CellKey = Tuple[int, int]


@dataclass
class GridCell:
    count: int = 0
    type_counts: Dict[int, int] = field(default_factory=dict)
    mean_vx: float = 0.0
    mean_vy: float = 0.0
    mean_speed: float = 0.0
    centroid_x: float = 0.0
    centroid_y: float = 0.0

    def dominant_type(self) -> Optional[int]:
        if not self.type_counts:
            return None
        # ties resolve to the lowest type id
        return max(sorted(self.type_counts), key=lambda t: self.type_counts[t])

    def purity(self) -> float:
        dom = self.dominant_type()
        if dom is None or self.count == 0:
            return 0.0
        return self.type_counts[dom] / self.count


def cell_index(coord: np.ndarray, resolution: int) -> np.ndarray:
    idx = np.floor((coord + 1.0) * 0.5 * resolution).astype(int)
    return np.clip(idx, 0, resolution - 1)


def cell_center(key: CellKey, resolution: int = GRID_RESOLUTION) -> Tuple[float, float]:
    size = 2.0 / resolution
    return -1.0 + (key[0] + 0.5) * size, -1.0 + (key[1] + 0.5) * size


def all_cells(resolution: int = GRID_RESOLUTION) -> Iterator[CellKey]:
    """Row-major iteration over every cell, populated or not."""
    for gy in range(resolution):
        for gx in range(resolution):
            yield (gx, gy)


def neighbor_keys(key: CellKey, resolution: int = GRID_RESOLUTION) -> List[CellKey]:
    gx, gy = key
    keys = []
    for dy in (-1, 0, 1):
        for dx in (-1, 0, 1):
            if dx == 0 and dy == 0:
                continue
            nx, ny = gx + dx, gy + dy
            if 0 <= nx < resolution and 0 <= ny < resolution:
                keys.append((nx, ny))
    return keys


def build_spatial_grid(substrate: AgentSubstrate, resolution: int = GRID_RESOLUTION) -> Dict[CellKey, GridCell]:
    """Bucket agents into a fixed grid; only populated cells appear in the result."""
    resolution = max(1, int(resolution))
    n = substrate.count
    if n == 0:
        return {}
    x, y, vx, vy, types = substrate.view()
    gx = cell_index(x, resolution)
    gy = cell_index(y, resolution)
    speed = np.hypot(vx, vy)

    sums: Dict[CellKey, list] = {}
    for i in range(n):
        key = (int(gx[i]), int(gy[i]))
        acc = sums.get(key)
        if acc is None:
            acc = sums[key] = [0, {}, 0.0, 0.0, 0.0, 0.0, 0.0]
        acc[0] += 1
        t = int(types[i])
        acc[1][t] = acc[1].get(t, 0) + 1
        acc[2] += vx[i]
        acc[3] += vy[i]
        acc[4] += speed[i]
        acc[5] += x[i]
        acc[6] += y[i]

    grid: Dict[CellKey, GridCell] = {}
    for key, (count, type_counts, svx, svy, sspeed, sx, sy) in sums.items():
        grid[key] = GridCell(
            count=count,
            type_counts=type_counts,
            mean_vx=float(svx / count),
            mean_vy=float(svy / count),
            mean_speed=float(sspeed / count),
            centroid_x=float(sx / count),
            centroid_y=float(sy / count),
        )
    return grid
