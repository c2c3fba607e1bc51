"""Optional field collaborator: point samples of cohesion/scarcity/tension/affinity/stress."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np


@dataclass(frozen=True)
class FieldSample:
    cohesion: float = 0.0
    scarcity: float = 0.0
    tension: float = 0.0
    affinity: float = 0.5
    stress: float = 0.0


NEUTRAL_SAMPLE = FieldSample()


class FieldSampler(Protocol):
    def sample(self, x: float, y: float) -> FieldSample:
        ...


class NeutralField:
    """Field stand-in used when no collaborator is attached."""

    def sample(self, x: float, y: float) -> FieldSample:
        return NEUTRAL_SAMPLE


class GridField:
    """Field backed by per-channel numpy grids indexed ``[gy, gx]`` over [-1, 1]^2.

    Missing channels sample as the neutral default.
    """

    CHANNELS = ("cohesion", "scarcity", "tension", "affinity", "stress")

    def __init__(self, width: int = 32, height: int = 32, **channels: np.ndarray):
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        self.layers = {}
        for name, grid in channels.items():
            if name not in self.CHANNELS:
                raise ValueError(f"unknown field channel: {name}")
            arr = np.asarray(grid, dtype=float)
            if arr.shape != (self.height, self.width):
                arr = np.broadcast_to(arr, (self.height, self.width)).copy()
            self.layers[name] = np.clip(arr, 0.0, 1.0)

    def index(self, x: float, y: float):
        gx = min(self.width - 1, max(0, int(np.floor((x + 1.0) * 0.5 * self.width))))
        gy = min(self.height - 1, max(0, int(np.floor((y + 1.0) * 0.5 * self.height))))
        return gy, gx

    def sample(self, x: float, y: float) -> FieldSample:
        gy, gx = self.index(x, y)
        values = {name: float(grid[gy, gx]) for name, grid in self.layers.items()}
        return FieldSample(**values)
