"""Agent substrate: fixed-capacity struct-of-arrays population over [-1, 1]^2."""

from __future__ import annotations

from typing import Tuple

import numpy as np

DOMAIN_MIN = -1.0
DOMAIN_MAX = 1.0


class AgentSubstrate:
    """Parallel arrays indexed by agent id, valid for ``[0, count)``.

    The physics subsystem owns agent lifetime; the sociogenesis engine only
    reads positions/types and mutates velocities and energy in place.
    """

    def __init__(self, capacity: int = 1000):
        self.capacity = 0
        self.count = 0
        self.reset(capacity)

    def reset(self, capacity: int | None = None) -> None:
        capacity = self.capacity if capacity is None else max(1, int(capacity))
        self.capacity = capacity
        self.count = 0
        self.x = np.zeros(capacity, dtype=float)
        self.y = np.zeros(capacity, dtype=float)
        self.vx = np.zeros(capacity, dtype=float)
        self.vy = np.zeros(capacity, dtype=float)
        self.type = np.zeros(capacity, dtype=np.int16)
        self.energy = np.zeros(capacity, dtype=float)

    @classmethod
    def from_arrays(cls, x, y, vx=None, vy=None, types=None, energy=None, capacity: int | None = None) -> "AgentSubstrate":
        x = np.asarray(x, dtype=float)
        n = int(x.size)
        sub = cls(capacity=max(n, capacity or n, 1))
        sub.count = n
        sub.x[:n] = x
        sub.y[:n] = np.asarray(y, dtype=float)
        sub.vx[:n] = 0.0 if vx is None else np.asarray(vx, dtype=float)
        sub.vy[:n] = 0.0 if vy is None else np.asarray(vy, dtype=float)
        sub.type[:n] = 0 if types is None else np.asarray(types, dtype=np.int16)
        sub.energy[:n] = 1.0 if energy is None else np.asarray(energy, dtype=float)
        return sub

    def spawn_random(self, rng: np.random.Generator, count: int, types_count: int = 4, speed: float = 0.02) -> None:
        """Fill the first ``count`` slots uniformly; resizes only through ``reset``."""
        count = max(0, int(count))
        if count > self.capacity:
            self.reset(count)
        types_count = max(1, int(types_count))
        self.count = count
        self.x[:count] = rng.uniform(-0.95, 0.95, count)
        self.y[:count] = rng.uniform(-0.95, 0.95, count)
        angle = rng.uniform(0.0, 2.0 * np.pi, count)
        self.vx[:count] = np.cos(angle) * speed
        self.vy[:count] = np.sin(angle) * speed
        self.type[:count] = np.arange(count) % types_count
        self.energy[:count] = 1.0

    def view(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        n = self.count
        return self.x[:n], self.y[:n], self.vx[:n], self.vy[:n], self.type[:n]

    def integrate(self, dt: float, friction: float = 0.9, speed_clamp: float = 0.12) -> None:
        """Minimal stand-in for the physics step: drift, friction, wall bounce."""
        n = self.count
        if n == 0:
            return
        speed = np.hypot(self.vx[:n], self.vy[:n])
        over = speed > speed_clamp
        if over.any():
            scale = speed_clamp / speed[over]
            self.vx[:n][over] *= scale
            self.vy[:n][over] *= scale
        self.x[:n] += self.vx[:n] * dt
        self.y[:n] += self.vy[:n] * dt
        damp = friction ** dt
        self.vx[:n] *= damp
        self.vy[:n] *= damp
        for pos, vel in ((self.x, self.vx), (self.y, self.vy)):
            low = pos[:n] < DOMAIN_MIN
            high = pos[:n] > DOMAIN_MAX
            pos[:n][low] = 2 * DOMAIN_MIN - pos[:n][low]
            pos[:n][high] = 2 * DOMAIN_MAX - pos[:n][high]
            vel[:n][low | high] *= -1.0


STEERING_CLAMP = 0.025


def apply_steering(vx: np.ndarray, vy: np.ndarray, i: int, bx: float, by: float, clamp: float = STEERING_CLAMP) -> None:
    """Add a velocity delta to agent ``i``, each axis capped at ``clamp``."""
    vx[i] += min(clamp, max(-clamp, bx))
    vy[i] += min(clamp, max(-clamp, by))
