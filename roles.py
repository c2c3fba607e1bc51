"""Justice roles: enforcers chase offenders, vigilantes patrol taboos, resisters defy them."""

from __future__ import annotations

import math
from enum import IntEnum
from typing import Optional

import numpy as np

from institutions import SocietyState, Taboo
from substrate import AgentSubstrate, apply_steering

ROLE_ASSIGNMENT_CHANCE = 0.003
ROLE_DURATION_SEC = 30.0
ENFORCER_SPEED_BOOST = 1.3
RESISTER_SPEED_BOOST = 1.2
NO_TARGET = -1


class Role(IntEnum):
    NEUTRAL = 0
    ENFORCER = 1
    VIGILANTE = 2
    RESISTER = 3


class RoleState:
    """Per-agent role code, enforcer target and expiry, sized to substrate capacity."""

    def __init__(self, capacity: int = 0):
        self.resize(capacity)

    def resize(self, capacity: int) -> None:
        capacity = max(0, int(capacity))
        self.roles = np.zeros(capacity, dtype=np.int8)
        self.targets = np.full(capacity, NO_TARGET, dtype=int)
        self.expires_at = np.zeros(capacity, dtype=float)

    def ensure(self, capacity: int) -> None:
        if self.roles.size < capacity:
            old_roles, old_targets, old_expiry = self.roles, self.targets, self.expires_at
            self.resize(capacity)
            n = old_roles.size
            self.roles[:n] = old_roles
            self.targets[:n] = old_targets
            self.expires_at[:n] = old_expiry

    def counts(self, count: int):
        roles = self.roles[:count]
        return {role.name: int((roles == role).sum()) for role in Role if role is not Role.NEUTRAL}


def _nearby_taboo(state: SocietyState, px: float, py: float) -> Optional[Taboo]:
    for taboo in state.taboos:
        if (px - taboo.x) ** 2 + (py - taboo.y) ** 2 < (taboo.radius * 2) ** 2:
            return taboo
    return None


def _offender_for(state: SocietyState, taboo_id: str) -> int:
    """Offender of the most recent case filed against this taboo."""
    for case in reversed(state.cases):
        if case.taboo_id == taboo_id and case.offender is not None:
            return int(case.offender)
    return NO_TARGET


def update_roles(state: SocietyState, roles: RoleState, substrate: AgentSubstrate, now: float, rng: np.random.Generator) -> None:
    n = substrate.count
    roles.ensure(substrate.capacity)

    expired = (roles.roles[:n] != Role.NEUTRAL) & (now >= roles.expires_at[:n])
    roles.roles[:n][expired] = Role.NEUTRAL
    roles.targets[:n][expired] = NO_TARGET

    if n == 0:
        return
    # exactly n draws per tick, whatever the current roles
    draws = rng.random(n)
    x, y, vx, vy, _ = substrate.view()
    for i in range(n):
        if roles.roles[i] != Role.NEUTRAL or draws[i] > ROLE_ASSIGNMENT_CHANCE:
            continue
        speed = math.hypot(vx[i], vy[i])
        taboo = _nearby_taboo(state, x[i], y[i])
        new_role = Role.NEUTRAL
        if taboo is not None and state.cases:
            if speed < 0.03:
                new_role = Role.VIGILANTE
            elif speed > 0.06:
                new_role = Role.ENFORCER
                roles.targets[i] = _offender_for(state, taboo.id)
        elif speed > 0.08:
            new_role = Role.RESISTER
        if new_role is not Role.NEUTRAL:
            roles.roles[i] = new_role
            roles.expires_at[i] = now + ROLE_DURATION_SEC


def _nearest_taboo(state: SocietyState, px: float, py: float, skip_inside: bool = False) -> Optional[Taboo]:
    best = None
    best_d2 = math.inf
    for taboo in state.taboos:
        d2 = (px - taboo.x) ** 2 + (py - taboo.y) ** 2
        if skip_inside and d2 <= (taboo.radius * 0.5) ** 2:
            continue
        if d2 < best_d2:
            best_d2 = d2
            best = taboo
    return best


def apply_role_behaviors(state: SocietyState, roles: RoleState, substrate: AgentSubstrate, gain: float) -> None:
    n = substrate.count
    if n == 0 or roles.roles.size == 0:
        return
    x, y, vx, vy, _ = substrate.view()
    active = np.nonzero(roles.roles[:n] != Role.NEUTRAL)[0]
    for i in active:
        role = roles.roles[i]
        px, py = x[i], y[i]
        if role == Role.ENFORCER:
            target = roles.targets[i]
            if 0 <= target < n:
                dx = x[target] - px
                dy = y[target] - py
                d = math.hypot(dx, dy)
                if d > 0.01:
                    force = 0.03 * gain * ENFORCER_SPEED_BOOST
                    apply_steering(vx, vy, i, dx / d * force, dy / d * force)
        elif role == Role.VIGILANTE:
            taboo = _nearest_taboo(state, px, py)
            if taboo is None:
                continue
            dx = px - taboo.x
            dy = py - taboo.y
            d = math.hypot(dx, dy)
            if d > 0.01:
                orbit = 0.015 * gain
                radial = (d - taboo.radius * 1.5) * 0.02 * gain
                apply_steering(vx, vy, i, (-dy * orbit - dx * radial) / d, (dx * orbit - dy * radial) / d)
        elif role == Role.RESISTER:
            taboo = _nearest_taboo(state, px, py, skip_inside=True)
            if taboo is None:
                continue
            dx = taboo.x - px
            dy = taboo.y - py
            d = math.hypot(dx, dy)
            if d > 0.01:
                force = 0.02 * gain * RESISTER_SPEED_BOOST
                apply_steering(vx, vy, i, dx / d * force, dy / d * force)
