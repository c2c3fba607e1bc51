"""Institution force engine: bounded steering deltas from totems, rituals and roles."""

from __future__ import annotations

import logging
import math
from typing import List

from institutions import RitualKind, SocietyState, SocioCase, Totem, TotemKind
from justice import prune_cases, run_justice
from roles import RoleState, apply_role_behaviors, update_roles
from substrate import AgentSubstrate, apply_steering

logger = logging.getLogger(__name__)

BOND_GAIN = 1.2
RIFT_GAIN = 0.9
ORACLE_GAIN = 0.4
RITUAL_REACH = 1.5


def should_tick(state: SocietyState, now: float) -> bool:
    return state.config.enabled and now - state.last_tick_time >= state.config.tick_interval


def apply_totem_forces(state: SocietyState, substrate: AgentSubstrate, gain: float) -> None:
    x, y, vx, vy, _ = substrate.view()
    for totem in state.totems:
        if totem.kind is TotemKind.ARCHIVE:
            # passive memory: only counts who stands inside
            _count_inside(totem, substrate)
            continue
        r2 = totem.radius * totem.radius
        strength = totem.strength * gain
        oracle = state.oracle_for(totem.id).advance() if totem.kind is TotemKind.ORACLE else None
        for i in range(substrate.count):
            dx = x[i] - totem.x
            dy = y[i] - totem.y
            d2 = dx * dx + dy * dy
            if d2 > r2 or d2 < 1e-8:
                continue
            totem.affected_count += 1
            falloff = 1.0 - math.sqrt(d2) / totem.radius
            if totem.kind is TotemKind.BOND:
                k = falloff * strength * BOND_GAIN
                apply_steering(vx, vy, i, -dx * k, -dy * k)
            elif totem.kind is TotemKind.RIFT:
                k = falloff * strength * RIFT_GAIN
                apply_steering(vx, vy, i, dx * k, dy * k)
            else:
                k = falloff * strength * ORACLE_GAIN
                apply_steering(vx, vy, i, oracle[0] * k, oracle[1] * k)


def _count_inside(totem: Totem, substrate: AgentSubstrate) -> None:
    x, y, _, _, _ = substrate.view()
    d2 = (x - totem.x) ** 2 + (y - totem.y) ** 2
    totem.affected_count += int(((d2 <= totem.radius ** 2) & (d2 >= 1e-8)).sum())


def apply_ritual_forces(state: SocietyState, substrate: AgentSubstrate, gain: float, now: float) -> None:
    x, y, vx, vy, _ = substrate.view()
    for ritual, totem in state.active_rituals(now):
        reach2 = (totem.radius * RITUAL_REACH) ** 2
        strength = ritual.intensity * gain
        for i in range(substrate.count):
            dx = totem.x - x[i]
            dy = totem.y - y[i]
            d2 = dx * dx + dy * dy
            if d2 > reach2 or d2 < 1e-8:
                continue
            ritual.affected_count += 1
            d = math.sqrt(d2)
            nx = dx / d
            ny = dy / d
            if ritual.kind is RitualKind.GATHER:
                pull = strength * 1.5 * min(1.0, d / totem.radius)
                apply_steering(vx, vy, i, nx * pull, ny * pull)
            elif ritual.kind is RitualKind.PROCESSION:
                orbit = strength * 1.2
                radial = strength * 0.4 * (1.0 - d / (totem.radius * 1.2))
                apply_steering(vx, vy, i, -ny * orbit + nx * radial, nx * orbit + ny * radial)
            else:
                falloff = 1.0 - d / (totem.radius * RITUAL_REACH)
                if falloff > 0:
                    damp = max(0.0, 1.0 - falloff * strength * 0.45)
                    apply_steering(vx, vy, i, vx[i] * (damp - 1.0), vy[i] * (damp - 1.0))


def run_institution_tick(
    state: SocietyState,
    substrate: AgentSubstrate,
    roles: RoleState,
    now: float,
    rng,
) -> List[SocioCase]:
    """One force tick: roles, totems, taboos and justice, rituals, role behaviors, pruning.

    Returns the cases opened this tick.
    """
    if not state.config.enabled:
        return []
    gain = state.config.gain
    state.reset_affected_counts()

    if state.config.enable_roles:
        update_roles(state, roles, substrate, now, rng)

    apply_totem_forces(state, substrate, gain)
    opened = run_justice(state, substrate, gain, now)
    apply_ritual_forces(state, substrate, gain, now)

    if state.config.enable_roles:
        apply_role_behaviors(state, roles, substrate, gain)

    prune_cases(state)
    state.last_tick_time = now
    if opened:
        logger.debug("institution tick at %.1fs opened %d case(s)", now, len(opened))
    return opened
