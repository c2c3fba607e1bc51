"""Taboo enforcement and the crime/judgment state machine."""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from chronicle import ChronicleEntry, narrate_event
from institutions import (
    CaseStatus,
    JusticeMode,
    Resolution,
    SocietyState,
    SocioCase,
    Taboo,
    TabooKind,
)
from substrate import AgentSubstrate, apply_steering

logger = logging.getLogger(__name__)

VIOLATION_THRESHOLD = 0.3
CASE_COOLDOWN_SEC = 12.0
RETRIBUTIVE_CROWD = 15
MAX_RESOLVED_CASES = 20
PUNISH_PUSH = 0.08
PUNISH_DAMPING = 0.5
RESTORE_PULL = 0.025


def enforce_taboo(taboo: Taboo, substrate: AgentSubstrate, gain: float) -> Tuple[float, Optional[int]]:
    """Apply the taboo's local effect; return (violation strength, deepest violator)."""
    n = substrate.count
    if n == 0:
        return 0.0, None
    x, y, vx, vy, types = substrate.view()
    r2 = taboo.radius * taboo.radius
    violation = 0.0
    offender = None
    deepest = -1.0

    if taboo.kind is TabooKind.NO_ENTER:
        for i in range(n):
            dx = x[i] - taboo.x
            dy = y[i] - taboo.y
            d2 = dx * dx + dy * dy
            if d2 >= r2:
                continue
            taboo.affected_count += 1
            d = math.sqrt(d2)
            overlap = 1.0 - d / taboo.radius
            push = overlap * taboo.intensity * gain * 2.0
            apply_steering(vx, vy, i, dx / (d + 1e-6) * push, dy / (d + 1e-6) * push)
            violation += overlap
            if overlap > deepest:
                deepest = overlap
                offender = i
    elif taboo.kind is TabooKind.NO_MIX and taboo.target_type is not None:
        damp = max(0.0, 1.0 - taboo.intensity * gain * 0.35)
        for i in range(n):
            if int(types[i]) != taboo.target_type:
                continue
            dx = x[i] - taboo.x
            dy = y[i] - taboo.y
            d2 = dx * dx + dy * dy
            if d2 >= r2:
                continue
            taboo.affected_count += 1
            apply_steering(vx, vy, i, vx[i] * (damp - 1.0), vy[i] * (damp - 1.0))
            violation += 0.3
            depth = 1.0 - math.sqrt(d2) / taboo.radius
            if depth > deepest:
                deepest = depth
                offender = i
    return violation, offender


def can_open_case(state: SocietyState, taboo_id: str, now: float) -> bool:
    if state.open_case_for(taboo_id) is not None:
        return False
    last = state.last_resolved_for(taboo_id)
    return last is None or now - (last.resolved_at or 0.0) > CASE_COOLDOWN_SEC


def count_inside(taboo: Taboo, substrate: AgentSubstrate) -> int:
    x, y, _, _, _ = substrate.view()
    return int((((x - taboo.x) ** 2 + (y - taboo.y) ** 2) < taboo.radius ** 2).sum())


def choose_mode(state: SocietyState, taboo: Taboo, substrate: AgentSubstrate) -> JusticeMode:
    mode = state.config.justice_mode
    if mode is JusticeMode.AUTO:
        # dense crowds are dispersed, sparse ones healed
        mode = JusticeMode.RETRIBUTIVE if count_inside(taboo, substrate) > RETRIBUTIVE_CROWD else JusticeMode.RESTORATIVE
    return mode


def punish(taboo: Taboo, substrate: AgentSubstrate) -> None:
    x, y, vx, vy, _ = substrate.view()
    r2 = taboo.radius * taboo.radius
    for i in range(substrate.count):
        dx = x[i] - taboo.x
        dy = y[i] - taboo.y
        d2 = dx * dx + dy * dy
        if d2 >= r2:
            continue
        d = math.sqrt(d2)
        push = PUNISH_PUSH / d if d > 1e-6 else 0.0
        # push out, damp, then clamp the net change
        tx = (vx[i] + dx * push) * PUNISH_DAMPING
        ty = (vy[i] + dy * push) * PUNISH_DAMPING
        apply_steering(vx, vy, i, tx - vx[i], ty - vy[i])


def restore(state: SocietyState, taboo: Taboo, substrate: AgentSubstrate) -> None:
    if not state.totems:
        return
    totem = min(state.totems, key=lambda t: (t.x - taboo.x) ** 2 + (t.y - taboo.y) ** 2)
    x, y, vx, vy, _ = substrate.view()
    wide_r2 = taboo.radius * taboo.radius * 2
    for i in range(substrate.count):
        if (x[i] - taboo.x) ** 2 + (y[i] - taboo.y) ** 2 >= wide_r2:
            continue
        dx = totem.x - x[i]
        dy = totem.y - y[i]
        d = math.hypot(dx, dy)
        if d > 1e-6:
            apply_steering(vx, vy, i, dx / d * RESTORE_PULL, dy / d * RESTORE_PULL)


def resolve_case(state: SocietyState, case: SocioCase, substrate: AgentSubstrate, now: float) -> Optional[ChronicleEntry]:
    taboo = state.find_taboo(case.taboo_id)
    if taboo is None:
        return None
    mode = choose_mode(state, taboo, substrate)
    if mode is JusticeMode.RETRIBUTIVE:
        case.resolution = Resolution.PUNISH
        punish(taboo, substrate)
    else:
        case.resolution = Resolution.RESTORE
        restore(state, taboo, substrate)
    case.status = CaseStatus.RESOLVED
    case.resolved_at = now
    logger.debug("case %s resolved: %s", case.id, case.resolution.value)
    return state.chronicle.append(
        narrate_event("JUDGMENT", {"resolution": case.resolution.value, "case_id": case.id}, now)
    )


def judge_violation(
    state: SocietyState,
    taboo: Taboo,
    violation: float,
    offender: Optional[int],
    substrate: AgentSubstrate,
    now: float,
) -> Optional[SocioCase]:
    """Open and immediately resolve a case when the violation crosses the threshold."""
    if violation <= VIOLATION_THRESHOLD or not can_open_case(state, taboo.id, now):
        return None
    case = SocioCase(id=state.gen_id("case"), taboo_id=taboo.id, offender=offender, created_at=now)
    state.cases.append(case)
    state.chronicle.append(
        narrate_event("TRANSGRESSION", {"taboo_kind": taboo.kind.value, "violation": f"{violation:.2f}"}, now)
    )
    logger.info("transgression at %s (violation %.2f, offender %s)", taboo.id, violation, offender)
    resolve_case(state, case, substrate, now)
    return case


def prune_cases(state: SocietyState, keep: int = MAX_RESOLVED_CASES) -> None:
    resolved = [c for c in state.cases if c.status is CaseStatus.RESOLVED]
    if len(resolved) <= keep:
        return
    drop = {id(c) for c in resolved[: len(resolved) - keep]}
    state.cases = [c for c in state.cases if id(c) not in drop]


def run_justice(state: SocietyState, substrate: AgentSubstrate, gain: float, now: float) -> List[SocioCase]:
    opened: List[SocioCase] = []
    for taboo in state.taboos:
        violation, offender = enforce_taboo(taboo, substrate, gain)
        case = judge_violation(state, taboo, violation, offender, substrate, now)
        if case is not None:
            opened.append(case)
    return opened
