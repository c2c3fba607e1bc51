"""Institution detector: spawns totems, taboos and rituals from raw agent behavior."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np

from chronicle import narrate_event
from institutions import (
    EPS,
    Ritual,
    RitualKind,
    SocietyState,
    Taboo,
    TabooKind,
    Totem,
    TotemKind,
    Tribe,
)
from spatial import GRID_RESOLUTION, CellKey, GridCell, all_cells, build_spatial_grid, cell_center, neighbor_keys
from substrate import AgentSubstrate

logger = logging.getLogger(__name__)

DETECTION_CADENCE_SEC = 20.0
MIN_CLUSTER_SIZE = 8
VELOCITY_THRESHOLD_ORACLE = 0.07
VELOCITY_THRESHOLD_ARCHIVE = 0.02
BOND_PURITY = 0.6
BOND_MAX_SPEED = 0.05
RIFT_DIVERSITY = 0.5
RIFT_SPEED_RANGE = (0.025, 0.08)

TOTEM_EXCLUSION_D2 = 0.08
TOTEM_RADIUS = 0.15
TOTEM_STRENGTH = 0.8
EMERGENT_WINDOW_SEC = 30.0
MAX_EMERGENT_PER_WINDOW = 3

TABOO_EXCLUSION_D2 = 0.06
NO_ENTER_NEIGHBOR_DENSITY = MIN_CLUSTER_SIZE * 0.6
NO_MIX_MIN_COUNT = MIN_CLUSTER_SIZE * 0.4
NO_MIX_OTHER_MIN = 2

RITUAL_SCAN_FACTOR = 2.5
RITUAL_MIN_SAMPLES = 4
RITUAL_PERIOD_SEC = 8.0
RITUAL_DUTY_CYCLE = 0.4
RITUAL_INTENSITY = 0.7

TRIBE_MIN_MEMBERS = 3


def should_run_detection(last_detection: float, now: float, cadence: float = DETECTION_CADENCE_SEC) -> bool:
    return now - last_detection >= cadence


def classify_totem(cell: GridCell, population: int) -> Optional[TotemKind]:
    """Map a populated cell to a totem kind; None when nothing stands out.

    Priority: ORACLE, then BOND for type-pure slow crowds, then ARCHIVE for
    any other stagnant crowd, then RIFT for diverse moderate-speed mixing.
    """
    if cell.count < MIN_CLUSTER_SIZE:
        return None
    speed = cell.mean_speed
    if speed > VELOCITY_THRESHOLD_ORACLE and cell.count >= MIN_CLUSTER_SIZE * 0.5:
        return TotemKind.ORACLE
    if cell.purity() > BOND_PURITY and speed < BOND_MAX_SPEED and cell.count >= MIN_CLUSTER_SIZE:
        return TotemKind.BOND
    if speed < VELOCITY_THRESHOLD_ARCHIVE and cell.count >= MIN_CLUSTER_SIZE * 0.7:
        return TotemKind.ARCHIVE
    normalizer = max(1.0, min(population / 8.0, 5.0))
    diversity = len(cell.type_counts) / normalizer
    lo, hi = RIFT_SPEED_RANGE
    if diversity > RIFT_DIVERSITY and lo < speed < hi and cell.count >= MIN_CLUSTER_SIZE * 0.6:
        return TotemKind.RIFT
    return None


def _near_any(items, x: float, y: float, d2_limit: float) -> bool:
    return any((t.x - x) ** 2 + (t.y - y) ** 2 < d2_limit for t in items)


def _recent_emergent(state: SocietyState, now: float) -> int:
    state.emergent_spawns = [t for t in state.emergent_spawns if now - t < EMERGENT_WINDOW_SEC]
    return len(state.emergent_spawns)


def detect_totems(state: SocietyState, substrate: AgentSubstrate, grid: Dict[CellKey, GridCell], now: float) -> List[Totem]:
    spawned: List[Totem] = []
    cfg = state.config
    for key in sorted(grid):
        if len(state.totems) >= cfg.max_totems:
            break
        cell = grid[key]
        cx, cy = cell.centroid_x, cell.centroid_y
        if _near_any(state.totems, cx, cy, TOTEM_EXCLUSION_D2):
            continue
        kind = classify_totem(cell, substrate.count)
        if kind is None:
            continue
        if _recent_emergent(state, now) >= MAX_EMERGENT_PER_WINDOW:
            break
        totem = Totem(
            id=state.gen_id("totem"),
            kind=kind,
            x=cx,
            y=cy,
            radius=TOTEM_RADIUS,
            strength=TOTEM_STRENGTH,
            pinned=False,
            born_at=now,
            name=state.namer(kind.value),
            emergent=True,
        )
        state.totems.append(totem)
        state.emergent_spawns.append(now)
        state.chronicle.append(narrate_event("TOTEM_EMERGED", {"kind": kind.value, "name": totem.name}, now))
        logger.info("totem emerged: %s %r at (%.2f, %.2f)", kind.value, totem.name, cx, cy)
        spawned.append(totem)
    return spawned


def _no_enter_candidate(key: CellKey, grid: Dict[CellKey, GridCell], resolution: int) -> bool:
    neighbors = neighbor_keys(key, resolution)
    if not neighbors:
        return False
    for nk in neighbors:
        cell = grid.get(nk)
        if cell is None or cell.count <= NO_ENTER_NEIGHBOR_DENSITY:
            return False
    return True


def _no_mix_candidate(key: CellKey, cell: GridCell, grid: Dict[CellKey, GridCell], resolution: int) -> Optional[int]:
    if cell.count <= NO_MIX_MIN_COUNT or len(cell.type_counts) != 1:
        return None
    own_type = next(iter(cell.type_counts))
    for nk in neighbor_keys(key, resolution):
        other = grid.get(nk)
        if other is None:
            continue
        for t, c in sorted(other.type_counts.items()):
            if t != own_type and c > NO_MIX_OTHER_MIN:
                return own_type
    return None


def detect_taboos(
    state: SocietyState,
    grid: Dict[CellKey, GridCell],
    now: float,
    resolution: int = GRID_RESOLUTION,
) -> Optional[Taboo]:
    """Spawn at most one taboo per pass."""
    if len(state.taboos) >= state.config.max_taboos:
        return None
    for key in all_cells(resolution):
        cell = grid.get(key)
        if cell is None:
            x, y = cell_center(key, resolution)
            if _near_any(state.taboos, x, y, TABOO_EXCLUSION_D2):
                continue
            if _no_enter_candidate(key, grid, resolution):
                taboo = Taboo(
                    id=state.gen_id("taboo"),
                    kind=TabooKind.NO_ENTER,
                    x=x,
                    y=y,
                    radius=0.1,
                    intensity=0.7,
                    born_at=now,
                    emergent=True,
                )
                return _register_taboo(state, taboo, now)
            continue
        x, y = cell.centroid_x, cell.centroid_y
        if _near_any(state.taboos, x, y, TABOO_EXCLUSION_D2):
            continue
        target = _no_mix_candidate(key, cell, grid, resolution)
        if target is not None:
            taboo = Taboo(
                id=state.gen_id("taboo"),
                kind=TabooKind.NO_MIX,
                x=x,
                y=y,
                radius=0.12,
                intensity=0.6,
                target_type=target,
                born_at=now,
                emergent=True,
            )
            return _register_taboo(state, taboo, now)
    return None


def _register_taboo(state: SocietyState, taboo: Taboo, now: float) -> Taboo:
    state.taboos.append(taboo)
    state.chronicle.append(narrate_event("TABOO_EMERGED", {"kind": taboo.kind.value}, now))
    logger.info("taboo emerged: %s at (%.2f, %.2f) target=%s", taboo.kind.value, taboo.x, taboo.y, taboo.target_type)
    return taboo


def motion_signature(substrate: AgentSubstrate, totem: Totem):
    """Average radial/tangential velocity and speed of agents within 2.5x the totem radius.

    Returns ``(count, radial, tangential, speed)``; negative radial means inward.
    """
    x, y, vx, vy, _ = substrate.view()
    dx = x - totem.x
    dy = y - totem.y
    d2 = dx * dx + dy * dy
    mask = (d2 < (totem.radius * RITUAL_SCAN_FACTOR) ** 2) & (d2 > EPS)
    n = int(mask.sum())
    if n == 0:
        return 0, 0.0, 0.0, 0.0
    d = np.sqrt(d2[mask])
    nx = dx[mask] / d
    ny = dy[mask] / d
    mvx = vx[mask]
    mvy = vy[mask]
    radial = mvx * nx + mvy * ny
    tangential = np.abs(mvx * -ny + mvy * nx)
    speed = np.hypot(mvx, mvy)
    return n, float(radial.mean()), float(tangential.mean()), float(speed.mean())


def classify_ritual(count: int, radial: float, tangential: float, speed: float) -> Optional[RitualKind]:
    if count < RITUAL_MIN_SAMPLES:
        return None
    if tangential > 0.02 and abs(radial) < 0.02:
        return RitualKind.PROCESSION
    if radial < -0.008 and tangential < 0.025:
        return RitualKind.GATHER
    if speed < 0.03 and count > 5:
        return RitualKind.OFFERING
    return None


def detect_rituals(state: SocietyState, substrate: AgentSubstrate, now: float) -> List[Ritual]:
    spawned: List[Ritual] = []
    cfg = state.config
    for totem in list(state.totems):
        if len(state.rituals) >= cfg.max_rituals:
            break
        if any(r.totem_id == totem.id for r in state.rituals):
            continue
        kind = classify_ritual(*motion_signature(substrate, totem))
        if kind is None:
            continue
        ritual = Ritual(
            id=state.gen_id("ritual"),
            kind=kind,
            totem_id=totem.id,
            period_sec=RITUAL_PERIOD_SEC,
            duty_cycle=RITUAL_DUTY_CYCLE,
            intensity=RITUAL_INTENSITY,
            born_at=now,
            emergent=True,
        )
        state.rituals.append(ritual)
        state.chronicle.append(narrate_event("RITUAL_EMERGED", {"kind": kind.value, "totem_name": totem.name}, now))
        logger.info("ritual emerged: %s at totem %r", kind.value, totem.name)
        spawned.append(ritual)
    return spawned


def detect_emergent_institutions(
    state: SocietyState,
    substrate: AgentSubstrate,
    now: float,
    resolution: int = GRID_RESOLUTION,
) -> Dict[str, list]:
    """One detection pass; returns what was spawned, keyed by institution type."""
    if not state.config.enabled:
        return {"totems": [], "taboos": [], "rituals": []}
    grid = build_spatial_grid(substrate, resolution)
    totems = detect_totems(state, substrate, grid, now)
    taboo = detect_taboos(state, grid, now, resolution)
    rituals = detect_rituals(state, substrate, now)
    return {"totems": totems, "taboos": [taboo] if taboo else [], "rituals": rituals}


def detect_tribes(state: SocietyState, substrate: AgentSubstrate, now: float) -> List[Tribe]:
    """Group totems by the agent type dominating each; existing tribes keep id and ethos."""
    if not state.totems:
        state.tribes = []
        return state.tribes
    x, y, _, _, types = substrate.view()
    type_to_totems: Dict[int, List[str]] = {}
    for totem in state.totems:
        inside = (x - totem.x) ** 2 + (y - totem.y) ** 2 < totem.radius ** 2
        if not inside.any():
            continue
        counts = np.bincount(types[inside].astype(int))
        dominant = int(np.argmax(counts))
        if counts[dominant] >= TRIBE_MIN_MEMBERS:
            type_to_totems.setdefault(dominant, []).append(totem.id)

    tribes: List[Tribe] = []
    for type_id in sorted(type_to_totems):
        totem_ids = type_to_totems[type_id]
        existing = next((t for t in state.tribes if t.type_id == type_id), None)
        if existing is not None:
            existing.totems = totem_ids
            tribes.append(existing)
            continue
        cohesion, tension = Tribe.ethos_for(type_id, now)
        tribes.append(
            Tribe(
                id=state.gen_id("tribe"),
                type_id=type_id,
                totems=totem_ids,
                cohesion_bias=cohesion,
                tension_bias=tension,
                born_at=now,
            )
        )
    state.tribes = tribes
    return tribes
