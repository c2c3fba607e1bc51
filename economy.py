"""Economy engine: resource field, harvest and metabolism, territorial claims, inequality metrics."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from culture import CultureState
from field import FieldSampler
from institutions import SocietyState, TotemKind, clamp, clamp01, parse_kind
from substrate import AgentSubstrate

logger = logging.getLogger(__name__)

GRID_W = 32
GRID_H = 32
BASE_RESOURCE = 0.08
NUM_HOTSPOTS = 5
HARVEST_THRESHOLD = 0.22
HARVEST_DEPLETION = 0.55
FATIGUE_ENERGY = 0.1
FATIGUE_SPEED_DAMPEN = 0.92
RITUAL_COST_PER_SEC = 0.010
TOTEM_TAX_PER_SEC = 0.004
CLAIM_FLIP_FLOOR = 0.08
CLAIM_SPREAD_MIN = 0.06
CLAIM_CLEAR_BELOW = 0.015
SCARCITY_LEVEL = 0.25
FAMINE_ENERGY = 0.2
FAMINE_TICKS = 3
GINI_SPIKE = 0.05
GINI_SPIKE_FLOOR = 0.40
METRIC_SAMPLE = 200
NEUTRAL = -1


class ResourceMode(str, Enum):
    STATIC = "STATIC"
    FIELD_DERIVED = "FIELD_DERIVED"


@dataclass
class EconomyConfig:
    enabled: bool = True
    resource_mode: ResourceMode = ResourceMode.FIELD_DERIVED
    resource_regen: float = 0.06
    resource_harvest: float = 0.08
    metabolism: float = 0.015
    claim_gain: float = 0.12
    claim_decay: float = 0.02
    claim_diffusion: float = 0.08
    gini_alert: float = 0.45
    interval_sec: float = 2.0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.resource_mode = parse_kind(ResourceMode, self.resource_mode)
        self.resource_regen = clamp(self.resource_regen, 0.0, 1.0)
        self.resource_harvest = clamp(self.resource_harvest, 0.0, 1.0)
        self.metabolism = clamp(self.metabolism, 0.0, 0.5)
        self.claim_gain = clamp(self.claim_gain, 0.0, 1.0)
        self.claim_decay = clamp(self.claim_decay, 0.0, 1.0)
        self.claim_diffusion = clamp01(self.claim_diffusion)
        self.gini_alert = clamp01(self.gini_alert)
        self.interval_sec = max(0.1, float(self.interval_sec))


class EconomyState:
    """Resource and claim grids indexed ``[gy, gx]`` over [-1, 1]^2."""

    def __init__(self, width: int = GRID_W, height: int = GRID_H):
        self.width = max(1, int(width))
        self.height = max(1, int(height))
        shape = (self.height, self.width)
        self.R = np.full(shape, 0.25)
        self.R_static = np.full(shape, 0.25)
        self.claim_owner = np.full(shape, NEUTRAL, dtype=np.int16)
        self.claim_strength = np.zeros(shape)

    def cell_of(self, x: float, y: float) -> Tuple[int, int]:
        gx = min(self.width - 1, max(0, int(math.floor((x + 1) * 0.5 * self.width))))
        gy = min(self.height - 1, max(0, int(math.floor((y + 1) * 0.5 * self.height))))
        return gy, gx

    def cell_center(self, gy: int, gx: int) -> Tuple[float, float]:
        return -1.0 + (gx + 0.5) * 2.0 / self.width, -1.0 + (gy + 0.5) * 2.0 / self.height


@dataclass
class EconomyMetrics:
    mean_energy: float = 0.5
    gini: float = 0.0
    scarcity_ratio: float = 0.0
    dominant_group: int = NEUTRAL
    territory_share: float = 0.0
    fatigue_count: int = 0
    famine_consecutive: int = 0


@dataclass
class EconomyEvent:
    kind: str
    icon: str
    message: str


def init_economy(state: EconomyState, rng: np.random.Generator) -> None:
    """Lay seeded Gaussian hotspots over a low base; copy to the live field and clear claims."""
    W, H = state.width, state.height
    gy, gx = np.mgrid[0:H, 0:W]
    base = np.full((H, W), BASE_RESOURCE)
    for _ in range(NUM_HOTSPOTS):
        cx = rng.random() * (W - 2) + 1
        cy = rng.random() * (H - 2) + 1
        sigma = 2.5 + rng.random() * 4.5
        peak = 0.55 + rng.random() * 0.45
        d2 = (gx - cx) ** 2 + (gy - cy) ** 2
        base = np.minimum(1.0, base + peak * np.exp(-d2 / (2 * sigma * sigma)))
    state.R_static = base
    state.R = base.copy()
    state.claim_owner.fill(NEUTRAL)
    state.claim_strength.fill(0.0)


def step_resource_field(state: EconomyState, cfg: EconomyConfig, field_sampler: Optional[FieldSampler], dt: float) -> None:
    R, Rs = state.R, state.R_static
    if cfg.resource_mode is ResourceMode.FIELD_DERIVED and field_sampler is not None:
        coh = np.zeros_like(R)
        scar = np.zeros_like(R)
        ten = np.zeros_like(R)
        for gy in range(state.height):
            for gx in range(state.width):
                sample = field_sampler.sample(*state.cell_center(gy, gx))
                coh[gy, gx] = sample.cohesion
                scar[gy, gx] = sample.scarcity
                ten[gy, gx] = sample.tension
        target = np.clip(Rs * 0.5 + 0.2 + coh * 0.35 - scar * 0.28 - ten * 0.12, 0.0, 1.0)
        R += (target - R) * dt * 0.4 + cfg.resource_regen * dt * (1.0 - R)
    else:
        R += cfg.resource_regen * dt * (Rs - R) * 2
    np.clip(R, 0.0, 1.0, out=R)


def harvest_and_metabolize(
    state: EconomyState,
    cfg: EconomyConfig,
    substrate: AgentSubstrate,
    field_sampler: Optional[FieldSampler],
    dt: float,
) -> None:
    n = substrate.count
    x, y, vx, vy, _ = substrate.view()
    energy = substrate.energy
    R = state.R
    for i in range(n):
        energy[i] -= cfg.metabolism * dt
        gy, gx = state.cell_of(x[i], y[i])
        level = R[gy, gx]
        if level > HARVEST_THRESHOLD:
            bonus = 1.0
            if field_sampler is not None:
                sample = field_sampler.sample(float(x[i]), float(y[i]))
                bonus += sample.cohesion * 0.2 - sample.tension * 0.2
            gain = cfg.resource_harvest * level * bonus * dt
            energy[i] += gain
            R[gy, gx] = max(0.0, R[gy, gx] - gain * HARVEST_DEPLETION)
        if energy[i] < FATIGUE_ENERGY:
            vx[i] *= FATIGUE_SPEED_DAMPEN
            vy[i] *= FATIGUE_SPEED_DAMPEN
        energy[i] = min(1.0, max(0.0, energy[i]))


def apply_ritual_costs(society: SocietyState, substrate: AgentSubstrate, dt: float, now: float) -> None:
    """Symbols cost energy: active ritual participants and totem devotees pay upkeep."""
    n = substrate.count
    if n == 0:
        return
    x, y, _, _, _ = substrate.view()
    energy = substrate.energy[:n]
    for ritual, totem in society.active_rituals(now):
        inside = (x - totem.x) ** 2 + (y - totem.y) ** 2 < totem.radius ** 2
        energy[inside] = np.maximum(0.0, energy[inside] - RITUAL_COST_PER_SEC * dt * ritual.intensity)
    for totem in society.totems:
        if totem.kind is TotemKind.ARCHIVE:
            continue
        inside = (x - totem.x) ** 2 + (y - totem.y) ** 2 < totem.radius ** 2
        energy[inside] = np.maximum(0.0, energy[inside] - TOTEM_TAX_PER_SEC * dt * totem.strength)


def step_claim_field(
    state: EconomyState,
    cfg: EconomyConfig,
    substrate: AgentSubstrate,
    culture: Optional[CultureState],
    dt: float,
) -> None:
    owner = state.claim_owner
    strength = state.claim_strength
    strength *= max(0.0, 1.0 - cfg.claim_decay * dt)

    n = substrate.count
    x, y, _, _, types = substrate.view()
    groups = culture.meme_id[:n] if culture is not None else types
    stamp = cfg.claim_gain * dt
    for i in range(n):
        cell = state.cell_of(x[i], y[i])
        group = int(groups[i])
        if owner[cell] < 0 or owner[cell] == group:
            owner[cell] = group
            strength[cell] = min(1.0, strength[cell] + stamp)
        else:
            strength[cell] = max(0.0, strength[cell] - stamp * 0.6)
            if strength[cell] < CLAIM_FLIP_FLOOR:
                owner[cell] = group
                strength[cell] = CLAIM_FLIP_FLOOR

    # row-major spread; a neutral cell taken earlier in the pass is no longer neutral
    spread = np.zeros_like(strength)
    rate = cfg.claim_diffusion * dt * 0.06
    H, W = state.height, state.width
    for gy in range(H):
        for gx in range(W):
            s = strength[gy, gx]
            if s < CLAIM_SPREAD_MIN:
                continue
            src = owner[gy, gx]
            amount = s * rate
            for ny, nx in ((gy - 1, gx), (gy + 1, gx), (gy, gx - 1), (gy, gx + 1)):
                if 0 <= ny < H and 0 <= nx < W and owner[ny, nx] < 0:
                    owner[ny, nx] = src
                    spread[ny, nx] += amount

    np.minimum(1.0, strength + spread, out=strength)
    weak = strength < CLAIM_CLEAR_BELOW
    owner[weak] = NEUTRAL
    strength[weak] = 0.0


def gini(values) -> float:
    """Sorted-sample Gini in [0, 1]; exactly 0 for uniform or degenerate samples."""
    arr = np.sort(np.asarray(values, dtype=float))
    n = arr.size
    if n < 2 or arr[0] == arr[-1]:
        return 0.0
    total = arr.sum()
    if total <= 0:
        return 0.0
    ranks = np.arange(1, n + 1)
    return clamp01(float(((2 * ranks - n - 1) * arr).sum() / (n * total)))


def compute_economy_metrics(
    state: EconomyState,
    cfg: EconomyConfig,
    substrate: AgentSubstrate,
    prev: EconomyMetrics,
) -> Tuple[EconomyMetrics, List[EconomyEvent]]:
    events: List[EconomyEvent] = []
    n = substrate.count
    if n == 0:
        return replace(prev), events

    step = max(1, n // METRIC_SAMPLE)
    samples = substrate.energy[:n:step]
    fatigue = int((samples < FATIGUE_ENERGY).sum())
    mean_energy = float(samples.mean()) if samples.size else 0.5
    g = gini(samples)

    scarcity = float((state.R < SCARCITY_LEVEL).mean())

    claimed = state.claim_owner[state.claim_owner >= 0].astype(int)
    dominant = NEUTRAL
    share = 0.0
    if claimed.size:
        counts = np.bincount(claimed)
        dominant = int(np.argmax(counts))
        share = float(counts[dominant] / claimed.size)

    famine = prev.famine_consecutive + 1 if mean_energy < FAMINE_ENERGY else 0

    if famine == FAMINE_TICKS:
        events.append(EconomyEvent("FAMINE", "☠", f"FAMINE: energy critically low ({mean_energy * 100:.0f}%)"))
    if g > prev.gini + GINI_SPIKE and g > GINI_SPIKE_FLOOR:
        events.append(EconomyEvent("INEQUALITY_SPIKE", "⚖", f"INEQUALITY SPIKE: Gini {g:.2f}"))
    if dominant != prev.dominant_group and dominant >= 0:
        events.append(EconomyEvent("TERRITORY_SHIFT", "⚑", f"TERRITORY SHIFT: group {dominant} now dominant"))
    for event in events:
        logger.info("economy: %s", event.message)

    metrics = EconomyMetrics(
        mean_energy=mean_energy,
        gini=g,
        scarcity_ratio=scarcity,
        dominant_group=dominant,
        territory_share=share,
        fatigue_count=fatigue,
        famine_consecutive=famine,
    )
    return metrics, events


def step_economy(
    state: EconomyState,
    cfg: EconomyConfig,
    substrate: AgentSubstrate,
    society: SocietyState,
    culture: Optional[CultureState],
    prev: EconomyMetrics,
    dt: float,
    now: float,
    field_sampler: Optional[FieldSampler] = None,
) -> Tuple[EconomyMetrics, List[EconomyEvent]]:
    """Full economy pass in order: field, harvest, upkeep, claims, metrics."""
    if not cfg.enabled:
        return prev, []
    step_resource_field(state, cfg, field_sampler, dt)
    harvest_and_metabolize(state, cfg, substrate, field_sampler, dt)
    apply_ritual_costs(society, substrate, dt, now)
    step_claim_field(state, cfg, substrate, culture, dt)
    return compute_economy_metrics(state, cfg, substrate, prev)
