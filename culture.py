"""Culture engine: meme contagion weighted by prestige, run once per macro-tick."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from field import FieldSampler
from institutions import clamp, clamp01
from substrate import AgentSubstrate

logger = logging.getLogger(__name__)

SIGMOID_K = 5.0
RESISTANCE_FACTOR = 0.65
WAVE_MIN_CONVERSIONS = 4
DOMINANCE_SHARE = 0.60
SCHISM_DOMINANT_RANGE = (0.35, 0.68)
SCHISM_SECOND_MIN = 0.28


@dataclass
class CultureConfig:
    enabled: bool = True
    meme_count: int = 6
    convert_radius: float = 0.17
    convert_rate: float = 0.25
    convert_cooldown_sec: float = 6.0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.meme_count = max(1, int(self.meme_count))
        self.convert_radius = clamp(self.convert_radius, 0.01, 2.0)
        self.convert_rate = clamp01(self.convert_rate)
        self.convert_cooldown_sec = max(0.0, float(self.convert_cooldown_sec))


class CultureState:
    """Parallel per-agent arrays; zero strength marks an agent not yet seeded."""

    def __init__(self, capacity: int = 1000):
        self.reset(capacity)

    def reset(self, capacity: int) -> None:
        capacity = max(1, int(capacity))
        self.meme_id = np.zeros(capacity, dtype=np.int16)
        self.meme_strength = np.zeros(capacity, dtype=float)
        self.prestige = np.zeros(capacity, dtype=float)
        self.last_convert_at = np.zeros(capacity, dtype=float)

    @property
    def capacity(self) -> int:
        return self.meme_id.size

    def ensure(self, capacity: int) -> None:
        if capacity <= self.capacity:
            return
        old = (self.meme_id, self.meme_strength, self.prestige, self.last_convert_at)
        n = self.capacity
        self.reset(capacity)
        for new_arr, old_arr in zip((self.meme_id, self.meme_strength, self.prestige, self.last_convert_at), old):
            new_arr[:n] = old_arr


@dataclass
class CultureEvent:
    kind: str
    meme_id: int
    count: int
    wx: float = 0.0
    wy: float = 0.0
    evidence: str = ""


@dataclass
class MemeStats:
    dominant_meme: int
    dominant_pct: float
    second_meme: int
    second_pct: float
    meme_counts: List[int] = field(default_factory=list)
    schism: bool = False


def seed_culture(culture: CultureState, substrate: AgentSubstrate, meme_count: int, only_unseeded: bool = False) -> int:
    """Derive memes from agent types; returns how many agents were seeded."""
    n = substrate.count
    culture.ensure(substrate.capacity)
    mask = np.ones(n, dtype=bool)
    if only_unseeded:
        mask = culture.meme_strength[:n] < 0.01
    seeded = int(mask.sum())
    if seeded:
        types = substrate.type[:n].astype(int)
        culture.meme_id[:n][mask] = types[mask] % meme_count
        culture.meme_strength[:n][mask] = 0.5
        culture.prestige[:n][mask] = 0.05
        if not only_unseeded:
            culture.last_convert_at[:n] = 0.0
    return seeded


def meme_stats(culture: CultureState, count: int, meme_count: int) -> MemeStats:
    meme_count = max(1, int(meme_count))
    counts = [0] * meme_count
    if count == 0:
        return MemeStats(0, 0.0, 1 % meme_count, 0.0, counts, False)
    for m in culture.meme_id[:count]:
        counts[int(m) % meme_count] += 1
    ranked = sorted(range(meme_count), key=lambda m: -counts[m])
    dominant = ranked[0]
    second = ranked[1] if meme_count > 1 else (dominant + 1) % meme_count
    dominant_pct = counts[dominant] / count
    second_pct = counts[second] / count if meme_count > 1 else 0.0
    lo, hi = SCHISM_DOMINANT_RANGE
    schism = lo <= dominant_pct <= hi and second_pct >= SCHISM_SECOND_MIN
    return MemeStats(dominant, dominant_pct, second, second_pct, counts, schism)


def conversion_probability(rate: float, best_score: float, own_prestige: float, sample=None) -> float:
    delta = best_score - own_prestige * RESISTANCE_FACTOR
    p = rate / (1.0 + math.exp(-delta * SIGMOID_K))
    if sample is not None:
        p = clamp01(p * (1.0 + sample.affinity * 0.5 - sample.stress * 0.5))
    return p


def step_culture(
    now: float,
    substrate: AgentSubstrate,
    culture: CultureState,
    cfg: CultureConfig,
    rng: np.random.Generator,
    field_sampler: Optional[FieldSampler] = None,
) -> List[CultureEvent]:
    events: List[CultureEvent] = []
    n = substrate.count
    if n == 0 or not cfg.enabled:
        return events
    seed_culture(culture, substrate, cfg.meme_count, only_unseeded=True)

    x, y, _, _, _ = substrate.view()
    memes = culture.meme_id
    strength = culture.meme_strength
    prestige = culture.prestige
    sample_size = max(10, min(800, int(n * 0.20)))
    step = max(1, n // sample_size)
    r2 = cfg.convert_radius ** 2

    conversions = 0
    sum_x = 0.0
    sum_y = 0.0
    for i in range(0, n, step):
        if now - culture.last_convert_at[i] < cfg.convert_cooldown_sec:
            continue
        own = memes[i]
        near = ((x - x[i]) ** 2 + (y - y[i]) ** 2 <= r2) & (memes[:n] != own)
        near[i] = False
        candidates = np.nonzero(near)[0]
        if candidates.size == 0:
            continue
        scores = prestige[candidates] * strength[candidates]
        best = int(candidates[int(np.argmax(scores))])
        best_score = float(prestige[best] * strength[best])

        sample = field_sampler.sample(float(x[i]), float(y[i])) if field_sampler is not None else None
        p = conversion_probability(cfg.convert_rate, best_score, float(prestige[i]), sample)
        if rng.random() < p:
            culture.last_convert_at[i] = now
            memes[i] = memes[best]
            strength[i] = strength[i] * 0.65 + 0.35
            prestige[best] = min(1.0, prestige[best] + 0.01)
            conversions += 1
            sum_x += x[i]
            sum_y += y[i]

    if conversions >= WAVE_MIN_CONVERSIONS:
        cx = sum_x / conversions
        cy = sum_y / conversions
        stats = meme_stats(culture, n, cfg.meme_count)
        events.append(
            CultureEvent(
                "CONVERSION_WAVE",
                stats.dominant_meme,
                conversions,
                cx,
                cy,
                f"{conversions} converts, meme #{stats.dominant_meme} -> {stats.dominant_pct * 100:.0f}%",
            )
        )
        if stats.dominant_pct >= DOMINANCE_SHARE:
            events.append(
                CultureEvent(
                    "CULT_DOMINANCE",
                    stats.dominant_meme,
                    int(round(stats.dominant_pct * n)),
                    cx,
                    cy,
                    f"meme #{stats.dominant_meme} dominates at {stats.dominant_pct * 100:.0f}%",
                )
            )
        if stats.schism:
            events.append(
                CultureEvent(
                    "SCHISM_WARNING",
                    stats.dominant_meme,
                    0,
                    evidence=(
                        f"factions #{stats.dominant_meme} {stats.dominant_pct * 100:.0f}% "
                        f"vs #{stats.second_meme} {stats.second_pct * 100:.0f}%"
                    ),
                )
            )
        logger.debug("culture: %d conversions at %.1fs", conversions, now)
    return events
