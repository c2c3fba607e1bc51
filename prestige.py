"""Prestige engine: decaying reputation, ritual bonus, taboo penalty, leader emergence."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, List

import numpy as np

from culture import CultureState
from institutions import SocietyState, TabooKind
from substrate import AgentSubstrate

PRESTIGE_DECAY_RATE = 0.06
RITUAL_BONUS = 0.025
TABOO_PENALTY = 0.04
LEADER_THRESHOLD = 0.65
RITUAL_REACH = 1.3


@dataclass
class PrestigeEvent:
    kind: str
    agent: int
    prestige: float
    meme_id: int
    wx: float
    wy: float
    evidence: str = ""


def step_prestige(
    dt: float,
    substrate: AgentSubstrate,
    culture: CultureState,
    state: SocietyState,
    now: float,
) -> List[PrestigeEvent]:
    """Decay, reward ritual participants, penalise NO_ENTER trespassers; report at most one leader."""
    n = substrate.count
    if n == 0:
        return []
    culture.ensure(substrate.capacity)
    x, y, _, _, _ = substrate.view()
    prestige = culture.prestige[:n]
    prestige *= math.exp(-PRESTIGE_DECAY_RATE * dt)

    for _, totem in state.active_rituals(now):
        inside = (x - totem.x) ** 2 + (y - totem.y) ** 2 < (totem.radius * RITUAL_REACH) ** 2
        prestige[inside] = np.minimum(1.0, prestige[inside] + RITUAL_BONUS * dt)

    for taboo in state.taboos:
        if taboo.kind is not TabooKind.NO_ENTER:
            continue
        inside = (x - taboo.x) ** 2 + (y - taboo.y) ** 2 < taboo.radius ** 2
        prestige[inside] = np.maximum(0.0, prestige[inside] - TABOO_PENALTY * dt)

    top = int(np.argmax(prestige))
    top_value = float(prestige[top])
    if top_value <= LEADER_THRESHOLD - 0.01:
        return []
    meme = int(culture.meme_id[top])
    return [
        PrestigeEvent(
            "LEADER_EMERGES",
            top,
            top_value,
            meme,
            float(x[top]),
            float(y[top]),
            f"#{top} prestige {top_value:.2f}, meme #{meme}",
        )
    ]


def top_leaders(substrate: AgentSubstrate, culture: CultureState, top_n: int = 5) -> List[Dict[str, float]]:
    n = substrate.count
    prestige = culture.prestige[:n]
    idx = np.nonzero(prestige > 0.2)[0]
    ranked = sorted(idx.tolist(), key=lambda i: -prestige[i])[:top_n]
    return [
        {
            "idx": i,
            "prestige": float(prestige[i]),
            "meme_id": int(culture.meme_id[i]),
            "wx": float(substrate.x[i]),
            "wy": float(substrate.y[i]),
        }
        for i in ranked
    ]
