"""Preset loading: agent layout plus bulk-replaced institution lists.

Preset content is external data (dicts or a JSON file); this module only
validates it and applies it.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from institutions import Ritual, SocietyState, Taboo, Totem, TotemKind, parse_kind
from substrate import AgentSubstrate


class SpawnLayout(str, Enum):
    RANDOM = "RANDOM"
    CLUSTERED = "CLUSTERED"
    RING = "RING"
    GRID = "GRID"
    POLES = "POLES"


@dataclass
class Preset:
    id: str
    name: str = ""
    description: str = ""
    types_count: int = 4
    agent_count: int = 400
    layout: SpawnLayout = SpawnLayout.RANDOM
    matrix: Optional[List[List[float]]] = None
    totems: List[Dict[str, object]] = field(default_factory=list)
    taboos: List[Dict[str, object]] = field(default_factory=list)
    rituals: List[Dict[str, object]] = field(default_factory=list)
    config: Dict[str, object] = field(default_factory=dict)
    culture: Dict[str, object] = field(default_factory=dict)
    economy: Dict[str, object] = field(default_factory=dict)

    def __post_init__(self):
        self.types_count = max(1, int(self.types_count))
        self.agent_count = max(0, int(self.agent_count))
        self.layout = parse_kind(SpawnLayout, self.layout)

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> "Preset":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


def load_presets(path: str) -> Dict[str, Preset]:
    """Read ``{"presets": [...]}`` from a JSON file; a missing file yields no presets."""
    if not os.path.exists(path):
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    presets = {}
    for raw in data.get("presets", []):
        preset = Preset.from_dict(raw)
        presets[preset.id] = preset
    return presets


def apply_spawn_layout(substrate: AgentSubstrate, layout, types_count: int, rng: np.random.Generator) -> None:
    layout = parse_kind(SpawnLayout, layout)
    n = substrate.count
    if n == 0 or layout is SpawnLayout.RANDOM:
        return
    types_count = max(1, int(types_count))
    x, y, _, _, types = substrate.view()
    t = types.astype(int) % types_count

    if layout is SpawnLayout.CLUSTERED:
        step = 2 * math.pi / types_count
        cx = np.cos(step * t) * 0.5
        cy = np.sin(step * t) * 0.5
        r = 0.12 + rng.random(n) * 0.15
        a = rng.random(n) * 2 * math.pi
        x[:] = np.clip(cx + np.cos(a) * r, -0.95, 0.95)
        y[:] = np.clip(cy + np.sin(a) * r, -0.95, 0.95)
    elif layout is SpawnLayout.RING:
        sector = t / types_count * 2 * math.pi
        spread = 2 * math.pi / types_count * 0.8
        angle = sector + (rng.random(n) - 0.5) * spread
        r = 0.45 + (rng.random(n) - 0.5) * 0.2
        x[:] = np.cos(angle) * r
        y[:] = np.sin(angle) * r
    elif layout is SpawnLayout.GRID:
        side = math.ceil(math.sqrt(types_count))
        cell = 1.8 / side
        base_x = -0.9 + (t % side) * cell
        base_y = -0.9 + (t // side) * cell
        x[:] = base_x + rng.random(n) * cell * 0.8 + cell * 0.1
        y[:] = base_y + rng.random(n) * cell * 0.8 + cell * 0.1
    elif layout is SpawnLayout.POLES:
        upper = t < types_count / 2
        cx = np.where(upper, -0.45, 0.45)
        cy = np.where(upper, -0.3, 0.3)
        r = 0.15 + rng.random(n) * 0.2
        a = rng.random(n) * 2 * math.pi
        x[:] = np.clip(cx + np.cos(a) * r, -0.95, 0.95)
        y[:] = np.clip(cy + np.sin(a) * r, -0.95, 0.95)


def install_institutions(state: SocietyState, preset: Preset) -> None:
    """Replace the institution lists with the preset's; rituals name their totem."""
    state.totems = []
    state.taboos = []
    state.rituals = []
    state.tribes = []
    state.cases = []
    state.oracles.clear()
    for entry in preset.totems:
        entry = dict(entry)
        kind = parse_kind(TotemKind, entry.pop("kind"))
        name = entry.pop("name", None) or state.namer(kind.value)
        state.totems.append(Totem(id=state.gen_id("totem"), kind=kind, name=name, pinned=entry.pop("pinned", True), **entry))
    for entry in preset.taboos:
        entry = dict(entry)
        state.taboos.append(Taboo(id=state.gen_id("taboo"), kind=entry.pop("kind"), **entry))
    by_name = {t.name: t.id for t in state.totems}
    for entry in preset.rituals:
        entry = dict(entry)
        ref = entry.pop("totem")
        totem_id = by_name.get(ref)
        if totem_id is None and isinstance(ref, int) and 0 <= ref < len(state.totems):
            totem_id = state.totems[ref].id
        if totem_id is None:
            raise ValueError(f"preset {preset.id!r}: ritual references unknown totem {ref!r}")
        state.rituals.append(Ritual(id=state.gen_id("ritual"), kind=entry.pop("kind"), totem_id=totem_id, **entry))
