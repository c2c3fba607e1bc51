"""Symbolic institutions (totems, taboos, rituals, tribes, cases) and the shared society context."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

import numpy as np

from chronicle import Chronicle, TotemNamer

EPS = 1e-6
MIN_RADIUS = 0.01
MIN_PERIOD_SEC = 0.5
MIN_DUTY_CYCLE = 0.01


def clamp01(value: float) -> float:
    return float(np.clip(value, 0.0, 1.0))


def clamp(value: float, lo: float, hi: float) -> float:
    return float(np.clip(value, lo, hi))


class TotemKind(str, Enum):
    BOND = "BOND"
    RIFT = "RIFT"
    ORACLE = "ORACLE"
    ARCHIVE = "ARCHIVE"


class TabooKind(str, Enum):
    NO_ENTER = "NO_ENTER"
    NO_MIX = "NO_MIX"


class RitualKind(str, Enum):
    GATHER = "GATHER"
    PROCESSION = "PROCESSION"
    OFFERING = "OFFERING"


class JusticeMode(str, Enum):
    RETRIBUTIVE = "RETRIBUTIVE"
    RESTORATIVE = "RESTORATIVE"
    AUTO = "AUTO"


class CaseStatus(str, Enum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class Resolution(str, Enum):
    PUNISH = "PUNISH"
    RESTORE = "RESTORE"


def parse_kind(enum_cls, value):
    """Accept an enum member or its (case-insensitive) name."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        names = ", ".join(m.value for m in enum_cls)
        raise ValueError(f"unknown {enum_cls.__name__} {value!r} (expected one of: {names})") from None


@dataclass
class Totem:
    id: str
    kind: TotemKind
    x: float
    y: float
    radius: float = 0.15
    strength: float = 0.8
    pinned: bool = False
    born_at: float = 0.0
    name: str = ""
    emergent: bool = False
    affected_count: int = 0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.kind = parse_kind(TotemKind, self.kind)
        self.radius = max(MIN_RADIUS, float(self.radius))
        self.strength = max(0.0, float(self.strength))

    @property
    def pos(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Taboo:
    id: str
    kind: TabooKind
    x: float
    y: float
    radius: float = 0.1
    intensity: float = 0.7
    target_type: Optional[int] = None
    born_at: float = 0.0
    emergent: bool = False
    affected_count: int = 0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.kind = parse_kind(TabooKind, self.kind)
        self.radius = max(MIN_RADIUS, float(self.radius))
        self.intensity = clamp01(self.intensity)
        if self.target_type is not None:
            self.target_type = int(self.target_type)
        elif self.kind is TabooKind.NO_MIX:
            raise ValueError(f"NO_MIX taboo {self.id!r} needs a target_type")

    @property
    def pos(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class Ritual:
    id: str
    kind: RitualKind
    totem_id: str
    period_sec: float = 8.0
    duty_cycle: float = 0.4
    intensity: float = 0.7
    born_at: float = 0.0
    emergent: bool = False
    affected_count: int = 0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.kind = parse_kind(RitualKind, self.kind)
        self.period_sec = max(MIN_PERIOD_SEC, float(self.period_sec))
        self.duty_cycle = clamp(self.duty_cycle, MIN_DUTY_CYCLE, 1.0)
        self.intensity = clamp01(self.intensity)

    def is_active(self, now: float) -> bool:
        """True while ``now`` falls inside the duty-cycle window of the current period."""
        phase = ((now - self.born_at) % self.period_sec) / self.period_sec
        return phase < self.duty_cycle


@dataclass
class Tribe:
    id: str
    type_id: int
    totems: List[str] = field(default_factory=list)
    cohesion_bias: float = 0.0
    tension_bias: float = 0.0
    born_at: float = 0.0

    @staticmethod
    def ethos_for(type_id: int, elapsed: float) -> Tuple[float, float]:
        seed = type_id * 1000 + math.floor(elapsed * 0.1)
        return math.sin(seed * 0.0073) * 0.2, math.cos(seed * 0.0057) * 0.2


@dataclass
class SocioCase:
    id: str
    taboo_id: str
    offender: Optional[int] = None
    status: CaseStatus = CaseStatus.OPEN
    resolution: Optional[Resolution] = None
    created_at: float = 0.0
    resolved_at: Optional[float] = None


@dataclass
class OracleState:
    angle: float
    phase: float = 0.0

    @classmethod
    def seeded(cls, totem_id: str) -> "OracleState":
        seed = sum(ord(c) for c in totem_id)
        return cls(angle=math.radians(seed % 360))

    def advance(self) -> Tuple[float, float]:
        self.phase += 0.03
        self.angle += math.sin(self.phase) * 0.1
        return math.cos(self.angle), math.sin(self.angle)


@dataclass
class SocietyConfig:
    enabled: bool = True
    cadence_sec: float = 5.0
    influence_gain: float = 0.35
    justice_mode: JusticeMode = JusticeMode.AUTO
    max_totems: int = 8
    max_taboos: int = 6
    max_rituals: int = 8
    auto_emergence: bool = True
    sim_speed: float = 0.5
    enable_roles: bool = True
    detection_cadence_sec: float = 20.0
    tribe_interval_sec: float = 10.0
    leader_interval_sec: float = 8.0

    def __post_init__(self):
        self.sanitize()

    def sanitize(self) -> None:
        self.justice_mode = parse_kind(JusticeMode, self.justice_mode)
        self.cadence_sec = clamp(self.cadence_sec, 2.0, 10.0)
        self.influence_gain = clamp(self.influence_gain, 0.0, 1.0)
        self.sim_speed = clamp(self.sim_speed, 0.25, 2.0)
        self.max_totems = max(0, int(self.max_totems))
        self.max_taboos = max(0, int(self.max_taboos))
        self.max_rituals = max(0, int(self.max_rituals))
        self.detection_cadence_sec = max(0.0, float(self.detection_cadence_sec))
        self.tribe_interval_sec = max(0.0, float(self.tribe_interval_sec))
        self.leader_interval_sec = max(0.0, float(self.leader_interval_sec))

    @property
    def gain(self) -> float:
        return self.influence_gain * self.sim_speed

    @property
    def tick_interval(self) -> float:
        return self.cadence_sec / self.sim_speed


@dataclass
class SocietyState:
    """Explicit context passed to every subsystem; one writer per tick phase."""

    config: SocietyConfig = field(default_factory=SocietyConfig)
    totems: List[Totem] = field(default_factory=list)
    taboos: List[Taboo] = field(default_factory=list)
    rituals: List[Ritual] = field(default_factory=list)
    tribes: List[Tribe] = field(default_factory=list)
    cases: List[SocioCase] = field(default_factory=list)
    chronicle: Chronicle = field(default_factory=Chronicle)
    namer: TotemNamer = field(default_factory=TotemNamer)
    oracles: Dict[str, OracleState] = field(default_factory=dict)
    next_id: int = 1
    last_tick_time: float = 0.0
    # emergent totem spawn times, pruned to the rate-limit window
    emergent_spawns: List[float] = field(default_factory=list)

    def gen_id(self, prefix: str) -> str:
        new_id = f"{prefix}-{self.next_id:03d}"
        self.next_id += 1
        return new_id

    def find_totem(self, totem_id: str) -> Optional[Totem]:
        for t in self.totems:
            if t.id == totem_id:
                return t
        return None

    def find_taboo(self, taboo_id: str) -> Optional[Taboo]:
        for t in self.taboos:
            if t.id == taboo_id:
                return t
        return None

    def find_ritual(self, ritual_id: str) -> Optional[Ritual]:
        for r in self.rituals:
            if r.id == ritual_id:
                return r
        return None

    def oracle_for(self, totem_id: str) -> OracleState:
        oracle = self.oracles.get(totem_id)
        if oracle is None:
            oracle = self.oracles[totem_id] = OracleState.seeded(totem_id)
        return oracle

    def active_rituals(self, now: float) -> List[Tuple[Ritual, Totem]]:
        """Rituals inside their duty window paired with their totem; orphans are skipped."""
        active = []
        for ritual in self.rituals:
            totem = self.find_totem(ritual.totem_id)
            if totem is None or not ritual.is_active(now):
                continue
            active.append((ritual, totem))
        return active

    def open_case_for(self, taboo_id: str) -> Optional[SocioCase]:
        for c in self.cases:
            if c.taboo_id == taboo_id and c.status is CaseStatus.OPEN:
                return c
        return None

    def last_resolved_for(self, taboo_id: str) -> Optional[SocioCase]:
        resolved = [c for c in self.cases if c.taboo_id == taboo_id and c.status is CaseStatus.RESOLVED]
        if not resolved:
            return None
        return max(resolved, key=lambda c: c.resolved_at or 0.0)

    def reset_affected_counts(self) -> None:
        for group in (self.totems, self.taboos, self.rituals):
            for item in group:
                item.affected_count = 0
