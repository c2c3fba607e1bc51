"""Chronicle: short narrated entries for symbolic events, capped and append-only."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

MAX_CHRONICLE = 80

TEMPLATES: Dict[str, Dict[str, str]] = {
    "TOTEM_FOUNDED": {
        "icon": "⊕",
        "message": 'TOTEM FOUNDED: {kind} "{name}"',
        "cause": "Placed by the observer",
        "consequence": "Local field bias active",
    },
    "TOTEM_EMERGED": {
        "icon": "✨",
        "message": 'TOTEM EMERGED: {kind} "{name}"',
        "cause": "Spontaneous crystallization from agent behavior",
        "consequence": "Self-organized field bias now active",
    },
    "TOTEM_REMOVED": {
        "icon": "✖",
        "message": 'TOTEM REMOVED: "{name}"',
        "cause": "Banished by the observer",
        "consequence": "Field influence dissolved",
    },
    "TABOO_DECLARED": {
        "icon": "⛔",
        "message": "TABOO DECLARED: {kind} zone",
        "cause": "Zone marked forbidden",
        "consequence": "Boundary enforced",
    },
    "TABOO_EMERGED": {
        "icon": "⚡",
        "message": "TABOO EMERGED: {kind} boundary",
        "cause": "Collective avoidance pattern detected",
        "consequence": "Self-organized restriction now enforced",
    },
    "TABOO_REMOVED": {
        "icon": "∅",
        "message": "TABOO LIFTED: zone dissolved",
        "cause": "Restriction removed",
        "consequence": "Area now open",
    },
    "RITUAL_STARTED": {
        "icon": "☉",
        "message": 'RITUAL STARTED: {kind} at "{totem_name}"',
        "cause": "Ritual bound to totem",
        "consequence": "Periodic gathering active",
    },
    "RITUAL_EMERGED": {
        "icon": "✴",
        "message": 'RITUAL EMERGED: {kind} at "{totem_name}"',
        "cause": "Recurring motion pattern detected",
        "consequence": "Self-organized ceremony now active",
    },
    "RITUAL_ENDED": {
        "icon": "∅",
        "message": "RITUAL ENDED at totem",
        "cause": "Ritual dissolved",
        "consequence": "Periodic effect ceased",
    },
    "TRANSGRESSION": {
        "icon": "⚠",
        "message": "TRANSGRESSION: {taboo_kind} taboo violated",
        "cause": "Agents crossed forbidden boundary ({violation})",
        "consequence": "Case opened for judgment",
    },
    "JUDGMENT": {
        "icon": "⚖",
        "message": "JUDGMENT: {resolution}",
        "cause": "Case {case_id} resolved",
        "consequence": "{resolution} applied to violators",
    },
}

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class ChronicleEntry:
    time: float
    icon: str
    message: str
    cause: str
    consequence: str
    kind: str = ""


def narrate_event(kind: str, params: Optional[Dict[str, object]] = None, time: float = 0.0) -> ChronicleEntry:
    tmpl = TEMPLATES[kind]
    params = params or {}

    def fill(text: str) -> str:
        return _PLACEHOLDER.sub(lambda m: str(params.get(m.group(1), "?")), text)

    return ChronicleEntry(
        time=float(time),
        icon=tmpl["icon"],
        message=fill(tmpl["message"]),
        cause=fill(tmpl["cause"]),
        consequence=fill(tmpl["consequence"]),
        kind=kind,
    )


TOTEM_NAMES = {
    "BOND": ["Hearth", "Nexus", "Anchor", "Haven", "Beacon", "Cradle", "Font", "Root"],
    "RIFT": ["Rift", "Schism", "Void", "Breach", "Divide", "Fracture", "Scar", "Edge"],
    "ORACLE": ["Oracle", "Whisper", "Flux", "Tremor", "Pulse", "Spark", "Echo", "Haze"],
    "ARCHIVE": ["Archive", "Memory", "Codex", "Record", "Ledger", "Stone", "Tablet", "Trace"],
}


class TotemNamer:
    def __init__(self):
        self.counter = 0

    def __call__(self, kind: str) -> str:
        names = TOTEM_NAMES.get(str(kind), TOTEM_NAMES["BOND"])
        name = names[self.counter % len(names)]
        self.counter += 1
        return f"{name}-{self.counter:02d}"


class Chronicle:
    """Oldest-first list of entries; the oldest are trimmed beyond ``max_entries``."""

    def __init__(self, max_entries: int = MAX_CHRONICLE):
        self.max_entries = max(1, int(max_entries))
        self.entries: List[ChronicleEntry] = []

    def append(self, entry: ChronicleEntry) -> ChronicleEntry:
        self.entries.append(entry)
        overflow = len(self.entries) - self.max_entries
        if overflow > 0:
            del self.entries[:overflow]
        return entry

    def record(self, time: float, icon: str, message: str, cause: str = "", consequence: str = "", kind: str = "") -> ChronicleEntry:
        return self.append(ChronicleEntry(float(time), icon, message, cause, consequence, kind))

    def latest(self, n: int = 10) -> List[ChronicleEntry]:
        return list(reversed(self.entries[-n:]))

    def last_of_kind(self, kind: str) -> Optional[ChronicleEntry]:
        for entry in reversed(self.entries):
            if entry.kind == kind:
                return entry
        return None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ChronicleEntry]:
        return iter(self.entries)
