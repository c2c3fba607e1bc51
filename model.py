"""Sociogenesis model: emergent totems, taboos, rituals, memes and economy over a particle society (Mesa 3)."""

from __future__ import annotations

import logging
from dataclasses import asdict, replace
from typing import Dict, List, Optional

import numpy as np
from mesa import DataCollector, Model

from adaptation import Lens, apply_emergence_lens, apply_tribe_effects, default_matrix
from chronicle import narrate_event
from culture import CultureConfig, CultureState, meme_stats, seed_culture, step_culture
from detection import detect_emergent_institutions, detect_tribes, should_run_detection
from economy import EconomyConfig, EconomyMetrics, EconomyState, init_economy, step_economy
from field import FieldSampler
from forces import run_institution_tick, should_tick
from institutions import (
    CaseStatus,
    Ritual,
    SocietyConfig,
    SocietyState,
    Taboo,
    Totem,
    parse_kind,
)
from leaders import Leader, apply_leader_influence, detect_leaders
from prestige import step_prestige, top_leaders
from presets import Preset, apply_spawn_layout, install_institutions
from roles import Role, RoleState
from substrate import AgentSubstrate

logger = logging.getLogger(__name__)

LEADER_SUPPRESSION_SEC = 15.0

TOTEM_FIELDS = ("kind", "x", "y", "radius", "strength", "pinned", "name")
TABOO_FIELDS = ("kind", "x", "y", "radius", "intensity", "target_type")
RITUAL_FIELDS = ("kind", "totem_id", "period_sec", "duty_cycle", "intensity")

EVENT_ICONS = {
    "CONVERSION_WAVE": "≋",
    "CULT_DOMINANCE": "♛",
    "SCHISM_WARNING": "⚔",
    "LEADER_EMERGES": "★",
}


class SociogenesisModel(Model):
    def __init__(
        self,
        seed: int | None = None,
        agent_count: int = 400,
        types_count: int = 4,
        capacity: int | None = None,
        tick_dt: float = 0.5,
        macro_interval_sec: float = 1.0,
        spawn_layout: str = "random",
        society_config: SocietyConfig | None = None,
        culture_config: CultureConfig | None = None,
        economy_config: EconomyConfig | None = None,
        field_sampler: FieldSampler | None = None,
        lens: str = "off",
    ):
        super().__init__(seed=seed)
        self.rng = np.random.default_rng(seed)
        self.seed_value = seed
        self.tick_dt = max(0.01, float(tick_dt))
        self.macro_interval_sec = max(self.tick_dt, float(macro_interval_sec))
        self.types_count = max(1, int(types_count))
        self.lens = parse_kind(Lens, lens)
        self.field_sampler = field_sampler

        agent_count = max(0, int(agent_count))
        self.substrate = AgentSubstrate(capacity=max(agent_count, capacity or agent_count, 1))
        self.substrate.spawn_random(self.rng, agent_count, self.types_count)
        apply_spawn_layout(self.substrate, spawn_layout, self.types_count, self.rng)

        self.state = SocietyState(config=society_config or SocietyConfig())
        self.culture_config = culture_config or CultureConfig()
        self.culture = CultureState(self.substrate.capacity)
        seed_culture(self.culture, self.substrate, self.culture_config.meme_count)
        self.economy_config = economy_config or EconomyConfig()
        self.economy = EconomyState()
        init_economy(self.economy, self.rng)
        self.economy_metrics = EconomyMetrics()
        self.roles = RoleState(self.substrate.capacity)
        self.leaders: List[Leader] = []
        self.interaction_matrix = default_matrix(self.types_count, self.rng)

        self.elapsed = 0.0
        self._last_detection = 0.0
        self._last_tribes = 0.0
        self._last_leader_scan = 0.0
        self._last_macro = 0.0
        self._last_economy = 0.0
        self._last_leader_entry: float | None = None
        self.event_log: List[tuple] = []
        self.last_metrics: Dict[str, float] = {}

        self.datacollector = DataCollector(
            model_reporters={
                "time": lambda m: m.elapsed,
                "totems": lambda m: m.last_metrics.get("totems", 0),
                "taboos": lambda m: m.last_metrics.get("taboos", 0),
                "rituals": lambda m: m.last_metrics.get("rituals", 0),
                "tribes": lambda m: m.last_metrics.get("tribes", 0),
                "open_cases": lambda m: m.last_metrics.get("open_cases", 0),
                "resolved_cases": lambda m: m.last_metrics.get("resolved_cases", 0),
                "dominant_meme": lambda m: m.last_metrics.get("dominant_meme", 0),
                "dominant_pct": lambda m: m.last_metrics.get("dominant_pct", 0.0),
                "schism": lambda m: m.last_metrics.get("schism", False),
                "mean_prestige": lambda m: m.last_metrics.get("mean_prestige", 0.0),
                "leaders": lambda m: m.last_metrics.get("leaders", 0),
                "enforcers": lambda m: m.last_metrics.get("enforcers", 0),
                "vigilantes": lambda m: m.last_metrics.get("vigilantes", 0),
                "resisters": lambda m: m.last_metrics.get("resisters", 0),
                "mean_energy": lambda m: m.last_metrics.get("mean_energy", 0.0),
                "gini": lambda m: m.last_metrics.get("gini", 0.0),
                "inequality_alert": lambda m: m.last_metrics.get("inequality_alert", False),
                "scarcity_ratio": lambda m: m.last_metrics.get("scarcity_ratio", 0.0),
                "dominant_group": lambda m: m.last_metrics.get("dominant_group", -1),
                "territory_share": lambda m: m.last_metrics.get("territory_share", 0.0),
                "fatigue_count": lambda m: m.last_metrics.get("fatigue_count", 0),
            }
        )
        self._update_metrics()
        self.datacollector.collect(self)

    # ------------------------------------------------------------------ ticks

    def step(self):
        self.elapsed += self.tick_dt
        now = self.elapsed
        cfg = self.state.config

        if cfg.enabled and cfg.auto_emergence and should_run_detection(self._last_detection, now, cfg.detection_cadence_sec):
            self._last_detection = now
            detect_emergent_institutions(self.state, self.substrate, now)

        if should_tick(self.state, now):
            run_institution_tick(self.state, self.substrate, self.roles, now, self.rng)

        if now - self._last_macro >= self.macro_interval_sec:
            macro_dt = now - self._last_macro
            self._last_macro = now
            self._macro_tick(now, macro_dt)

        self.substrate.integrate(self.tick_dt)

    def _macro_tick(self, now: float, dt: float) -> None:
        cfg = self.state.config
        for event in step_culture(now, self.substrate, self.culture, self.culture_config, self.rng, self.field_sampler):
            self._record(now, event.kind, event.evidence)

        for event in step_prestige(dt, self.substrate, self.culture, self.state, now):
            if self._last_leader_entry is not None and now - self._last_leader_entry < LEADER_SUPPRESSION_SEC:
                continue
            self._last_leader_entry = now
            self._record(now, event.kind, event.evidence)

        if now - self._last_tribes >= cfg.tribe_interval_sec:
            self._last_tribes = now
            detect_tribes(self.state, self.substrate, now)
        apply_tribe_effects(self.interaction_matrix, self.state.tribes)
        apply_emergence_lens(self.interaction_matrix, self.lens)

        if now - self._last_leader_scan >= cfg.leader_interval_sec:
            self._last_leader_scan = now
            self.leaders = detect_leaders(self.substrate, now)
        apply_leader_influence(self.substrate, self.leaders, cfg.gain)

        if now - self._last_economy >= self.economy_config.interval_sec:
            econ_dt = now - self._last_economy
            self._last_economy = now
            self.economy_metrics, events = step_economy(
                self.economy,
                self.economy_config,
                self.substrate,
                self.state,
                self.culture,
                self.economy_metrics,
                econ_dt,
                now,
                self.field_sampler,
            )
            for event in events:
                self.state.chronicle.record(now, event.icon, event.message, kind=event.kind)
                self.log_event(event.kind, event.message)

        self._update_metrics()
        self.datacollector.collect(self)

    def advance(self, seconds: float) -> int:
        """Step until ``seconds`` of simulated time have passed; returns the step count."""
        steps = max(0, int(round(float(seconds) / self.tick_dt)))
        for _ in range(steps):
            self.step()
        return steps

    def _record(self, now: float, kind: str, message: str) -> None:
        self.state.chronicle.record(now, EVENT_ICONS.get(kind, "•"), f"{kind.replace('_', ' ')}: {message}", kind=kind)
        self.log_event(kind, message)

    def log_event(self, tag: str, payload: object):
        self.event_log.append((self.elapsed, tag, payload))
        if len(self.event_log) > 500:
            del self.event_log[:-500]

    def _update_metrics(self) -> None:
        n = self.substrate.count
        stats = meme_stats(self.culture, n, self.culture_config.meme_count)
        roles = self.roles.counts(n)
        econ = self.economy_metrics
        self.last_metrics = {
            "totems": len(self.state.totems),
            "taboos": len(self.state.taboos),
            "rituals": len(self.state.rituals),
            "tribes": len(self.state.tribes),
            "open_cases": sum(1 for c in self.state.cases if c.status is CaseStatus.OPEN),
            "resolved_cases": sum(1 for c in self.state.cases if c.status is CaseStatus.RESOLVED),
            "dominant_meme": stats.dominant_meme,
            "dominant_pct": stats.dominant_pct,
            "schism": stats.schism,
            "mean_prestige": float(self.culture.prestige[:n].mean()) if n else 0.0,
            "leaders": len(self.leaders),
            "enforcers": roles[Role.ENFORCER.name],
            "vigilantes": roles[Role.VIGILANTE.name],
            "resisters": roles[Role.RESISTER.name],
            "mean_energy": econ.mean_energy,
            "gini": econ.gini,
            "inequality_alert": econ.gini >= self.economy_config.gini_alert,
            "scarcity_ratio": econ.scarcity_ratio,
            "dominant_group": econ.dominant_group,
            "territory_share": econ.territory_share,
            "fatigue_count": econ.fatigue_count,
        }

    # ------------------------------------------------------------- mutation

    def place_totem(self, kind, x: float, y: float, radius: float = 0.15, strength: float = 0.8, name: str | None = None, pinned: bool = True) -> Totem:
        totem = Totem(id=self.state.gen_id("totem"), kind=kind, x=x, y=y, radius=radius, strength=strength, pinned=pinned, born_at=self.elapsed)
        totem.name = name or self.state.namer(totem.kind.value)
        self.state.totems.append(totem)
        self.state.chronicle.append(narrate_event("TOTEM_FOUNDED", {"kind": totem.kind.value, "name": totem.name}, self.elapsed))
        return totem

    def remove_totem(self, totem_id: str) -> bool:
        totem = self.state.find_totem(totem_id)
        if totem is None:
            return False
        self.state.totems.remove(totem)
        self.state.oracles.pop(totem_id, None)
        self.state.chronicle.append(narrate_event("TOTEM_REMOVED", {"name": totem.name}, self.elapsed))
        return True

    def update_totem(self, totem_id: str, **changes) -> Optional[Totem]:
        return self._update(self.state.find_totem(totem_id), TOTEM_FIELDS, changes)

    def place_taboo(self, kind, x: float, y: float, radius: float = 0.1, intensity: float = 0.7, target_type: int | None = None) -> Taboo:
        taboo = Taboo(id=self.state.gen_id("taboo"), kind=kind, x=x, y=y, radius=radius, intensity=intensity, target_type=target_type, born_at=self.elapsed)
        self.state.taboos.append(taboo)
        self.state.chronicle.append(narrate_event("TABOO_DECLARED", {"kind": taboo.kind.value}, self.elapsed))
        return taboo

    def remove_taboo(self, taboo_id: str) -> bool:
        taboo = self.state.find_taboo(taboo_id)
        if taboo is None:
            return False
        self.state.taboos.remove(taboo)
        self.state.cases = [c for c in self.state.cases if c.taboo_id != taboo_id]
        self.state.chronicle.append(narrate_event("TABOO_REMOVED", {}, self.elapsed))
        return True

    def update_taboo(self, taboo_id: str, **changes) -> Optional[Taboo]:
        return self._update(self.state.find_taboo(taboo_id), TABOO_FIELDS, changes)

    def place_ritual(self, kind, totem_id: str, period_sec: float = 8.0, duty_cycle: float = 0.4, intensity: float = 0.7) -> Optional[Ritual]:
        totem = self.state.find_totem(totem_id)
        if totem is None:
            return None
        ritual = Ritual(
            id=self.state.gen_id("ritual"),
            kind=kind,
            totem_id=totem_id,
            period_sec=period_sec,
            duty_cycle=duty_cycle,
            intensity=intensity,
            born_at=self.elapsed,
        )
        self.state.rituals.append(ritual)
        self.state.chronicle.append(narrate_event("RITUAL_STARTED", {"kind": ritual.kind.value, "totem_name": totem.name}, self.elapsed))
        return ritual

    def remove_ritual(self, ritual_id: str) -> bool:
        ritual = self.state.find_ritual(ritual_id)
        if ritual is None:
            return False
        self.state.rituals.remove(ritual)
        self.state.chronicle.append(narrate_event("RITUAL_ENDED", {}, self.elapsed))
        return True

    def update_ritual(self, ritual_id: str, **changes) -> Optional[Ritual]:
        return self._update(self.state.find_ritual(ritual_id), RITUAL_FIELDS, changes)

    @staticmethod
    def _update(item, allowed, changes):
        if item is None:
            return None
        for key in changes:
            if key not in allowed:
                raise ValueError(f"cannot update field {key!r}")
        checked = replace(item, **changes)
        for key in changes:
            setattr(item, key, getattr(checked, key))
        return item

    # -------------------------------------------------------- configuration

    def configure(self, **changes) -> SocietyConfig:
        self.state.config = replace(self.state.config, **changes)
        return self.state.config

    def configure_culture(self, **changes) -> CultureConfig:
        self.culture_config = replace(self.culture_config, **changes)
        return self.culture_config

    def configure_economy(self, **changes) -> EconomyConfig:
        was_enabled = self.economy_config.enabled
        self.economy_config = replace(self.economy_config, **changes)
        if self.economy_config.enabled and not was_enabled:
            init_economy(self.economy, self.rng)
            self.economy_metrics = EconomyMetrics()
            self._last_economy = self.elapsed
        return self.economy_config

    def set_lens(self, lens) -> Lens:
        self.lens = parse_kind(Lens, lens)
        return self.lens

    def load_preset(self, preset) -> Preset:
        """Bulk-replace institutions and agent layout; resets culture, roles, leaders and economy."""
        if isinstance(preset, dict):
            preset = Preset.from_dict(preset)
        if preset.config:
            self.configure(**preset.config)
        if preset.culture:
            self.configure_culture(**preset.culture)
        if preset.economy:
            self.configure_economy(**preset.economy)

        self.types_count = preset.types_count
        self.substrate.spawn_random(self.rng, preset.agent_count, preset.types_count)
        apply_spawn_layout(self.substrate, preset.layout, preset.types_count, self.rng)
        install_institutions(self.state, preset)

        capacity = self.substrate.capacity
        self.culture.reset(capacity)
        seed_culture(self.culture, self.substrate, self.culture_config.meme_count)
        self.roles.resize(capacity)
        self.leaders = []
        init_economy(self.economy, self.rng)
        self.economy_metrics = EconomyMetrics()
        if preset.matrix is not None:
            self.interaction_matrix = np.clip(np.array(preset.matrix, dtype=float), -1.5, 1.5)
        else:
            self.interaction_matrix = default_matrix(self.types_count, self.rng)

        now = self.elapsed
        self._last_detection = self._last_tribes = self._last_leader_scan = now
        self._last_macro = self._last_economy = now
        self.state.last_tick_time = now
        self.state.chronicle.record(now, "☰", f"PRESET LOADED: {preset.name or preset.id}", preset.description, kind="PRESET")
        logger.info("preset %s loaded: %d agents, %d totems", preset.id, preset.agent_count, len(self.state.totems))
        self._update_metrics()
        return preset

    # --------------------------------------------------------------- queries

    def meme_stats(self):
        return meme_stats(self.culture, self.substrate.count, self.culture_config.meme_count)

    def top_leaders(self, top_n: int = 5):
        return top_leaders(self.substrate, self.culture, top_n)

    def snapshot(self) -> Dict[str, object]:
        """Read-only copies of institutions, cases, chronicle and headline metrics."""
        return {
            "time": self.elapsed,
            "totems": [asdict(t) for t in self.state.totems],
            "taboos": [asdict(t) for t in self.state.taboos],
            "rituals": [asdict(r) for r in self.state.rituals],
            "tribes": [asdict(t) for t in self.state.tribes],
            "cases": [asdict(c) for c in self.state.cases],
            "chronicle": [asdict(e) for e in self.state.chronicle],
            "leaders": [asdict(lead) for lead in self.leaders],
            "economy": asdict(self.economy_metrics),
            "metrics": dict(self.last_metrics),
        }
