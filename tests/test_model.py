"""Model facade: mutation API, configuration, presets, snapshots."""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import json

import numpy as np
import pytest

from adaptation import Lens, apply_emergence_lens, default_matrix
from chronicle import Chronicle, narrate_event
from institutions import JusticeMode, SocietyConfig, SocioCase, TabooKind, TotemKind
from model import SociogenesisModel
from presets import load_presets


def _model(**kwargs):
    kwargs.setdefault("seed", 3)
    kwargs.setdefault("agent_count", 80)
    return SociogenesisModel(**kwargs)


def test_config_values_are_clamped():
    cfg = SocietyConfig(cadence_sec=100, influence_gain=5.0, sim_speed=0.01, justice_mode="retributive")
    assert cfg.cadence_sec == 10.0
    assert cfg.influence_gain == 1.0
    assert cfg.sim_speed == 0.25
    assert cfg.justice_mode is JusticeMode.RETRIBUTIVE
    assert SocietyConfig(cadence_sec=0.1).cadence_sec == 2.0


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        SocietyConfig(justice_mode="mercy")
    with pytest.raises(ValueError):
        _model().place_totem("PYRAMID", 0.0, 0.0)


def test_configure_returns_sanitized_copy():
    model = _model()
    cfg = model.configure(sim_speed=9.0, enable_roles=False)
    assert cfg is model.state.config
    assert cfg.sim_speed == 2.0 and not cfg.enable_roles


def test_place_update_remove_totem():
    model = _model()
    totem = model.place_totem("bond", 0.2, -0.1, radius=0.0, name="Hearth")
    assert totem.kind is TotemKind.BOND and totem.pinned and not totem.emergent
    assert totem.radius == 0.01
    assert model.state.chronicle.last_of_kind("TOTEM_FOUNDED").message == 'TOTEM FOUNDED: BOND "Hearth"'

    updated = model.update_totem(totem.id, strength=-1.0, kind="rift")
    assert updated is totem and totem.strength == 0.0 and totem.kind is TotemKind.RIFT
    with pytest.raises(ValueError):
        model.update_totem(totem.id, id="other")

    assert model.remove_totem(totem.id)
    assert not model.remove_totem(totem.id)


def test_mutations_on_unknown_ids_are_no_ops():
    model = _model()
    assert model.update_totem("totem-999", x=0.0) is None
    assert model.update_taboo("taboo-999", radius=0.2) is None
    assert model.update_ritual("ritual-999", period_sec=3.0) is None
    assert not model.remove_taboo("taboo-999")
    assert not model.remove_ritual("ritual-999")
    assert model.place_ritual("GATHER", "totem-999") is None


def test_taboo_update_clamps_intensity():
    model = _model()
    taboo = model.place_taboo("NO_MIX", 0.0, 0.0, target_type=2)
    model.update_taboo(taboo.id, intensity=5.0)
    assert taboo.intensity == 1.0
    assert taboo.target_type == 2


def test_no_mix_taboo_requires_target_type():
    model = _model()
    with pytest.raises(ValueError):
        model.place_taboo("NO_MIX", 0.0, 0.0)
    assert model.state.taboos == []

    taboo = model.place_taboo("NO_MIX", 0.0, 0.0, target_type=1)
    with pytest.raises(ValueError):
        model.update_taboo(taboo.id, target_type=None, radius=0.3)
    assert taboo.target_type == 1 and taboo.radius == 0.1
    no_enter = model.place_taboo("NO_ENTER", 0.5, 0.5)
    with pytest.raises(ValueError):
        model.update_taboo(no_enter.id, kind="NO_MIX")
    assert no_enter.kind is TabooKind.NO_ENTER


def test_removing_taboo_drops_its_cases():
    model = _model()
    a = model.place_taboo("NO_ENTER", 0.5, 0.5)
    b = model.place_taboo("NO_ENTER", -0.5, -0.5)
    model.state.cases += [SocioCase(id="c1", taboo_id=a.id), SocioCase(id="c2", taboo_id=b.id)]
    assert model.remove_taboo(a.id)
    assert [c.id for c in model.state.cases] == ["c2"]


def test_removing_totem_orphans_its_rituals():
    model = _model()
    totem = model.place_totem("BOND", 0.0, 0.0)
    ritual = model.place_ritual("PROCESSION", totem.id)
    assert ritual.totem_id == totem.id
    model.remove_totem(totem.id)
    assert model.state.find_ritual(ritual.id) is ritual
    model.advance(12.0)
    assert ritual.affected_count == 0


def test_advance_runs_whole_ticks():
    model = _model(tick_dt=0.25)
    assert model.advance(2.0) == 8
    assert model.elapsed == 2.0


def test_leader_entries_are_suppressed_for_a_while():
    model = _model(agent_count=60)
    model.culture.prestige[0] = 0.95
    model.advance(5.0)
    entries = [e for e in model.state.chronicle if e.kind == "LEADER_EMERGES"]
    assert len(entries) == 1
    assert entries[0].time == 1.0


def test_economy_toggle_reinitializes():
    model = _model(economy_config=None)
    model.configure_economy(enabled=False)
    model.advance(4.0)
    assert np.all(model.substrate.energy[:80] == 1.0)
    model.configure_economy(enabled=True, resource_mode="static")
    model.advance(4.0)
    assert model.substrate.energy[:80].min() < 1.0


def test_lens_keeps_matrix_bounded():
    matrix = default_matrix(4, np.random.default_rng(0)) * 3
    before = matrix.copy()
    apply_emergence_lens(matrix, Lens.OFF)
    assert np.array_equal(matrix, before)
    for lens in ("culture", "field", "ritual", "law", "events"):
        for _ in range(50):
            apply_emergence_lens(matrix, lens)
        assert np.abs(matrix).max() <= 1.5


def test_chronicle_keeps_newest_entries():
    chronicle = Chronicle(max_entries=3)
    for i in range(5):
        chronicle.append(narrate_event("JUDGMENT", {"resolution": "PUNISH", "case_id": f"case-{i}"}, float(i)))
    assert len(chronicle) == 3
    assert [e.cause for e in chronicle.latest(2)] == ["Case case-4 resolved", "Case case-3 resolved"]
    assert narrate_event("TOTEM_REMOVED").message == 'TOTEM REMOVED: "?"'


PRESET = {
    "id": "two-camps",
    "name": "Two Camps",
    "description": "Opposed camps around a forbidden centre",
    "types_count": 2,
    "agent_count": 90,
    "layout": "poles",
    "totems": [
        {"kind": "BOND", "x": -0.45, "y": -0.3, "name": "West Hearth"},
        {"kind": "BOND", "x": 0.45, "y": 0.3},
    ],
    "taboos": [{"kind": "NO_ENTER", "x": 0.0, "y": 0.0, "radius": 0.15}],
    "rituals": [
        {"kind": "GATHER", "totem": "West Hearth"},
        {"kind": "OFFERING", "totem": 1, "period_sec": 6.0},
    ],
    "config": {"justice_mode": "RESTORATIVE"},
    "matrix": [[0.8, -0.4], [-0.4, 0.8]],
}


def test_preset_replaces_institutions_and_population():
    model = _model()
    model.place_totem("RIFT", 0.9, 0.9)
    model.load_preset(PRESET)

    assert model.substrate.count == 90
    assert [t.name for t in model.state.totems][0] == "West Hearth"
    assert all(t.pinned for t in model.state.totems)
    assert len(model.state.taboos) == 1 and model.state.taboos[0].radius == 0.15
    rituals = model.state.rituals
    assert rituals[0].totem_id == model.state.totems[0].id
    assert rituals[1].totem_id == model.state.totems[1].id and rituals[1].period_sec == 6.0
    assert model.state.config.justice_mode is JusticeMode.RESTORATIVE
    assert model.interaction_matrix.shape == (2, 2)
    assert model.state.chronicle.last_of_kind("PRESET") is not None

    model.advance(5.0)
    assert np.all(np.abs(model.substrate.x[:90]) <= 1.0)


def test_preset_with_unknown_totem_reference_fails():
    bad = dict(PRESET, rituals=[{"kind": "GATHER", "totem": "Nowhere"}])
    with pytest.raises(ValueError):
        _model().load_preset(bad)


def test_presets_load_from_json(tmp_path):
    path = tmp_path / "presets.json"
    path.write_text(json.dumps({"presets": [PRESET]}), encoding="utf-8")
    presets = load_presets(str(path))
    assert list(presets) == ["two-camps"]
    assert load_presets(str(tmp_path / "missing.json")) == {}


def test_snapshot_is_serializable():
    model = _model()
    model.place_totem("ORACLE", 0.0, 0.0)
    model.advance(3.0)
    snap = model.snapshot()
    assert snap["time"] == 3.0
    assert len(snap["totems"]) == 1
    json.dumps(snap, default=str)
