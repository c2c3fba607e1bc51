"""Taboo enforcement, cases and judgment."""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import numpy as np

from institutions import (
    CaseStatus,
    JusticeMode,
    Resolution,
    SocietyConfig,
    SocietyState,
    SocioCase,
    Taboo,
    TabooKind,
    Totem,
    TotemKind,
)
from justice import (
    MAX_RESOLVED_CASES,
    can_open_case,
    enforce_taboo,
    prune_cases,
    punish,
    restore,
    run_justice,
)
from substrate import STEERING_CLAMP, AgentSubstrate


def _ring(n, radius, cx=0.0, cy=0.0, types=None):
    angle = np.linspace(0, 2 * np.pi, n, endpoint=False)
    return AgentSubstrate.from_arrays(cx + np.cos(angle) * radius, cy + np.sin(angle) * radius, types=types)


def _state(mode="AUTO"):
    state = SocietyState(config=SocietyConfig(justice_mode=mode))
    state.taboos.append(Taboo(id="taboo-1", kind=TabooKind.NO_ENTER, x=0.0, y=0.0, radius=0.1, intensity=0.7))
    return state


def test_crowded_no_enter_zone_is_punished():
    """Twenty trespassers: AUTO picks retributive justice and scatters them."""
    state = _state()
    sub = _ring(20, 0.05)
    opened = run_justice(state, sub, state.config.gain, now=10.0)

    assert len(opened) == 1
    case = opened[0]
    assert case.status is CaseStatus.RESOLVED
    assert case.resolution is Resolution.PUNISH
    assert case.resolved_at == 10.0
    assert case.offender is not None

    x, y, vx, vy, _ = sub.view()
    outward = vx * x + vy * y
    assert np.all(outward > 0)
    # enforcement and punishment each move an axis by at most the clamp
    assert np.all(np.abs(vx) <= 2 * STEERING_CLAMP + 1e-12)
    assert np.all(np.abs(vy) <= 2 * STEERING_CLAMP + 1e-12)

    kinds = [e.kind for e in state.chronicle]
    assert kinds == ["TRANSGRESSION", "JUDGMENT"]


def test_sparse_violation_is_restored_toward_nearest_totem():
    state = _state()
    state.totems.append(Totem(id="totem-1", kind=TotemKind.BOND, x=0.6, y=0.0))
    sub = _ring(5, 0.05)
    opened = run_justice(state, sub, state.config.gain, now=10.0)
    assert opened[0].resolution is Resolution.RESTORE


def test_explicit_mode_overrides_crowd_size():
    state = _state(JusticeMode.RETRIBUTIVE)
    opened = run_justice(state, _ring(5, 0.05), state.config.gain, now=10.0)
    assert opened[0].resolution is Resolution.PUNISH


def test_case_cooldown_after_resolution():
    state = _state()
    sub = _ring(20, 0.05)
    run_justice(state, sub, state.config.gain, now=10.0)
    assert run_justice(state, sub, state.config.gain, now=15.0) == []
    assert run_justice(state, sub, state.config.gain, now=22.5) != []
    assert len(state.cases) == 2


def test_at_most_one_open_case_per_taboo():
    state = _state()
    state.cases.append(SocioCase(id="case-x", taboo_id="taboo-1"))
    assert not can_open_case(state, "taboo-1", now=100.0)
    assert run_justice(state, _ring(20, 0.05), state.config.gain, now=100.0) == []
    assert sum(1 for c in state.cases if c.status is CaseStatus.OPEN) == 1


def test_small_violation_opens_nothing():
    state = _state()
    # a single agent barely inside the rim
    sub = AgentSubstrate.from_arrays([0.095], [0.0])
    assert run_justice(state, sub, state.config.gain, now=10.0) == []
    assert state.taboos[0].affected_count == 1


def test_no_enter_offender_is_deepest_violator():
    taboo = Taboo(id="t", kind=TabooKind.NO_ENTER, x=0.0, y=0.0, radius=0.1)
    sub = AgentSubstrate.from_arrays([0.09, 0.02, 0.05, 0.5], [0.0, 0.0, 0.0, 0.0])
    violation, offender = enforce_taboo(taboo, sub, gain=0.175)
    assert offender == 1
    assert abs(violation - (0.1 + 0.8 + 0.5)) < 1e-9
    assert sub.vx[3] == 0.0
    assert 0 < sub.vx[0] <= 0.025


def test_no_mix_damps_only_target_type():
    taboo = Taboo(id="t", kind=TabooKind.NO_MIX, x=0.0, y=0.0, radius=0.12, intensity=0.6, target_type=1)
    sub = AgentSubstrate.from_arrays([0.0, 0.01, 0.02], [0.01, 0.0, 0.0], vx=[0.05, 0.05, 0.05], types=[1, 0, 1])
    violation, offender = enforce_taboo(taboo, sub, gain=0.5)
    damp = 1.0 - 0.6 * 0.5 * 0.35
    assert np.allclose(sub.vx[:3], [0.05 * damp, 0.05, 0.05 * damp])
    assert abs(violation - 0.6) < 1e-9
    assert offender == 0
    assert taboo.affected_count == 2


def test_no_mix_without_target_is_inert():
    taboo = Taboo(id="t", kind=TabooKind.NO_MIX, x=0.0, y=0.0, radius=0.12, target_type=0)
    taboo.target_type = None
    sub = _ring(10, 0.05)
    assert enforce_taboo(taboo, sub, gain=1.0) == (0.0, None)


def test_resolved_cases_are_pruned_oldest_first():
    state = SocietyState()
    for i in range(MAX_RESOLVED_CASES + 5):
        state.cases.append(
            SocioCase(id=f"case-{i}", taboo_id="t", status=CaseStatus.RESOLVED, resolved_at=float(i))
        )
    state.cases.append(SocioCase(id="case-open", taboo_id="t"))
    prune_cases(state)
    resolved = [c for c in state.cases if c.status is CaseStatus.RESOLVED]
    assert len(resolved) == MAX_RESOLVED_CASES
    assert resolved[0].id == "case-5"
    assert state.cases[-1].id == "case-open"


def test_judgment_respects_the_steering_clamp():
    """Fast trespassers are slowed and pushed, but never by more than the clamp per axis."""
    state = _state()
    state.totems.append(Totem(id="totem-1", kind=TotemKind.BOND, x=0.6, y=0.0))
    for action in (punish, restore):
        sub = _ring(12, 0.05)
        n = sub.count
        sub.vx[:n] = -0.12
        sub.vy[:n] = 0.12
        if action is punish:
            action(state.taboos[0], sub)
        else:
            action(state, state.taboos[0], sub)
        assert np.all(np.abs(sub.vx[:n] + 0.12) <= STEERING_CLAMP + 1e-12)
        assert np.all(np.abs(sub.vy[:n] - 0.12) <= STEERING_CLAMP + 1e-12)
        assert np.any(sub.vx[:n] != -0.12)
