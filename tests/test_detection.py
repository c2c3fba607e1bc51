"""Spatial grid and institution detector tests."""
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import numpy as np

from detection import (
    classify_ritual,
    classify_totem,
    detect_emergent_institutions,
    detect_taboos,
    detect_tribes,
    should_run_detection,
)
from institutions import RitualKind, SocietyState, TabooKind, Totem, TotemKind
from spatial import GridCell, build_spatial_grid, cell_index, neighbor_keys
from substrate import AgentSubstrate


def _cluster(cx, cy, n=8, spread=0.03, speed=0.01, type_id=0, seed=0):
    rng = np.random.default_rng(seed)
    angle = rng.uniform(0, 2 * np.pi, n)
    x = cx + rng.uniform(-spread, spread, n)
    y = cy + rng.uniform(-spread, spread, n)
    return x, y, np.cos(angle) * speed, np.sin(angle) * speed, np.full(n, type_id)


def _substrate(*clusters):
    parts = list(zip(*clusters))
    return AgentSubstrate.from_arrays(*(np.concatenate(p) for p in parts))


def test_cell_index_clamps_domain_edges():
    idx = cell_index(np.array([-1.0, 0.0, 0.999, 1.0]), 10)
    assert idx.tolist() == [0, 5, 9, 9]


def test_neighbor_keys_respect_bounds():
    assert len(neighbor_keys((0, 0), 10)) == 3
    assert len(neighbor_keys((5, 5), 10)) == 8
    assert len(neighbor_keys((9, 4), 10)) == 5


def test_spatial_grid_aggregates_cells():
    sub = AgentSubstrate.from_arrays(
        x=[0.05, 0.1, 0.15, -0.9],
        y=[0.05, 0.1, 0.15, -0.9],
        vx=[0.01, 0.03, 0.02, 0.0],
        types=[1, 2, 1, 0],
    )
    grid = build_spatial_grid(sub)
    assert set(grid) == {(5, 5), (0, 0)}
    cell = grid[(5, 5)]
    assert cell.count == 3
    assert cell.type_counts == {1: 2, 2: 1}
    assert cell.dominant_type() == 1
    assert abs(cell.mean_vx - 0.02) < 1e-12
    assert abs(cell.centroid_x - 0.1) < 1e-12


def test_dominant_type_ties_go_to_lowest_id():
    cell = GridCell(count=4, type_counts={3: 2, 1: 2})
    assert cell.dominant_type() == 1
    assert cell.purity() == 0.5


def test_classify_totem_priorities():
    assert classify_totem(GridCell(count=7, type_counts={0: 7}, mean_speed=0.01), 100) is None
    assert classify_totem(GridCell(count=8, type_counts={0: 4, 1: 4}, mean_speed=0.09), 100) is TotemKind.ORACLE
    assert classify_totem(GridCell(count=8, type_counts={0: 8}, mean_speed=0.01), 100) is TotemKind.BOND
    assert classify_totem(GridCell(count=8, type_counts={0: 4, 1: 4}, mean_speed=0.01), 100) is TotemKind.ARCHIVE
    rift = GridCell(count=8, type_counts={0: 2, 1: 2, 2: 2, 3: 2}, mean_speed=0.04)
    assert classify_totem(rift, 8) is TotemKind.RIFT


def test_classify_ritual_motion_patterns():
    assert classify_ritual(3, -0.05, 0.0, 0.05) is None
    assert classify_ritual(6, 0.0, 0.04, 0.04) is RitualKind.PROCESSION
    assert classify_ritual(6, -0.02, 0.01, 0.02) is RitualKind.GATHER
    assert classify_ritual(6, 0.0, 0.0, 0.01) is RitualKind.OFFERING
    assert classify_ritual(5, 0.0, 0.0, 0.01) is None


def test_slow_pure_cluster_becomes_bond_totem():
    """Eight same-type agents crawling in one cell found an emergent BOND."""
    state = SocietyState()
    sub = _substrate(_cluster(0.1, 0.1))
    spawned = detect_emergent_institutions(state, sub, now=20.0)

    assert len(spawned["totems"]) == 1
    totem = state.totems[0]
    assert totem.kind is TotemKind.BOND
    assert totem.emergent and not totem.pinned
    assert totem.name
    assert abs(totem.x - sub.x[:8].mean()) < 1e-9
    assert state.chronicle.last_of_kind("TOTEM_EMERGED") is not None


def test_detection_is_idempotent_on_unchanged_population():
    state = SocietyState()
    sub = _substrate(_cluster(0.1, 0.1))
    detect_emergent_institutions(state, sub, now=20.0)
    before = (len(state.totems), len(state.taboos), len(state.rituals))
    again = detect_emergent_institutions(state, sub, now=40.0)
    assert again["totems"] == [] and again["rituals"] == []
    assert (len(state.totems), len(state.taboos), len(state.rituals)) == before


def test_emergent_totems_rate_limited_per_window():
    state = SocietyState()
    sub = _substrate(
        _cluster(-0.7, -0.7, seed=1),
        _cluster(0.7, -0.7, seed=2),
        _cluster(-0.7, 0.7, seed=3),
        _cluster(0.7, 0.7, seed=4),
    )
    detect_emergent_institutions(state, sub, now=20.0)
    assert len(state.totems) == 3
    # the window has passed, so the fourth cluster may now found its totem
    detect_emergent_institutions(state, sub, now=60.0)
    assert len(state.totems) == 4


def test_removing_emergent_totem_does_not_free_window_slot():
    state = SocietyState()
    sub = _substrate(
        _cluster(-0.7, -0.7, seed=1),
        _cluster(0.7, -0.7, seed=2),
        _cluster(-0.7, 0.7, seed=3),
        _cluster(0.7, 0.7, seed=4),
    )
    detect_emergent_institutions(state, sub, now=20.0)
    assert len(state.totems) == 3
    state.totems.pop(0)
    detect_emergent_institutions(state, sub, now=21.0)
    assert len(state.totems) == 2
    assert state.emergent_spawns == [20.0, 20.0, 20.0]

    detect_emergent_institutions(state, sub, now=60.0)
    assert len(state.totems) == 4
    assert state.emergent_spawns == [60.0, 60.0]


def test_totem_cap_blocks_detection():
    state = SocietyState()
    state.config.max_totems = 0
    detect_emergent_institutions(state, _substrate(_cluster(0.1, 0.1)), now=20.0)
    assert state.totems == []


def test_no_mix_taboo_on_pure_cell_bordering_strangers():
    sub = _substrate(
        _cluster(0.1, 0.1, n=5, spread=0.02, type_id=0),
        _cluster(0.3, 0.1, n=3, spread=0.02, type_id=1, seed=5),
    )
    state = SocietyState()
    taboo = detect_taboos(state, build_spatial_grid(sub), now=20.0)
    assert taboo is not None
    assert taboo.kind is TabooKind.NO_MIX
    assert taboo.target_type == 0
    assert detect_taboos(state, build_spatial_grid(sub), now=40.0) is None


def test_no_enter_taboo_on_empty_cell_ringed_by_crowds():
    clusters = []
    seed = 10
    for gx, gy in neighbor_keys((5, 5), 10):
        cx = -1.0 + (gx + 0.5) * 0.2
        cy = -1.0 + (gy + 0.5) * 0.2
        x, y, vx, vy, _ = _cluster(cx, cy, n=5, spread=0.05, seed=seed)
        clusters.append((x, y, vx, vy, np.array([0, 1, 2, 3, 0])))
        seed += 1
    state = SocietyState()
    taboo = detect_taboos(state, build_spatial_grid(_substrate(*clusters)), now=20.0)
    assert taboo is not None
    assert taboo.kind is TabooKind.NO_ENTER
    assert abs(taboo.x - 0.1) < 1e-9 and abs(taboo.y - 0.1) < 1e-9


def test_tribes_keep_identity_across_passes():
    state = SocietyState()
    state.totems.append(Totem(id="totem-a", kind=TotemKind.BOND, x=0.0, y=0.0, radius=0.15))
    x, y, vx, vy, _ = _cluster(0.0, 0.0, n=6, spread=0.05)
    sub = AgentSubstrate.from_arrays(x, y, vx, vy, types=[2, 2, 2, 2, 1, 0])

    tribes = detect_tribes(state, sub, now=10.0)
    assert [t.type_id for t in tribes] == [2]
    assert tribes[0].totems == ["totem-a"]
    first_id = tribes[0].id
    bias = (tribes[0].cohesion_bias, tribes[0].tension_bias)
    assert all(abs(b) <= 0.2 for b in bias)

    again = detect_tribes(state, sub, now=200.0)
    assert again[0].id == first_id
    assert (again[0].cohesion_bias, again[0].tension_bias) == bias


def test_tribes_cleared_without_totems():
    state = SocietyState()
    sub = _substrate(_cluster(0.0, 0.0))
    assert detect_tribes(state, sub, now=5.0) == []


def test_detection_cadence():
    assert not should_run_detection(0.0, 19.9)
    assert should_run_detection(0.0, 20.0)
    assert should_run_detection(10.0, 15.0, cadence=5.0)
