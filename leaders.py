"""Leader detector: central agents of same-type clusters pull their followers."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import numpy as np

from substrate import AgentSubstrate, apply_steering

GRID_SIZE = 12
INFLUENCE_RADIUS = 0.2
FOLLOWER_RADIUS = INFLUENCE_RADIUS * 1.5
MIN_FOLLOWERS = 4
MIN_POPULATION = 20
MAX_PER_TYPE = 2
CENTRALITY_SCALE = 0.08


@dataclass
class Leader:
    agent: int
    type: int
    influence: float
    followers: List[int] = field(default_factory=list)
    born_at: float = 0.0
    x: float = 0.0
    y: float = 0.0


def _cell(px: float, py: float) -> Tuple[int, int]:
    return math.floor((px + 1) * GRID_SIZE / 2), math.floor((py + 1) * GRID_SIZE / 2)


def _bucket(x: np.ndarray, y: np.ndarray) -> Dict[Tuple[int, int], List[int]]:
    grid: Dict[Tuple[int, int], List[int]] = {}
    for i in range(x.size):
        grid.setdefault(_cell(x[i], y[i]), []).append(i)
    return grid


def _around(grid, px: float, py: float):
    gx, gy = _cell(px, py)
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            yield from grid.get((gx + dx, gy + dy), ())


def candidate_score(i: int, x, y, types, grid) -> float:
    """Composite leadership score for agent ``i``; 0 when it lacks same-type company."""
    px, py = x[i], y[i]
    r2 = INFLUENCE_RADIUS * INFLUENCE_RADIUS
    neighbors = 0
    same = 0
    sum_dx = 0.0
    sum_dy = 0.0
    for j in _around(grid, px, py):
        if j == i:
            continue
        ddx = x[j] - px
        ddy = y[j] - py
        if ddx * ddx + ddy * ddy >= r2:
            continue
        neighbors += 1
        if types[j] == types[i]:
            same += 1
            sum_dx += ddx
            sum_dy += ddy
    if same < MIN_FOLLOWERS:
        return 0.0
    displacement = math.hypot(sum_dx / same, sum_dy / same)
    centrality = max(0.0, 1.0 - displacement / CENTRALITY_SCALE)
    return same * 0.5 + centrality * 30 + neighbors * 0.2


def detect_leaders(substrate: AgentSubstrate, now: float) -> List[Leader]:
    n = substrate.count
    if n < MIN_POPULATION:
        return []
    x, y, _, _, types = substrate.view()
    grid = _bucket(x, y)
    step = max(1, n // 300)

    candidates = []
    for i in range(0, n, step):
        score = candidate_score(i, x, y, types, grid)
        if score > 0:
            candidates.append((i, score))
    candidates.sort(key=lambda c: -c[1])

    max_leaders = min(6, math.ceil(n * 0.02))
    leaders: List[Leader] = []
    follower_r2 = FOLLOWER_RADIUS ** 2
    for idx, score in candidates:
        if len(leaders) >= max_leaders:
            break
        t = int(types[idx])
        if sum(1 for lead in leaders if lead.type == t) >= MAX_PER_TYPE:
            continue
        px, py = x[idx], y[idx]
        followers = [
            j
            for j in _around(grid, px, py)
            if j != idx and types[j] == t and (x[j] - px) ** 2 + (y[j] - py) ** 2 < follower_r2
        ]
        if len(followers) < MIN_FOLLOWERS:
            continue
        leaders.append(
            Leader(
                agent=idx,
                type=t,
                influence=min(1.0, score / 60.0),
                followers=followers,
                born_at=now,
                x=float(px),
                y=float(py),
            )
        )
    return leaders


def apply_leader_influence(substrate: AgentSubstrate, leaders: List[Leader], gain: float) -> None:
    n = substrate.count
    x, y, vx, vy, _ = substrate.view()
    for leader in leaders:
        li = leader.agent
        if li >= n:
            continue
        lx, ly = x[li], y[li]
        strength = leader.influence * gain * 0.008
        for fi in leader.followers:
            if fi >= n:
                continue
            dx = lx - x[fi]
            dy = ly - y[fi]
            d = math.hypot(dx, dy)
            if 0.005 < d < 0.4:
                pull = strength * min(1.0, d * 5)
                apply_steering(vx, vy, fi, dx / d * pull, dy / d * pull)
        if math.hypot(vx[li], vy[li]) > 0.001:
            boost = leader.influence * 0.02
            apply_steering(vx, vy, li, vx[li] * boost, vy[li] * boost)
        leader.x = float(x[li])
        leader.y = float(y[li])
