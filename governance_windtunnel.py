from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd

from culture import CultureConfig
from economy import EconomyConfig
from institutions import SocietyConfig
from model import SociogenesisModel


@dataclass
class PolicyConfig:
    name: str
    justice_mode: str = "AUTO"
    resource_mode: str = "STATIC"
    society: Dict[str, object] = field(default_factory=dict)
    economy: Dict[str, object] = field(default_factory=dict)


def evaluate_policies(
    policies: List[PolicyConfig],
    seeds: List[int],
    steps: int,
    baseparams: Dict[str, object] | None = None,
) -> pd.DataFrame:
    """Run every policy over every seed and return one row of end-state metrics per run."""
    rows = []
    for policy in policies:
        for seed in seeds:
            params = dict(baseparams or {})
            society = SocietyConfig(justice_mode=policy.justice_mode, **policy.society)
            economy = EconomyConfig(resource_mode=policy.resource_mode, **policy.economy)
            model = SociogenesisModel(
                seed=seed,
                society_config=society,
                culture_config=CultureConfig(),
                economy_config=economy,
                **params,
            )
            for _ in range(steps):
                model.step()
            last = model.last_metrics or {}
            punish = sum(1 for c in model.state.cases if c.resolution is not None and c.resolution.value == "PUNISH")
            rows.append(
                dict(
                    policy=policy.name,
                    seed=seed,
                    justice_mode=society.justice_mode.value,
                    resource_mode=economy.resource_mode.value,
                    totems=last.get("totems", 0),
                    taboos=last.get("taboos", 0),
                    rituals=last.get("rituals", 0),
                    cases=len(model.state.cases),
                    punish_share=punish / len(model.state.cases) if model.state.cases else 0.0,
                    dominant_pct=last.get("dominant_pct", 0.0),
                    schism=last.get("schism", False),
                    gini=last.get("gini", 0.0),
                    mean_energy=last.get("mean_energy", 0.0),
                    territory_share=last.get("territory_share", 0.0),
                )
            )
    return pd.DataFrame(rows)
