import argparse
import json
import logging
import os

import numpy as np
import pandas as pd

from culture import CultureConfig
from economy import EconomyConfig
from institutions import SocietyConfig
from model import SociogenesisModel
from presets import load_presets


parser = argparse.ArgumentParser()
parser.add_argument("--steps", type=int, default=400)
parser.add_argument("--seed", type=int, default=42)
parser.add_argument("--agents", type=int, default=400)
parser.add_argument("--types", type=int, default=4)
parser.add_argument("--tickdt", type=float, default=0.5)
parser.add_argument("--layout", type=str,
                    choices=["random", "clustered", "ring", "grid", "poles"],
                    default="random")

parser.add_argument("--justicemode", type=str,
                    choices=["AUTO", "RETRIBUTIVE", "RESTORATIVE"],
                    default="AUTO")
parser.add_argument("--influencegain", type=float, default=0.35)
parser.add_argument("--simspeed", type=float, default=0.5)
parser.add_argument("--cadence", type=float, default=5.0)
parser.add_argument("--noroles", action="store_true", default=False)
parser.add_argument("--noemergence", action="store_true", default=False)

parser.add_argument("--memecount", type=int, default=6)
parser.add_argument("--convertrate", type=float, default=0.25)

parser.add_argument("--noeconomy", action="store_true", default=False)
parser.add_argument("--resourcemode", type=str, choices=["STATIC", "FIELD_DERIVED"], default="STATIC")
parser.add_argument("--metabolism", type=float, default=0.015)

parser.add_argument("--lens", type=str,
                    choices=["off", "culture", "field", "ritual", "law", "events"],
                    default="off")
parser.add_argument("--presets", type=str, default="presets.json")
parser.add_argument("--preset", type=str, default=None)
parser.add_argument("--log-level", type=str, default="WARNING")

args, unknown = parser.parse_known_args()


def main() -> None:
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    model = SociogenesisModel(
        seed=args.seed,
        agent_count=args.agents,
        types_count=args.types,
        tick_dt=args.tickdt,
        spawn_layout=args.layout,
        society_config=SocietyConfig(
            justice_mode=args.justicemode,
            influence_gain=args.influencegain,
            sim_speed=args.simspeed,
            cadence_sec=args.cadence,
            enable_roles=not args.noroles,
            auto_emergence=not args.noemergence,
        ),
        culture_config=CultureConfig(meme_count=args.memecount, convert_rate=args.convertrate),
        economy_config=EconomyConfig(
            enabled=not args.noeconomy,
            resource_mode=args.resourcemode,
            metabolism=args.metabolism,
        ),
        lens=args.lens,
    )

    if args.preset:
        presets = load_presets(args.presets)
        if args.preset not in presets:
            print(f"Preset '{args.preset}' not found in {args.presets}; available: {sorted(presets)}")
            return
        model.load_preset(presets[args.preset])

    print("Starting sociogenesis simulation...")

    for step in range(args.steps):
        model.step()
        if step % 50 == 0:
            m = model.last_metrics
            print(
                f"Step {step} t={model.elapsed:.1f}s | "
                f"totems={m.get('totems', 0)} taboos={m.get('taboos', 0)} "
                f"rituals={m.get('rituals', 0)} cases={m.get('resolved_cases', 0)} "
                f"meme#{m.get('dominant_meme', 0)}={m.get('dominant_pct', 0.0):.2f} "
                f"gini={m.get('gini', 0.0):.2f}"
            )

    print("\n" + "=" * 30 + " INSTITUTIONS " + "=" * 30)
    for totem in model.state.totems:
        origin = "emergent" if totem.emergent else "placed"
        print(f"{totem.kind.value:8} {totem.name:14} ({totem.x:+.2f}, {totem.y:+.2f}) {origin}, affected={totem.affected_count}")
    for taboo in model.state.taboos:
        target = f" target={taboo.target_type}" if taboo.target_type is not None else ""
        print(f"{taboo.kind.value:8} ({taboo.x:+.2f}, {taboo.y:+.2f}) r={taboo.radius:.2f}{target}")
    for ritual in model.state.rituals:
        print(f"{ritual.kind.value:10} at {ritual.totem_id} period={ritual.period_sec:.1f}s duty={ritual.duty_cycle:.2f}")
    for tribe in model.state.tribes:
        print(f"Tribe {tribe.id} type={tribe.type_id} totems={len(tribe.totems)} "
              f"cohesion={tribe.cohesion_bias:+.3f} tension={tribe.tension_bias:+.3f}")

    stats = model.meme_stats()
    print("\n-- Culture --")
    print(f"Dominant meme #{stats.dominant_meme} {stats.dominant_pct:.1%}, "
          f"second #{stats.second_meme} {stats.second_pct:.1%}, schism={stats.schism}")
    for leader in model.top_leaders(5):
        print(f"  agent #{leader['idx']:5} prestige={leader['prestige']:.2f} meme=#{leader['meme_id']}")

    econ = model.economy_metrics
    print("\n-- Economy --")
    print(f"Mean energy={econ.mean_energy:.3f} Gini={econ.gini:.3f} scarcity={econ.scarcity_ratio:.2f} "
          f"territory group={econ.dominant_group} share={econ.territory_share:.2f}")

    print("\n-- Chronicle (latest) --")
    for entry in model.state.chronicle.latest(12):
        print(f"[{entry.time:7.1f}s] {entry.icon} {entry.message} | {entry.cause}")

    df = model.datacollector.get_model_vars_dataframe()
    os.makedirs("results", exist_ok=True)
    meta = dict(seed=args.seed, agents=args.agents, types=args.types,
                justicemode=args.justicemode, resourcemode=args.resourcemode,
                preset=args.preset or "none")
    for k, v in meta.items():
        df[k] = v

    ratecols = ["dominant_pct", "gini", "scarcity_ratio", "territory_share", "mean_energy"]
    for col in ratecols:
        if col in df.columns:
            df[col] = df[col].clip(lower=0.0, upper=1.0)

    try:
        df.to_csv("results/sociogenesis_metrics.csv")
    except PermissionError:
        alt = f"results/sociogenesis_metrics_{int(np.random.randint(1e9))}.csv"
        df.to_csv(alt)

    pd.DataFrame([
        dict(time=e.time, kind=e.kind, icon=e.icon, message=e.message, cause=e.cause, consequence=e.consequence)
        for e in model.state.chronicle
    ]).to_csv("results/chronicle.csv", index=False)

    with open("results/snapshot.json", "w", encoding="utf-8") as f:
        json.dump({"metadata": meta, "snapshot": model.snapshot()}, f, ensure_ascii=False, indent=2, default=str)

    print(
        "\nData saved to results/sociogenesis_metrics.csv, "
        "results/chronicle.csv and results/snapshot.json"
    )


if __name__ == "__main__":
    main()
