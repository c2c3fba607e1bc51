#!/usr/bin/env python3
"""Quick verification script for the sociogenesis engine setup."""
import importlib
import os
import sys


MODULES = [
    'substrate', 'field', 'institutions', 'chronicle', 'spatial',
    'detection', 'forces', 'roles', 'justice', 'culture',
    'prestige', 'leaders', 'economy', 'adaptation', 'presets',
    'model',
]


def check_python_version():
    """Verify Python version is 3.10+."""
    print("Checking Python version...")
    version = sys.version_info
    ok = version >= (3, 10)
    mark = "✓" if ok else "✗"
    print(f"  {mark} Python {version.major}.{version.minor}.{version.micro}" + ("" if ok else " (need 3.10+)"))
    return ok


def check_dependencies():
    """Check that the numerical stack is importable and report versions."""
    print("\nChecking dependencies...")
    missing = []
    for package in ('mesa', 'numpy', 'pandas'):
        try:
            mod = importlib.import_module(package)
        except ImportError:
            print(f"  ✗ {package}")
            missing.append(package)
            continue
        print(f"  ✓ {package} {getattr(mod, '__version__', '?')}")

    if missing:
        print(f"\n  Install with: pip install -e . ({', '.join(missing)} missing)")
        return False
    return True


def check_modules():
    """Every engine module exists next to this script and imports cleanly."""
    print("\nChecking engine modules...")
    here = os.path.dirname(os.path.abspath(__file__))
    sys.path.insert(0, here)
    ok = True
    for name in MODULES:
        if not os.path.exists(os.path.join(here, f"{name}.py")):
            print(f"  ✗ {name}.py missing")
            ok = False
            continue
        try:
            importlib.import_module(name)
            print(f"  ✓ {name}")
        except Exception as e:
            print(f"  ✗ {name}: {e}")
            ok = False
    return ok


def check_determinism():
    """Two runs with one seed must agree exactly."""
    print("\nChecking seeded replay...")
    import numpy as np
    from model import SociogenesisModel

    runs = []
    for _ in range(2):
        model = SociogenesisModel(seed=7, agent_count=100)
        model.advance(25.0)
        runs.append(model)
    a, b = runs
    same = (
        np.array_equal(a.substrate.x[:100], b.substrate.x[:100])
        and np.array_equal(a.culture.meme_id[:100], b.culture.meme_id[:100])
        and len(a.state.chronicle) == len(b.state.chronicle)
    )
    print(f"  {'✓' if same else '✗'} seed 7 replayed {'identically' if same else 'with differences'}")
    return same


def run_quick_test():
    """Run a short simulation and report what emerged."""
    print("\nRunning quick smoke test...")
    from model import SociogenesisModel

    model = SociogenesisModel(seed=42, agent_count=300, spawn_layout="clustered")
    print(f"  ✓ Model created with {model.substrate.count} agents")
    model.advance(60.0)
    m = model.last_metrics
    print(f"  ✓ t={model.elapsed:.0f}s: {m['totems']} totems, {m['taboos']} taboos, "
          f"{m['rituals']} rituals, gini={m['gini']:.2f}")
    for entry in model.state.chronicle.latest(3):
        print(f"    [{entry.time:5.1f}s] {entry.message}")
    return True


def main():
    """Run all verification checks."""
    print("="*60)
    print("SOCIOGENESIS VERIFICATION")
    print("="*60)

    results = {
        "Python Version": check_python_version(),
        "Dependencies": check_dependencies(),
    }
    if results["Dependencies"]:
        results["Engine Modules"] = check_modules()
    if all(results.values()):
        for name, check_func in (("Seeded Replay", check_determinism), ("Quick Test", run_quick_test)):
            try:
                results[name] = check_func()
            except Exception as e:
                print(f"  ✗ {name} failed: {e}")
                results[name] = False

    print("\n" + "="*60)
    print("SUMMARY")
    print("="*60)
    for name, passed in results.items():
        print(f"{'✓ PASS' if passed else '✗ FAIL'}: {name}")

    if all(results.values()):
        print("\n✓ ALL CHECKS PASSED")
        print("\nNext steps:")
        print("  1. Run tests: pytest tests/")
        print("  2. Run simulation: python run.py --steps 400 --layout clustered")
        print("  3. Compare policies: see governance_windtunnel.evaluate_policies")
        return 0
    print("\n✗ SOME CHECKS FAILED - Please fix issues above")
    return 1


if __name__ == "__main__":
    sys.exit(main())
