#!/usr/bin/env python3
"""Run a recurrent index-selection experiment from YAML configuration.

Loads a base config (plus optional scenario override), runs all
replicates, prints the founder and final rows of the aggregated
trajectory, and writes per-replicate summaries and the trajectory as CSV
when --out is given.

Ctrl-C stops in-flight replicates at their next generation boundary;
replicates that already finished are still reported and written.

Usage:
    python scripts/run_experiment.py
    python scripts/run_experiment.py --scenario configs/founder_anchor.yaml
    python scripts/run_experiment.py --replicates 100 --workers 8 --out results/run1
"""

import argparse
import logging
import sys
import threading
import time
from pathlib import Path

# ── Project imports ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from rsindex.config import build_trait_model, load_config
from rsindex.errors import SimulationError
from rsindex.export import priority_frequencies, summaries_to_frame, trajectory_to_frame
from rsindex.replicates import replicate_final_means, run_replicates

logger = logging.getLogger("rsindex.run_experiment")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Recurrent residual-index selection experiment")
    parser.add_argument("--config", type=str,
                        default=str(PROJECT_ROOT / "configs" / "default.yaml"),
                        help="Base YAML configuration")
    parser.add_argument("--scenario", type=str, default=None,
                        help="Scenario YAML merged over the base")
    parser.add_argument("--replicates", type=int, default=None,
                        help="Override simulation.n_replicates")
    parser.add_argument("--generations", type=int, default=None,
                        help="Override simulation.n_generations")
    parser.add_argument("--workers", type=int, default=None,
                        help="Override simulation.workers")
    parser.add_argument("--seed", type=int, default=None,
                        help="Override simulation.seed")
    parser.add_argument("--out", type=str, default=None,
                        help="Directory for summaries.csv and trajectory.csv")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log every generation")
    return parser.parse_args(argv)


def build_overrides(args) -> dict:
    sim = {}
    if args.replicates is not None:
        sim['n_replicates'] = args.replicates
    if args.generations is not None:
        sim['n_generations'] = args.generations
    if args.workers is not None:
        sim['workers'] = args.workers
    if args.seed is not None:
        sim['seed'] = args.seed
    return {'simulation': sim} if sim else {}


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config, args.scenario, build_overrides(args))
    model = build_trait_model(config)
    logger.info(
        "h2=(%.2f, %.2f) r_g=%.2f r_e=%.2f",
        *model.heritabilities, model.genetic_correlation, model.environmental_correlation,
    )

    cancel = threading.Event()
    outcome = {}

    def target():
        try:
            outcome['result'] = run_replicates(config, cancel_event=cancel)
        except SimulationError as exc:
            outcome['error'] = exc

    t0 = time.time()
    worker = threading.Thread(target=target, name="rsindex-experiment")
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.5)
    except KeyboardInterrupt:
        logger.warning("interrupt received, stopping at next generation boundary")
        cancel.set()
        worker.join()

    if 'error' in outcome:
        logger.error("experiment failed: %s", outcome['error'])
        return 1

    result = outcome['result']
    elapsed = time.time() - t0
    print(f"\n{result.n_completed}/{result.n_requested} replicates in {elapsed:.1f}s"
          + (" (cancelled)" if result.cancelled else ""))
    if result.trajectory is None:
        return 1

    traj = trajectory_to_frame(result.trajectory)
    print(traj.iloc[[0, -1]].to_string(index=False, float_format=lambda v: f"{v:.3f}"))
    finals = replicate_final_means(result)
    print(f"final-generation trait means, range over replicates: "
          f"trait 1 [{finals[:, 0].min():.2f}, {finals[:, 0].max():.2f}], "
          f"trait 2 [{finals[:, 1].min():.2f}, {finals[:, 1].max():.2f}]")

    if args.out is not None:
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        summaries_to_frame(result.replicates).to_csv(out_dir / "summaries.csv", index=False)
        traj.to_csv(out_dir / "trajectory.csv", index=False)
        priority_frequencies(result.replicates).to_csv(out_dir / "priority.csv", index=False)
        print(f"wrote {out_dir}/summaries.csv, trajectory.csv, priority.csv")

    return 0


if __name__ == "__main__":
    sys.exit(main())
