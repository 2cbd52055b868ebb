"""Command line interface for robust Student-t regression."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .data_prep import DEMO_OUTLIERS, DataConfig, SimulationConfig, inject_outliers, load_dataset, simulate_from_config
from .diagnostics import (
    convergence_table,
    plot_acf,
    plot_posterior_hist,
    plot_posterior_predictive,
    plot_regression,
    plot_traces,
    summarize_acceptance,
)
from .exceptions import RobustRegressionError
from .pipeline import DEFAULT_ITERATIONS, DEFAULT_SEED, run_robust_regression

FIGURE_DIR_NAME = "figure"
RESULTS_DIR_NAME = "results"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bayesian robust simple linear regression with a Student-t likelihood")
    source = parser.add_argument_group("data")
    source.add_argument("--csv", default=None, help="CSV with the observations; simulated data is used when omitted")
    source.add_argument("--x-col", default="x")
    source.add_argument("--y-col", default="y")
    source.add_argument("--clean-csv", default=None, help="Optional path to save the cleaned dataset")
    source.add_argument("--n", type=int, default=40, help="Number of simulated observations")
    source.add_argument("--rho", type=float, default=-0.95, help="Correlation of the simulated data")
    source.add_argument("--with-outliers", action="store_true", help="Overwrite the first rows of simulated data with outliers")

    sampler = parser.add_argument_group("sampler")
    sampler.add_argument("--iterations", type=int, default=DEFAULT_ITERATIONS)
    sampler.add_argument("--warmup", type=int, default=None, help="Defaults to half of --iterations")
    sampler.add_argument("--chains", type=int, default=1)
    sampler.add_argument("--n-jobs", type=int, default=1)
    sampler.add_argument("--seed", type=int, default=DEFAULT_SEED)
    sampler.add_argument("--posterior-predictive", action="store_true", help="Also draw replicated responses y_rand")

    output = parser.add_argument_group("output")
    output.add_argument("--hpd-prob", type=float, default=0.95)
    output.add_argument(
        "--threshold",
        type=float,
        action="append",
        default=None,
        help="Report P(beta <= t); may be repeated",
    )
    output.add_argument("--out-dir", default=".", help="Directory receiving figure/ and results/")
    output.add_argument("--out-prefix", default="robust")
    output.add_argument("--save-samples", action="store_true")
    output.add_argument("--no-plots", action="store_true")
    output.add_argument("--acf-lag", type=int, default=40)
    output.add_argument("--acf-thin", type=int, default=1)
    output.add_argument("-v", "--verbose", action="store_true")
    return parser


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    _validate_args(parser, args)
    return args


def _validate_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    # parser.error prints usage and exits with status 2.
    if args.iterations < 1:
        parser.error(f"--iterations must be >= 1, got {args.iterations}")
    if args.warmup is not None and not 0 <= args.warmup < args.iterations:
        parser.error(f"--warmup must lie in [0, --iterations), got {args.warmup} for {args.iterations} iterations")
    if args.chains < 1:
        parser.error(f"--chains must be >= 1, got {args.chains}")
    if args.n_jobs < 1:
        parser.error(f"--n-jobs must be >= 1, got {args.n_jobs}")
    if not 0.0 < args.hpd_prob <= 1.0:
        parser.error(f"--hpd-prob must lie in (0, 1], got {args.hpd_prob}")
    if args.csv is None:
        if args.n < 2:
            parser.error(f"--n must be >= 2, got {args.n}")
        if not -1.0 <= args.rho <= 1.0:
            parser.error(f"--rho must lie in [-1, 1], got {args.rho}")
    if args.acf_lag < 1 or args.acf_thin < 1:
        parser.error("--acf-lag and --acf-thin must be >= 1")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )
    try:
        return _run(args)
    except RobustRegressionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


def _run(args: argparse.Namespace) -> int:
    out_dir = Path(args.out_dir)
    figure_dir = out_dir / FIGURE_DIR_NAME
    results_dir = out_dir / RESULTS_DIR_NAME

    t0 = time.time()
    if args.csv is not None:
        data_cfg = DataConfig(
            csv_path=Path(args.csv),
            x_col=args.x_col,
            y_col=args.y_col,
            output_clean_path=Path(args.clean_csv) if args.clean_csv else None,
        )
        dataset = load_dataset(data_cfg)
        print(f"Loaded {dataset.n} observations from {data_cfg.csv_path}.")
    else:
        sim_cfg = SimulationConfig(n=args.n, rho=args.rho, seed=args.seed)
        dataset = simulate_from_config(sim_cfg)
        if args.with_outliers:
            dataset = inject_outliers(dataset, {i: row for i, row in DEMO_OUTLIERS.items() if i < dataset.n})
        print(f"Simulated {dataset.n} observations with rho={args.rho} (outliers: {args.with_outliers}).")

    thresholds: Dict[str, List[float]] = {"beta": args.threshold} if args.threshold else {}
    result = run_robust_regression(
        dataset,
        iterations=args.iterations,
        warmup=args.warmup,
        chains=args.chains,
        seed=args.seed,
        hpd_prob=args.hpd_prob,
        thresholds=thresholds,
        posterior_predictive=args.posterior_predictive,
        n_jobs=args.n_jobs,
    )
    elapsed = time.time() - t0
    posterior = result.posterior

    print()
    print(result.report())
    for line in summarize_acceptance(posterior):
        print(line)
    diagnostics = convergence_table(posterior)
    for name, diag in diagnostics.items():
        print(f"{name:<6} ESS ≈ {diag['ess']:.0f} | split R-hat ≈ {diag['rhat']:.3f}")
    print(f"Runtime ≈ {elapsed:.2f} sec")

    if not args.no_plots:
        trace_path = figure_dir / f"{args.out_prefix}_trace.png"
        acf_path = figure_dir / f"{args.out_prefix}_acf.png"
        hist_path = figure_dir / f"{args.out_prefix}_hist.png"
        fit_path = figure_dir / f"{args.out_prefix}_fit.png"
        plot_traces(posterior, out_path=trace_path)
        plot_acf(posterior, max_lag=args.acf_lag, out_path=acf_path, thin=args.acf_thin)
        plot_posterior_hist(posterior, result.summary, out_path=hist_path)
        plot_regression(dataset, posterior, out_path=fit_path, classical=result.classical)
        saved = [trace_path, acf_path, hist_path, fit_path]
        if "y_rand" in posterior.generated:
            ppc_path = figure_dir / f"{args.out_prefix}_ppc.png"
            plot_posterior_predictive(dataset, posterior.generated["y_rand"], out_path=ppc_path, prob=args.hpd_prob)
            saved.append(ppc_path)
        print("Saved figures: " + ", ".join(str(p) for p in saved))

    results_dir.mkdir(parents=True, exist_ok=True)
    summary = {
        "iterations": args.iterations,
        "warmup": args.warmup if args.warmup is not None else args.iterations // 2,
        "chains": args.chains,
        "seed": args.seed,
        "n_observations": dataset.n,
        "summary": result.summary.to_dict(),
        "classical": {
            "intercept": result.classical.intercept,
            "slope": result.classical.slope,
            "correlation": result.classical.correlation,
            "p_value": result.classical.p_value,
        },
        "diagnostics": diagnostics,
        "accept_rates": list(posterior.accept_rates),
        "runtime_seconds": elapsed,
    }
    summary_path = results_dir / f"{args.out_prefix}_summary.json"
    with summary_path.open("w", encoding="utf-8") as f:
        json.dump(summary, f, ensure_ascii=False, indent=2)
    print(f"Saved summary: {summary_path}")

    if args.save_samples:
        samples_path = results_dir / f"{args.out_prefix}_samples.csv"
        posterior.to_frame().to_csv(samples_path, index=False, float_format="%.8f")
        print(f"Saved samples: {samples_path} (rows={posterior.draws})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
