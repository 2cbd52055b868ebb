"""Classroom demonstration: least squares against the robust fit, with and without outliers."""
from __future__ import annotations

import argparse
import csv
import json
import time
from pathlib import Path
from typing import Dict, List

from .comparison import classical_fit
from .data_prep import DEMO_OUTLIERS, Dataset, SimulationConfig, inject_outliers, simulate_from_config
from .pipeline import run_robust_regression


def demo_datasets(config: SimulationConfig | None = None) -> Dict[str, Dataset]:
    clean = simulate_from_config(config or SimulationConfig())
    return {"clean": clean, "outliers": inject_outliers(clean, DEMO_OUTLIERS)}


def run_experiment(
    dataset: Dataset,
    name: str,
    iterations: int = 2_000,
    warmup: int = 500,
    chains: int = 1,
    seed: int = 210191,
) -> Dict[str, float | str]:
    print(f"Running {name}: n={dataset.n}, iterations={iterations}, warmup={warmup}, chains={chains}")
    t0 = time.time()
    result = run_robust_regression(dataset, iterations=iterations, warmup=warmup, chains=chains, seed=seed, hpd_prob=0.95)
    elapsed = time.time() - t0
    beta = result.summary["beta"]
    return {
        "name": name,
        "n": dataset.n,
        "ols_intercept": result.classical.intercept,
        "ols_slope": result.classical.slope,
        "pearson_r": result.classical.correlation,
        "alpha_mean": result.summary["alpha"].mean,
        "beta_mean": beta.mean,
        "beta_hpd_lower": beta.hpd[0],
        "beta_hpd_upper": beta.hpd[1],
        "sigma_mean": result.summary["sigma"].mean,
        "nu_mean": result.summary["nu"].mean,
        "accept_rate": float(sum(result.posterior.accept_rates) / len(result.posterior.accept_rates)),
        "runtime_sec": elapsed,
    }


def compare_datasets(
    datasets: Dict[str, Dataset],
    out_dir: Path | None = None,
    out_prefix: str = "compare",
    iterations: int = 2_000,
    warmup: int = 500,
) -> List[Dict[str, object]]:
    results: List[Dict[str, object]] = [
        run_experiment(dataset, name, iterations=iterations, warmup=warmup) for name, dataset in datasets.items()
    ]
    if out_dir is None:
        return results

    out_dir.mkdir(parents=True, exist_ok=True)
    json_path = out_dir / f"{out_prefix}_datasets.json"
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(results, f, ensure_ascii=False, indent=2)
    print(f"Saved comparison JSON: {json_path}")
    csv_path = out_dir / f"{out_prefix}_datasets.csv"
    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        header = list(results[0])
        writer.writerow(header)
        for row in results:
            writer.writerow([row[key] for key in header])
    print(f"Saved comparison CSV: {csv_path}")
    return results


def show_shift(results: List[Dict[str, object]]) -> None:
    by_name = {row["name"]: row for row in results}
    if not {"clean", "outliers"} <= set(by_name):
        return
    ols_shift = abs(by_name["outliers"]["ols_slope"] - by_name["clean"]["ols_slope"])
    bayes_shift = abs(by_name["outliers"]["beta_mean"] - by_name["clean"]["beta_mean"])
    print(f"\nSlope shift caused by the outliers: least squares {ols_shift:.3f} | robust {bayes_shift:.3f}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Clean versus outlier demonstration for the robust regression")
    parser.add_argument("--smoke", action="store_true", help="Fit the outlier dataset with a short run")
    parser.add_argument("--compare", action="store_true", help="Fit both datasets and compare the slope shift")
    parser.add_argument("--out-dir", default=None, help="Directory for comparison JSON/CSV")
    parser.add_argument("--out-prefix", default="tutorial", help="Prefix for comparison outputs")
    args = parser.parse_args()

    if args.smoke:
        data = demo_datasets()["outliers"]
        fit = classical_fit(data)
        print(f"Least squares on noisy data: intercept={fit.intercept:.3f}, slope={fit.slope:.3f}, r={fit.correlation:.3f}")
        res = run_experiment(data, "smoke", iterations=800, warmup=200, seed=42)
        print("\nSummary")
        print(json.dumps(res, ensure_ascii=False, indent=2))

    if args.compare:
        results = compare_datasets(
            demo_datasets(),
            out_dir=Path(args.out_dir) if args.out_dir else None,
            out_prefix=args.out_prefix,
        )
        show_shift(results)

    if not (args.smoke or args.compare):
        print("Usage examples:")
        print("  python -m robust_t_regression.tutorial --smoke")
        print("  python -m robust_t_regression.tutorial --compare --out-dir results")


if __name__ == "__main__":
    main()
