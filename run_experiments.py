import argparse
import asyncio
import os
from pathlib import Path

from columns import ColumnStore
from combinations import build_combinations
from constants import (AGGREGATION_MODE, DATA_DIR, DATASETS, FNRS, MAX_CONCURRENT, METHODS, N_BOOTSTRAP,
                       OUTPUT_DIR, OUTPUT_HTML, OUTPUT_JSON, PREF, QUALITY_THRESHOLDS, QUANTILES, SEED,
                       TRACES_DB)
from create_plots import plot_interactive, plot_precision_curves
from run_async import load_results_json, run_fan_out, save_results_json
from traces_db import load_traces, save_traces
from server import serve


def compute(args) -> None:
    os.makedirs(args.output_dir, exist_ok=True)
    combinations = build_combinations(args.datasets, args.methods)
    print(f"Combinations: {len(combinations)}, target FNRs: {FNRS}")

    store = ColumnStore(args.data_dir, args.pref)
    store.load_all(args.datasets, combinations)
    print("Loaded data")

    records = asyncio.run(run_fan_out(
        combinations, FNRS, store.get_columns,
        quality_thresholds=QUALITY_THRESHOLDS,
        quantile_grid=QUANTILES,
        bootstrap_count=args.n_bootstrap,
        aggregation_mode=args.aggregation,
        seed=args.seed,
        max_concurrent=args.max_concurrent,
    ))

    output_dir = Path(args.output_dir)
    asyncio.run(save_results_json(records, str(output_dir / OUTPUT_JSON)))
    save_traces(records, str(output_dir / TRACES_DB))
    plot_interactive(records, str(output_dir / OUTPUT_HTML), default_fnr=FNRS[0])
    print("Completed pipeline. JSON, trace database and HTML saved.")


def plot(args) -> None:
    output_dir = Path(args.output_dir)
    db_path = output_dir / TRACES_DB
    if db_path.exists():
        records = load_traces(str(db_path))
    else:
        records = load_results_json(str(output_dir / OUTPUT_JSON))
    print(f"Loaded {len(records)} traces")

    plot_interactive(records, str(output_dir / OUTPUT_HTML), default_fnr=args.fnr)
    for path in plot_precision_curves(records, str(output_dir / "figures"), args.fnr):
        print(f"Saved figure: {path}")


def main():
    parser = argparse.ArgumentParser(description="Robust precision of uncertainty-based rejection")
    parser.add_argument("--output-dir", default=OUTPUT_DIR)
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_compute = subparsers.add_parser("compute", help="Compute robust precision curves for every combination")
    p_compute.add_argument("--data-dir", default=DATA_DIR)
    p_compute.add_argument("--pref", default=PREF)
    p_compute.add_argument("--datasets", nargs="+", default=DATASETS)
    p_compute.add_argument("--methods", nargs="+", default=METHODS)
    p_compute.add_argument("--n-bootstrap", type=int, default=N_BOOTSTRAP)
    p_compute.add_argument("--aggregation", default=AGGREGATION_MODE)
    p_compute.add_argument("--seed", type=int, default=SEED)
    p_compute.add_argument("--max-concurrent", type=int, default=MAX_CONCURRENT)
    p_compute.set_defaults(func=compute)

    p_plot = subparsers.add_parser("plot", help="Render plots from saved traces")
    p_plot.add_argument("--fnr", type=float, default=FNRS[0])
    p_plot.set_defaults(func=plot)

    p_serve = subparsers.add_parser("serve", help="Serve saved traces over HTTP")
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=8080)
    p_serve.set_defaults(func=lambda a: serve(str(Path(a.output_dir) / TRACES_DB), a.host, a.port))

    args = parser.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
