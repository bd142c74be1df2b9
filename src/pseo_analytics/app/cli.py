from __future__ import annotations

import argparse
import json
import sys

from pseo_analytics.app.runner import report, run
from pseo_analytics.core.config import ExperimentConfig
from pseo_analytics.features.experiment.service import VARIANTS, build_cta_href, normalize_variant


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pseo-analytics")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_sim = sub.add_parser("simulate", help="Run the visitor simulation into DuckDB")
    p_sim.add_argument("--config", default="config/simulation.yaml")

    p_rep = sub.add_parser("report", help="CTA and milestone report from a DuckDB file")
    p_rep.add_argument("--duckdb", required=True)
    p_rep.add_argument("--run-id", default=None)
    p_rep.add_argument("--min-views", type=int, default=10)
    p_rep.add_argument("--output", default=None)

    p_href = sub.add_parser("cta-href", help="Print a CTA href tagged with variant and UTM params")
    p_href.add_argument("href")
    p_href.add_argument("--variant", default="A")

    args = parser.parse_args(argv)

    if args.cmd == "simulate":
        result = run(args.config)
        # minimal stdout signal
        print(f"run_id={result.ctx.run_id} duckdb={result.duckdb_path} visits={result.visits}")
        return 0

    if args.cmd == "report":
        try:
            data = report(
                args.duckdb, run_id=args.run_id, min_views=args.min_views, output=args.output
            )
        except FileNotFoundError:
            print(f"no such DuckDB file: {args.duckdb}", file=sys.stderr)
            return 2
        print(json.dumps(data, indent=2, sort_keys=True))
        return 0

    if args.cmd == "cta-href":
        variant = normalize_variant(args.variant)
        if variant not in VARIANTS:
            print(f"variant must be one of {', '.join(VARIANTS)}", file=sys.stderr)
            return 2
        print(build_cta_href(args.href, variant, ExperimentConfig.from_env()))
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
