from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pseo_analytics.core.config import load_config
from pseo_analytics.features.bootstrap.service import BootstrapResult, bootstrap_run
from pseo_analytics.features.persistence.duckdb_adapter import DuckDBAdapter
from pseo_analytics.features.reporting.service import cta_report, milestone_reach


def run(config_path: str) -> BootstrapResult:
    cfg = load_config(config_path)
    return bootstrap_run(cfg, config_path=config_path)


def report(
    duckdb_path: str,
    *,
    run_id: str | None = None,
    min_views: int = 10,
    output: str | None = None,
) -> dict[str, Any]:
    """CTA report plus milestone reach as one JSON-ready dict; optionally written to output."""
    if not Path(duckdb_path).exists():
        raise FileNotFoundError(duckdb_path)

    adapter = DuckDBAdapter(duckdb_path, clean_slate=False, read_only=True)
    adapter.open()
    try:
        result = cta_report(adapter.conn, run_id=run_id, min_views=min_views).as_dict()
        result["milestones"] = [
            {"eventType": m.event_type, "threshold": m.threshold, "visitors": m.visitors}
            for m in milestone_reach(adapter.conn, run_id=run_id)
        ]
    finally:
        adapter.close()

    if output:
        out = Path(output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(result, indent=2, sort_keys=True) + "\n")
    return result
