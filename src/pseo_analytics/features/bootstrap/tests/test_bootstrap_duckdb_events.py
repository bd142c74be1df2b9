import duckdb

from pseo_analytics.core.config import parse_config
from pseo_analytics.features.bootstrap.service import RUN_FINISHED, RUN_STARTED, bootstrap_run


def _cfg(db_path, **run):
    return {
        "run": {
            "run_id": "auto",
            "seed": 123,
            "start_date": "2026-01-01",
            "num_visitors": 0,
            "horizon_hours": 2,
            **run,
        },
        "storage": {"duckdb_path": str(db_path), "clean_slate": True},
        "logging": {"level": "INFO"},
    }


def test_bootstrap_creates_db_and_lifecycle_events(tmp_path):
    db_path = tmp_path / "pseo.duckdb"
    cfg = parse_config(_cfg(db_path))

    res = bootstrap_run(cfg)

    assert db_path.exists()
    assert res.duckdb_path == str(db_path)
    assert res.visits == 0

    con = duckdb.connect(str(db_path), read_only=True)
    rows = con.execute("SELECT event_type, sim_time_s FROM events ORDER BY event_id").fetchall()
    con.close()

    assert rows[0] == (RUN_STARTED, 0.0)
    assert rows[1] == (RUN_FINISHED, 2 * 60 * 60)


def test_bootstrap_with_visitors_writes_both_channels(tmp_path):
    db_path = tmp_path / "pseo.duckdb"
    raw = _cfg(db_path, num_visitors=25)
    raw["visitors"] = {"arrival_mean_seconds": 10, "dwell_mean_seconds": 60}
    raw["pages"] = [
        {"industry": "saas", "stage": "seed"},
        {"industry": "fintech", "stage": "series-a"},
    ]
    cfg = parse_config(raw)

    res = bootstrap_run(cfg)
    assert res.visits == 25

    con = duckdb.connect(str(db_path), read_only=True)
    channels = dict(
        con.execute("SELECT channel, COUNT(*) FROM events GROUP BY channel").fetchall()
    )
    cta_views = con.execute(
        "SELECT COUNT(*) FROM events WHERE event_type = 'pseo_signup_cta_view'"
    ).fetchone()[0]
    industries = {
        r[0]
        for r in con.execute(
            "SELECT DISTINCT industry_slug FROM events WHERE channel = 'tag' AND industry_slug IS NOT NULL"
        ).fetchall()
    }
    con.close()

    assert channels["run"] == 2
    assert channels["collector"] > 0
    assert channels["tag"] > 0
    assert cta_views == 25
    assert industries <= {"saas", "fintech"}
