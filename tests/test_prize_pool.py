import json
from pathlib import Path

import pytest

from db.database import db, init_db, transaction
from models.prize_pool import load_catalog, parse_catalog, sync_catalog
from services.banners import list_active
from services.probability import get_distribution

SHIPPED_CATALOG = Path(__file__).resolve().parent.parent / "data" / "catalog.json"


def test_shipped_catalog_loads_cleanly(tmp_path):
    catalog, warn = load_catalog(str(SHIPPED_CATALOG))
    assert warn is None
    assert {b["id"] for b in catalog.banners} == {"beat-like-dat", "sybau"}

    path = tmp_path / "shipped.db"
    init_db(path)
    con = db(path)
    with transaction(con):
        sync_catalog(con, catalog)
    for banner in list_active(con, 1_700_000_000):
        dist = get_distribution(con, banner.id)
        assert dist.total == pytest.approx(100.0, abs=0.01)
    con.close()


def test_missing_file_reports_a_warning(tmp_path):
    catalog, warn = load_catalog(str(tmp_path / "nope.json"))
    assert len(catalog) == 0
    assert "not found" in warn


def test_bad_json_reports_a_warning(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    catalog, warn = load_catalog(str(path))
    assert len(catalog) == 0
    assert warn.startswith("Error loading catalog JSON")


def test_root_must_be_an_object():
    catalog, warnings = parse_catalog([])
    assert len(catalog) == 0
    assert warnings


def test_prizes_are_normalised():
    catalog, warnings = parse_catalog(
        {
            "prizes": [
                {"id": "a", "rarity": "ssr", "stock": "-3"},
                {"id": "b", "rarity": "mythic", "value": "lots"},
                {"name": "no id"},
                "junk",
            ]
        }
    )
    a, b = catalog.prizes
    assert a["rarity"] == "SSR"
    assert a["stock"] == 0
    assert a["name"] == "a"
    assert b["rarity"] == "COMMON"
    assert b["value"] == 0
    assert b["stock"] is None
    assert len(warnings) == 5


def test_banners_are_normalised():
    catalog, warnings = parse_catalog(
        {
            "prizes": [{"id": "a", "rarity": "COMMON"}],
            "banners": [
                {"id": "x", "currency_type": "gold", "cost_per_pull": 1},
                {"id": "y", "currency_type": "DIAMONDS", "cost_per_pull": 0},
                {
                    "id": "z", "currency_type": "tickets", "cost_per_pull": "2",
                    "pool": ["a", {"prize_id": "ghost"}, {"prize_id": "a", "weight": 4}],
                },
            ],
        }
    )
    assert [b["id"] for b in catalog.banners] == ["z"]
    z = catalog.banners[0]
    assert z["currency_type"] == "TICKETS"
    assert z["cost_per_pull"] == 2
    assert z["end_date"] is None
    assert z["pool"] == [{"prize_id": "a", "weight": 4.0, "is_active": True}]
    assert any("ghost" in w for w in warnings)
    assert any("duplicate" in w for w in warnings)


def test_duplicate_ids_keep_the_last_value():
    catalog, warnings = parse_catalog(
        {"prizes": [{"id": "a", "value": 1}, {"id": "a", "value": 2}]}
    )
    assert [p["value"] for p in catalog.prizes] == [2]
    assert warnings == ["Duplicate prize 'a' encountered; using the last value"]


def test_sync_deactivates_entries_dropped_from_the_file(tmp_path):
    data = {
        "prizes": [{"id": "a"}, {"id": "b"}],
        "banners": [
            {"id": "x", "currency_type": "DIAMONDS", "cost_per_pull": 5, "pool": ["a", "b"]},
        ],
    }
    path = tmp_path / "sync.db"
    init_db(path)
    con = db(path)
    with transaction(con):
        sync_catalog(con, parse_catalog(data)[0])

    data["banners"][0]["pool"] = ["a"]
    file = tmp_path / "catalog.json"
    file.write_text(json.dumps(data), encoding="utf-8")
    catalog, warn = load_catalog(str(file))
    assert warn is None
    with transaction(con):
        sync_catalog(con, catalog)

    rows = con.execute(
        "SELECT prize_id, is_active FROM prize_pool_entries WHERE banner_id='x' ORDER BY prize_id"
    ).fetchall()
    assert [(r["prize_id"], r["is_active"]) for r in rows] == [("a", 1), ("b", 0)]
    con.close()
