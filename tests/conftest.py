"""Shared fixtures: a temporary database seeded with a small catalog."""
import pytest

from db.database import db, ensure_user, init_db, transaction
from models.prize_pool import parse_catalog, sync_catalog
from services import ledger
from services.draw_engine import DrawEngine
from services.pity import PityTracker

NOW = 1_700_000_000
USER = 4242

FULL_POOL = [
    {"prize_id": "common-a", "weight": 1},
    {"prize_id": "common-b", "weight": 3},
    "rare-a",
    "epic-a",
    "ssr-a",
    "ssr-b",
    "legend-a",
]

CATALOG = {
    "prizes": [
        {"id": "common-a", "name": "Fan Club Sticker", "rarity": "COMMON", "value": 20},
        {"id": "common-b", "name": "Shoutout Card", "rarity": "COMMON", "value": 10},
        {"id": "rare-a", "name": "Digital Album", "rarity": "RARE", "value": 100},
        {"id": "epic-a", "name": "Merch Bundle", "rarity": "EPIC", "value": 200},
        {"id": "ssr-a", "name": "Photo Book", "rarity": "SSR", "value": 450},
        {"id": "ssr-b", "name": "Signed Vinyl", "rarity": "SSR", "value": 500, "stock": 1},
        {"id": "legend-a", "name": "Backstage Pass", "rarity": "LEGENDARY", "value": 1000, "stock": 2},
    ],
    "banners": [
        {
            "id": "diamond-banner", "name": "Beat Like Dat", "currency_type": "DIAMONDS",
            "cost_per_pull": 300, "start_date": NOW - 1000, "end_date": NOW + 1000,
            "sort_order": 1, "pool": FULL_POOL,
        },
        {
            "id": "ticket-banner", "name": "SYBAU", "currency_type": "TICKETS",
            "cost_per_pull": 1, "start_date": NOW - 1000, "end_date": None,
            "sort_order": 2, "pool": FULL_POOL,
        },
        {
            "id": "broken-banner", "name": "Broken", "currency_type": "DIAMONDS",
            "cost_per_pull": 300, "start_date": 0, "sort_order": 2, "pool": ["common-a"],
        },
        {
            "id": "expired-banner", "name": "Last Season", "currency_type": "DIAMONDS",
            "cost_per_pull": 300, "start_date": NOW - 2000, "end_date": NOW - 1, "pool": FULL_POOL,
        },
        {
            "id": "future-banner", "name": "Coming Soon", "currency_type": "DIAMONDS",
            "cost_per_pull": 300, "start_date": NOW + 10, "pool": FULL_POOL,
        },
        {
            "id": "inactive-banner", "name": "Paused", "currency_type": "DIAMONDS",
            "cost_per_pull": 300, "start_date": 0, "is_active": False, "pool": FULL_POOL,
        },
    ],
}


class ScriptedRng:
    """Returns queued values from ``random()``, then ``fallback`` forever."""

    def __init__(self, values=(), fallback=0.0):
        self.values = list(values)
        self.fallback = fallback

    def random(self):
        if self.values:
            return self.values.pop(0)
        return self.fallback


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "aura_test.db"
    init_db(path)
    catalog, warnings = parse_catalog(CATALOG)
    assert warnings == []
    con = db(path)
    with transaction(con):
        sync_catalog(con, catalog)
    con.close()
    return path


@pytest.fixture
def con(db_path):
    connection = db(db_path)
    yield connection
    connection.close()


@pytest.fixture
def fund_user(db_path):
    def fund(user_id, currency, amount):
        ensure_user(user_id, db_path)
        connection = db(db_path)
        with transaction(connection):
            ledger.credit(connection, user_id, currency, amount, "test_fund")
        connection.close()

    return fund


@pytest.fixture
def set_pity(db_path):
    def apply(user_id, banner_id, counter):
        ensure_user(user_id, db_path)
        connection = db(db_path)
        with transaction(connection):
            PityTracker().save(connection, user_id, banner_id, counter)
        connection.close()

    return apply


@pytest.fixture
def make_engine(db_path):
    def factory(rng=None, threshold=10, clock=lambda: NOW, timeout=None):
        return DrawEngine(
            db_path=db_path,
            rng=rng if rng is not None else ScriptedRng(),
            clock=clock,
            pity=PityTracker(threshold),
            timeout=timeout,
        )

    return factory


@pytest.fixture
def scripted_rng():
    return ScriptedRng
