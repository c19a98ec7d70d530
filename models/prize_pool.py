from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from services.balance import Currency
from services.rarity import Rarity

logger = logging.getLogger("aura.catalog")


@dataclass
class Catalog:
    prizes: List[Dict[str, Any]] = field(default_factory=list)
    banners: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.prizes) + len(self.banners)


def _coerce_int(
    value: Any, default: Optional[int], warnings: List[str], context: str
) -> Optional[int]:
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        warnings.append(f"{context} is invalid; defaulting to {default}")
        return default


def _coerce_float(value: Any, default: float, warnings: List[str], context: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        warnings.append(f"{context} is invalid; defaulting to {default}")
        return default


def _normalise_prize(raw: Any, warnings: List[str], index: int) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        warnings.append(f"Skipping prize #{index + 1}: expected object, got {type(raw).__name__}")
        return None

    prize_id = str(raw.get("id", "")).strip()
    if not prize_id:
        warnings.append(f"Skipping prize #{index + 1}: missing id")
        return None

    try:
        rarity = Rarity.parse(raw.get("rarity", "COMMON"))
    except ValueError:
        warnings.append(f"{prize_id}: invalid rarity '{raw.get('rarity')}', defaulting to 'COMMON'")
        rarity = Rarity.COMMON

    stock = _coerce_int(raw.get("stock"), None, warnings, f"{prize_id}: stock")
    if stock is not None and stock < 0:
        warnings.append(f"{prize_id}: negative stock {stock}, treating as 0")
        stock = 0

    return {
        "id": prize_id,
        "name": str(raw.get("name") or prize_id).strip(),
        "description": str(raw.get("description") or "").strip(),
        "rarity": rarity.name,
        "value": _coerce_int(raw.get("value"), 0, warnings, f"{prize_id}: value"),
        "stock": stock,
        "restock": bool(raw.get("restock", False)),
    }


def _normalise_pool(
    banner_id: str, raw_pool: Any, prize_ids: Sequence[str], warnings: List[str]
) -> List[Dict[str, Any]]:
    if not isinstance(raw_pool, list):
        warnings.append(f"{banner_id}: pool must be a list; banner has no entries")
        return []
    pool: Dict[str, Dict[str, Any]] = {}
    for idx, raw in enumerate(raw_pool):
        if isinstance(raw, str):
            raw = {"prize_id": raw}
        if not isinstance(raw, dict):
            warnings.append(f"{banner_id}: skipping pool entry #{idx + 1}")
            continue
        prize_id = str(raw.get("prize_id", "")).strip()
        if prize_id not in prize_ids:
            warnings.append(f"{banner_id}: pool entry references unknown prize '{prize_id}'")
            continue
        weight = _coerce_float(raw.get("weight", 1), 1.0, warnings, f"{banner_id}/{prize_id}: weight")
        if weight <= 0:
            warnings.append(f"{banner_id}/{prize_id}: weight must be positive; skipping")
            continue
        if prize_id in pool:
            warnings.append(f"{banner_id}: duplicate pool entry for '{prize_id}'; using the last value")
        pool[prize_id] = {
            "prize_id": prize_id,
            "weight": weight,
            "is_active": bool(raw.get("is_active", True)),
        }
    return list(pool.values())


def _normalise_banner(
    raw: Any, prize_ids: Sequence[str], warnings: List[str], index: int
) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict):
        warnings.append(f"Skipping banner #{index + 1}: expected object, got {type(raw).__name__}")
        return None

    banner_id = str(raw.get("id", "")).strip()
    if not banner_id:
        warnings.append(f"Skipping banner #{index + 1}: missing id")
        return None

    try:
        currency = Currency.parse(raw.get("currency_type"))
    except ValueError:
        warnings.append(f"Skipping banner '{banner_id}': invalid currency '{raw.get('currency_type')}'")
        return None

    cost = _coerce_int(raw.get("cost_per_pull"), None, warnings, f"{banner_id}: cost_per_pull")
    if cost is None or cost <= 0:
        warnings.append(f"Skipping banner '{banner_id}': cost_per_pull must be positive")
        return None

    start = _coerce_int(raw.get("start_date"), 0, warnings, f"{banner_id}: start_date")
    end = _coerce_int(raw.get("end_date"), None, warnings, f"{banner_id}: end_date")
    if end is not None and end <= start:
        warnings.append(f"{banner_id}: end_date is not after start_date; banner will never be live")

    return {
        "id": banner_id,
        "name": str(raw.get("name") or banner_id).strip(),
        "description": str(raw.get("description") or "").strip(),
        "currency_type": currency.value,
        "cost_per_pull": cost,
        "start_date": start,
        "end_date": end,
        "is_active": bool(raw.get("is_active", True)),
        "sort_order": _coerce_int(raw.get("sort_order"), 0, warnings, f"{banner_id}: sort_order"),
        "pool": _normalise_pool(banner_id, raw.get("pool", []), prize_ids, warnings),
    }


def _dedupe(entries: Sequence[Dict[str, Any]], warnings: List[str], kind: str) -> List[Dict[str, Any]]:
    seen: Dict[str, Dict[str, Any]] = {}
    order: List[str] = []
    for entry in entries:
        key = entry["id"]
        if key in seen:
            warnings.append(f"Duplicate {kind} '{key}' encountered; using the last value")
        else:
            order.append(key)
        seen[key] = entry
    return [seen[key] for key in order]


def parse_catalog(data: Any) -> Tuple[Catalog, List[str]]:
    warnings: List[str] = []
    if not isinstance(data, dict):
        return Catalog(), ["catalog root must be an object with 'prizes' and 'banners'"]

    raw_prizes = data.get("prizes") or []
    raw_banners = data.get("banners") or []
    prizes = [p for p in (_normalise_prize(r, warnings, i) for i, r in enumerate(raw_prizes)) if p]
    prizes = _dedupe(prizes, warnings, "prize")
    prize_ids = [p["id"] for p in prizes]
    banners = [
        b for b in (_normalise_banner(r, prize_ids, warnings, i) for i, r in enumerate(raw_banners)) if b
    ]
    banners = _dedupe(banners, warnings, "banner")
    return Catalog(prizes=prizes, banners=banners), warnings


def load_catalog(path: str) -> Tuple[Catalog, Optional[str]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return Catalog(), f"{path} not found"
    except (OSError, json.JSONDecodeError) as ex:
        return Catalog(), f"Error loading catalog JSON: {ex}"

    catalog, warnings = parse_catalog(data)

    warn_text = None
    if warnings:
        seen_messages: List[str] = []
        for msg in warnings:
            if msg not in seen_messages:
                seen_messages.append(msg)
        warn_text = "\n".join(seen_messages)

    return catalog, warn_text


def sync_catalog(con: sqlite3.Connection, catalog: Catalog) -> None:
    """Upsert prizes and banners; pool entries missing from the file are deactivated.

    Remaining stock of a limited prize is kept across reloads unless the prize
    sets ``"restock": true`` in the file.

    Runs in the caller's transaction.
    """
    cur = con.cursor()
    for p in catalog.prizes:
        cur.execute(
            """
            INSERT INTO prizes(id, name, description, rarity, value, stock) VALUES(?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, description=excluded.description, rarity=excluded.rarity,
                value=excluded.value,
                stock=CASE WHEN ? OR prizes.stock IS NULL THEN excluded.stock ELSE prizes.stock END
            """,
            (p["id"], p["name"], p["description"], p["rarity"], p["value"], p["stock"], int(p["restock"])),
        )
    for b in catalog.banners:
        cur.execute(
            """
            INSERT INTO banners(id, name, description, currency_type, cost_per_pull,
                                start_date, end_date, is_active, sort_order)
            VALUES(?,?,?,?,?,?,?,?,?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, description=excluded.description,
                currency_type=excluded.currency_type, cost_per_pull=excluded.cost_per_pull,
                start_date=excluded.start_date, end_date=excluded.end_date,
                is_active=excluded.is_active, sort_order=excluded.sort_order
            """,
            (
                b["id"], b["name"], b["description"], b["currency_type"], b["cost_per_pull"],
                b["start_date"], b["end_date"], int(b["is_active"]), b["sort_order"],
            ),
        )
        cur.execute("UPDATE prize_pool_entries SET is_active=0 WHERE banner_id=?", (b["id"],))
        for e in b["pool"]:
            cur.execute(
                """
                INSERT INTO prize_pool_entries(banner_id, prize_id, weight, is_active) VALUES(?,?,?,?)
                ON CONFLICT(banner_id, prize_id) DO UPDATE SET
                    weight=excluded.weight, is_active=excluded.is_active
                """,
                (b["id"], e["prize_id"], e["weight"], int(e["is_active"])),
            )
    logger.info("Synced %s prizes and %s banners", len(catalog.prizes), len(catalog.banners))
