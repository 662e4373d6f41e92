"""
Warehouse Transformations

Pure polars functions that turn the raw extract of the three operational
stores into dimension rows and resolved fact rows. Nothing here touches a
database, so every step is testable in isolation.
"""

import hashlib
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import polars as pl

USER_SCHEMA = {"user_id": pl.Utf8, "name": pl.Utf8}
PRODUCT_SCHEMA = {
    "product_id": pl.Utf8,
    "title": pl.Utf8,
    "author": pl.Utf8,
    "price": pl.Decimal(10, 2),
}
EDGE_SCHEMA = {"user_id": pl.Utf8, "product_id": pl.Utf8}
USER_KEY_SCHEMA = {"user_key": pl.Int64, "user_id": pl.Utf8}
PRODUCT_KEY_SCHEMA = {"product_key": pl.Int64, "product_id": pl.Utf8}

CENTS = Decimal("0.01")
MAX_PRICE = Decimal("100000000")


@dataclass
class Snapshot:
    """Raw extract of the operational stores, one frame per source."""
    users: pl.DataFrame
    products: pl.DataFrame
    edges: pl.DataFrame


@dataclass
class FactResolution:
    """Edges split into resolvable facts and edges with a missing dimension."""
    facts: pl.DataFrame
    unresolved: pl.DataFrame


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _as_price(value: Any) -> Optional[Decimal]:
    # Decimal128, floats and numeric strings all stringify to a parseable number
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None
    # NUMERIC(10, 2) holds at most eight integer digits
    if not price.is_finite() or abs(price) >= MAX_PRICE:
        return None
    return price


def users_frame(rows: Iterable[Mapping[str, Any]]) -> pl.DataFrame:
    """Users from the relational store (``id``, ``name``)."""
    records = [{"user_id": _as_str(r["id"]), "name": r.get("name")} for r in rows]
    return pl.DataFrame(records, schema=USER_SCHEMA)


def products_frame(documents: Iterable[Mapping[str, Any]]) -> pl.DataFrame:
    """
    Products from the document store.

    Only the fixed descriptive fields are kept; extension fields are dropped.
    """
    records = [
        {
            "product_id": _as_str(doc.get("_id", doc.get("id"))),
            "title": _as_str(doc.get("title")),
            "author": _as_str(doc.get("author")),
            "price": _as_price(doc.get("price")),
        }
        for doc in documents
    ]
    return pl.DataFrame(records, schema=PRODUCT_SCHEMA)


def edges_frame(pairs: Iterable[Tuple[Any, Any]]) -> pl.DataFrame:
    """Purchase edges from the graph store as (user id, product id) pairs."""
    records = [{"user_id": _as_str(u), "product_id": _as_str(p)} for u, p in pairs]
    return pl.DataFrame(records, schema=EDGE_SCHEMA)


def dimension_rows(snapshot: Snapshot) -> Tuple[pl.DataFrame, pl.DataFrame]:
    """
    Deduplicated dimension rows, ordered by operational identifier.

    Rows without an identifier cannot be joined to and are dropped.
    """
    users = (
        snapshot.users
        .filter(pl.col("user_id").is_not_null())
        .unique(subset=["user_id"], keep="first", maintain_order=True)
        .sort("user_id")
    )
    products = (
        snapshot.products
        .filter(pl.col("product_id").is_not_null())
        .unique(subset=["product_id"], keep="first", maintain_order=True)
        .sort("product_id")
    )
    return users, products


def distinct_edges(edges: pl.DataFrame) -> pl.DataFrame:
    """Collapse repeated purchases of the same product by the same user."""
    return (
        edges
        .drop_nulls()
        .unique(subset=["user_id", "product_id"], keep="first", maintain_order=True)
        .sort(["user_id", "product_id"])
    )


def keys_frame(rows: Iterable[Mapping[str, Any]], schema: Dict[str, Any]) -> pl.DataFrame:
    """Build a surrogate-key lookup frame from selected dimension rows."""
    return pl.DataFrame([dict(r) for r in rows], schema=schema)


def resolve_facts(
    edges: pl.DataFrame,
    user_keys: pl.DataFrame,
    product_keys: pl.DataFrame,
) -> FactResolution:
    """
    Look up both surrogate keys for every distinct edge.

    Args:
        edges: ``user_id``/``product_id`` pairs
        user_keys: ``user_key``/``user_id`` from the loaded user dimension
        product_keys: ``product_key``/``product_id`` from the loaded product dimension

    Returns:
        FactResolution with resolved facts and the edges that did not resolve
    """
    joined = (
        distinct_edges(edges)
        .join(user_keys, on="user_id", how="left")
        .join(product_keys, on="product_id", how="left")
    )
    resolved = pl.col("user_key").is_not_null() & pl.col("product_key").is_not_null()

    return FactResolution(
        facts=joined.filter(resolved),
        unresolved=joined.filter(~resolved).select(["user_id", "product_id"]),
    )


def synthetic_day_offset(user_id: str, product_id: str, window_days: int) -> int:
    """Stable pseudo-random offset in ``[0, window_days)`` for one edge."""
    digest = hashlib.sha256(f"{user_id}\x1f{product_id}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % max(window_days, 1)


def with_purchase_dates(facts: pl.DataFrame, anchor: date, window_days: int) -> pl.DataFrame:
    """
    Attach a synthesized ``purchase_date`` to every fact.

    The graph store records no purchase time. The date is a placeholder
    spread over the ``window_days`` ending at ``anchor``; it is derived from
    the edge itself so that reloading the same data on the same anchor
    yields the same rows.
    """
    dates: List[date] = [
        anchor - timedelta(days=synthetic_day_offset(u, p, window_days))
        for u, p in zip(facts["user_id"].to_list(), facts["product_id"].to_list())
    ]
    return facts.with_columns(pl.Series("purchase_date", dates, dtype=pl.Date))
