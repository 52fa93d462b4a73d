"""Per-partition price-change computation.

Works on plain in-memory observations so the lookback policy can be tested
without a database. For every key observed on its current date:

* the current price is the mean of that day's observations;
* each lookback horizon averages the observations inside its tolerance
  window (``WINDOW``), else takes the latest observation strictly before the
  target date (``FALLBACK``), else reports ``NO_DATA``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any

from pfcollect.analytics.horizons import HORIZONS, PREVIOUS, Horizon

SOURCE_WINDOW = "WINDOW"
SOURCE_FALLBACK = "FALLBACK"
SOURCE_NO_DATA = "NO_DATA"

SCOPE_PARTITION = "partition"
SCOPE_ITEM = "item"


@dataclass(frozen=True)
class Observation:
    key: tuple[str, ...]
    price: float
    observed: date


@dataclass(frozen=True)
class PriceLookup:
    price: float | None
    observed: date | None
    source: str


NO_DATA = PriceLookup(price=None, observed=None, source=SOURCE_NO_DATA)


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


def find_previous_price(
    history: Sequence[Observation], current: date, horizon: Horizon
) -> PriceLookup:
    """Pick the comparison price for one horizon from observations older than ``current``."""
    start, end = horizon.window(current)
    in_window = [o for o in history if start <= o.observed <= end]
    if in_window:
        return PriceLookup(
            price=_mean([o.price for o in in_window]),
            observed=max(o.observed for o in in_window),
            source=SOURCE_WINDOW,
        )

    cutoff = current if horizon.fallback_before_current else horizon.target(current)
    before = [o for o in history if o.observed < cutoff]
    if not before:
        return NO_DATA
    latest = max(o.observed for o in before)
    return PriceLookup(
        price=_mean([o.price for o in before if o.observed == latest]),
        observed=latest,
        source=SOURCE_FALLBACK,
    )


def compute_change(current: float | None, previous: float | None) -> tuple[float | None, float | None]:
    """Absolute and percentage change; null when either side is missing, percentage null on zero."""
    if current is None or previous is None:
        return None, None
    change = current - previous
    if previous == 0:
        return change, None
    return change, change / previous * 100


def _current_dates(
    by_key: dict[tuple[str, ...], list[Observation]], scope: str
) -> dict[tuple[str, ...], date]:
    if scope == SCOPE_ITEM:
        return {key: max(o.observed for o in obs) for key, obs in by_key.items()}
    if scope != SCOPE_PARTITION:
        raise ValueError(f"unknown current-price scope: {scope}")
    if not by_key:
        return {}
    latest = max(o.observed for obs in by_key.values() for o in obs)
    return {
        key: latest
        for key, obs in by_key.items()
        if any(o.observed == latest for o in obs)
    }


def compute_key_row(
    key_columns: Sequence[str], key: tuple[str, ...], observations: Sequence[Observation], current_date: date
) -> dict[str, Any]:
    current_price = _mean([o.price for o in observations if o.observed == current_date])
    history = [o for o in observations if o.observed < current_date]

    row: dict[str, Any] = dict(zip(key_columns, key))
    previous = find_previous_price(history, current_date, PREVIOUS)
    change, pct = compute_change(current_price, previous.price)
    row.update(
        current_price=current_price,
        previous_price=previous.price,
        price_change=change,
        percentage_change=pct,
        latest_update_date=current_date,
        previous_update_date=previous.observed,
        price_source_previous=previous.source,
    )
    for horizon in HORIZONS:
        lookup = find_previous_price(history, current_date, horizon)
        change, pct = compute_change(current_price, lookup.price)
        row[f"previous_price_{horizon.name}"] = lookup.price
        row[f"price_change_{horizon.name}"] = change
        row[f"percentage_change_{horizon.name}"] = pct
        row[f"price_source_{horizon.name}"] = lookup.source
    return row


def compute_partition(
    observations: Iterable[Observation],
    key_columns: Sequence[str],
    current_scope: str = SCOPE_PARTITION,
) -> list[dict[str, Any]]:
    """One analytics row per key that has a current price, ordered by key."""
    by_key: dict[tuple[str, ...], list[Observation]] = defaultdict(list)
    for obs in observations:
        if obs.price is None or obs.observed is None:
            continue
        by_key[obs.key].append(obs)

    current = _current_dates(by_key, current_scope)
    return [
        compute_key_row(key_columns, key, by_key[key], current[key])
        for key in sorted(current)
    ]
