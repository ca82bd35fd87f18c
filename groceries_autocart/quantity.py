from __future__ import annotations

import math
import re
from dataclasses import dataclass

from .log import LogSink

_AMOUNT_RE = re.compile(
    # A leading minus only counts when it is not a range dash, as in "2-5kg".
    r"((?:(?<![\w.])-)?\d+(?:[.,]\d+)?)\s*(kg|g|ml|l|vnt|units?)\b",
    re.IGNORECASE,
)

_CANONICAL_UNIT: dict[str, str] = {
    "kg": "kg",
    "g": "g",
    "l": "l",
    "ml": "ml",
    "vnt": "units",
    "unit": "units",
    "units": "units",
}

# Weight is the only convertible family; amounts are scaled through grams.
_GRAMS: dict[str, float] = {
    "kg": 1000.0,
    "g": 1.0,
}


@dataclass(frozen=True)
class Amount:
    value: float
    unit: str


def parse_amount(text: str | None) -> Amount | None:
    """Find the first ``<number><unit>`` token, e.g. ``"2kg"`` or ``"Milk 1 L"``."""
    if not text:
        return None
    m = _AMOUNT_RE.search(text)
    if not m:
        return None
    try:
        value = float(m.group(1).replace(",", "."))
    except ValueError:
        return None
    return Amount(value=value, unit=_CANONICAL_UNIT[m.group(2).lower()])


def convert(value: float, from_unit: str, to_unit: str) -> float | None:
    """Convert between units, or None when the pair is not convertible."""
    if from_unit == to_unit:
        return value
    if from_unit not in _GRAMS or to_unit not in _GRAMS:
        return None
    return value * _GRAMS[from_unit] / _GRAMS[to_unit]


def _valid(amount: Amount) -> bool:
    return math.isfinite(amount.value) and amount.value > 0


def multiplier(desired: str | None, product_label: str, *, log: LogSink | None = None) -> int:
    """Number of discrete add actions needed to cover ``desired`` with packs of ``product_label``.

    Always >= 1. Rounds up so a stated amount is never under-delivered;
    unknown packaging or incompatible units fall back to a single pack.
    """
    want = parse_amount(desired)
    if want is None:
        return 1

    pack = parse_amount(product_label)
    if pack is None:
        return 1

    for label, amount in (("desired", want), ("product", pack)):
        if not _valid(amount):
            if log is not None:
                log.warn(f"Ignoring invalid {label} amount {amount.value:g}{amount.unit}; adding 1")
            return 1

    wanted = convert(want.value, want.unit, pack.unit)
    if wanted is None:
        return 1

    if wanted <= pack.value:
        return 1
    # Round the ratio first so 1.1/0.1 does not become 12 through float error.
    return max(1, math.ceil(round(wanted / pack.value, 9)))


def units_to_add(desired: str | None, quantity: int, product_label: str, *, log: LogSink | None = None) -> int:
    """Clicks for a request: the multiplier when ``desired`` states an amount, else ``quantity``."""
    if parse_amount(desired) is None:
        return quantity
    return multiplier(desired, product_label, log=log)


_PER_KG_RE = re.compile(r"\bkg\b", re.IGNORECASE)


def weighted_target(desired: str | None, quantity: int, product_label: str) -> float | None:
    """Kilograms to dial in for loose goods sold by weight, or None for packaged products.

    A product whose label carries no pack size but mentions ``kg`` (e.g.
    ``"Bulvės, kg"``) is sold by weight. The stated amount wins; a plain
    request counts ``quantity`` as kilograms.
    """
    if parse_amount(product_label) is not None:
        return None
    want = parse_amount(desired)
    if want is not None:
        kg = convert(want.value, want.unit, "kg")
        if kg is not None and _valid(Amount(kg, "kg")):
            return kg
        return None
    if _PER_KG_RE.search(product_label):
        return float(quantity)
    return None
