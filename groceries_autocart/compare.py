from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Protocol, Sequence

from .match import dice, normalize_label, strip_pack_size, tokens
from .models import ActualCartLine

EXACT_SCORE = 100
PACK_SIZE_SCORE = 85
MAX_FUZZY_SCORE = 94


class ComparatorUnavailable(RuntimeError):
    """The comparison backend could not produce a usable answer."""


@dataclass(frozen=True)
class Comparison:
    score: int
    line_index: int | None = None
    notes: tuple[str, ...] = ()


class Comparator(Protocol):
    def compare(
        self,
        description: str,
        lines: Sequence[ActualCartLine],
        *,
        product_label: str | None = None,
    ) -> Comparison: ...


def clamp_score(raw) -> int:
    """Validate a backend score and clamp it into 0..100."""
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        raise ComparatorUnavailable(f"Score is not a number: {raw!r}")
    try:
        value = float(raw)
    except ValueError:
        raise ComparatorUnavailable(f"Score is not a number: {raw!r}") from None
    if math.isnan(value):
        raise ComparatorUnavailable("Score is NaN")
    return int(round(min(100.0, max(0.0, value))))


def label_score(wanted: str, actual: str) -> int:
    if not normalize_label(wanted) or not normalize_label(actual):
        return 0
    if normalize_label(wanted) == normalize_label(actual):
        return EXACT_SCORE

    core_w, core_a = strip_pack_size(wanted), strip_pack_size(actual)
    if core_w and core_w == core_a:
        return PACK_SIZE_SCORE
    if core_w and tokens(core_w) <= tokens(core_a):
        # Search term fully contained in the product name, e.g. "milk" in "Milk 2.5% 1L".
        return min(PACK_SIZE_SCORE, 70 + round(24 * dice(core_w, core_a)))
    return min(MAX_FUZZY_SCORE, round(MAX_FUZZY_SCORE * dice(wanted, actual)))


class RuleBasedComparator:
    """Deterministic label matcher: exact, same product in another pack size, or token overlap."""

    def compare(self, description, lines, *, product_label=None) -> Comparison:
        if not lines:
            return Comparison(score=0, notes=("not found in cart",))

        wanted = [w for w in (product_label, *description.split(" OR ")) if w]
        best_idx, best = None, -1
        for idx, line in enumerate(lines):
            score = max(label_score(w, line.product_label) for w in wanted)
            if score > best:
                best_idx, best = idx, score

        if best < 50:
            return Comparison(score=best, notes=("no matching product in cart",))
        notes: tuple[str, ...] = ()
        if best < EXACT_SCORE:
            notes = (f'closest cart product: "{lines[best_idx].product_label}"',)
        return Comparison(score=best, line_index=best_idx, notes=notes)


_PROMPT = """You verify a grocery cart. Pick the cart line that fulfils the request.

REQUEST: {description}
PRODUCT THE AUTOMATION REPORTED ADDING: {product_label}

CART LINES:
{lines}

Score the label match only (ignore quantities):
- 95-100 same product
- 70-94 same product, different brand or pack size
- 50-69 questionable substitution
- 0-49 wrong product or missing

Respond with JSON: {{"index": <1-based line number or null>, "score": <0-100>, "notes": ["..."]}}"""


class OpenAIComparator:
    """Model-backed matcher. Any failure surfaces as :class:`ComparatorUnavailable`."""

    def __init__(self, *, api_key: str, model: str = "gpt-4o", client=None):
        if client is None:
            from openai import OpenAI

            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model

    def compare(self, description, lines, *, product_label=None) -> Comparison:
        if not lines:
            return Comparison(score=0, notes=("not found in cart",))

        listing = "\n".join(
            f"{i}. {ln.product_label} - {ln.quantity:g} {ln.unit}" for i, ln in enumerate(lines, 1)
        )
        prompt = _PROMPT.format(description=description, product_label=product_label or "(unknown)", lines=listing)
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": "You are a precise grocery cart verification assistant. Respond with JSON only."},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.3,
                response_format={"type": "json_object"},
            )
            data = json.loads(resp.choices[0].message.content or "")
        except Exception as exc:
            raise ComparatorUnavailable(f"OpenAI comparison failed: {exc}") from exc

        if not isinstance(data, dict):
            raise ComparatorUnavailable("OpenAI response is not a JSON object")

        score = clamp_score(data.get("score"))
        index = data.get("index")
        line_index = None
        if isinstance(index, int) and not isinstance(index, bool) and 1 <= index <= len(lines):
            line_index = index - 1
        elif index is not None:
            raise ComparatorUnavailable(f"OpenAI returned an invalid line index: {index!r}")

        notes = data.get("notes") or []
        if isinstance(notes, str):
            notes = [notes]
        return Comparison(score=score, line_index=line_index, notes=tuple(str(n) for n in notes))
