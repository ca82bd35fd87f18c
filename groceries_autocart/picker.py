"""Search planning and product choice for query-based adds.

The rule-based picker is always available. The OpenAI picker rewrites a
query into several search terms and chooses among the result cards; when the
backend fails, drivers fall back to the rules.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol, Sequence

from .log import LogSink
from .match import pick_best, without_pack_size
from .quantity import parse_amount


class PickerUnavailable(RuntimeError):
    """The picker backend could not produce a usable answer."""


@dataclass(frozen=True)
class SearchPlan:
    product_name: str
    variations: tuple[str, ...]  # tried in order until a search returns products
    desired: str | None = None   # amount stated in the query, e.g. "2kg"


@dataclass(frozen=True)
class Pick:
    index: int | None  # None: no listed product fits the query
    reasoning: str = ""
    confidence: float | None = None


class ProductPicker(Protocol):
    def plan(self, query: str, log: LogSink) -> SearchPlan: ...

    def pick(self, query: str, titles: Sequence[str], log: LogSink, *, quantity: int = 1) -> Pick: ...


def _dedupe(terms) -> tuple[str, ...]:
    seen: set[str] = set()
    out: list[str] = []
    for term in terms:
        term = " ".join(term.split())
        if term and term.lower() not in seen:
            seen.add(term.lower())
            out.append(term)
    return tuple(out)


def search_plan(query: str) -> SearchPlan:
    """The query as typed, then without its amount: ``"apelsinai 2kg"`` also searches ``"apelsinai"``."""
    amount = parse_amount(query)
    bare = without_pack_size(query)
    return SearchPlan(
        product_name=bare or query,
        variations=_dedupe([query, bare]),
        desired=f"{amount.value:g}{amount.unit}" if amount else None,
    )


class RuleBasedPicker:
    def plan(self, query: str, log: LogSink) -> SearchPlan:
        return search_plan(query)

    def pick(self, query: str, titles: Sequence[str], log: LogSink, *, quantity: int = 1) -> Pick:
        return Pick(index=pick_best(query, titles), reasoning="token overlap with the query")


_PLAN_PROMPT = """You help shop on Lithuanian grocery sites (Barbora, Rimi).

Parse this grocery query: "{query}"

Return JSON with:
- "productName": the item without quantity or weight
- "desiredQuantity": the amount if stated (e.g. "2kg", "10 vnt", "1L"), else null
- "searchVariations": 3-5 search terms likely to find the product, Lithuanian first

Example for "apelsinai 2kg":
{{"productName": "apelsinai", "desiredQuantity": "2kg", "searchVariations": ["apelsinai", "oranges", "apelsinai 2kg"]}}"""

_PICK_PROMPT = """You are a grocery shopping assistant for Lithuanian stores.

USER QUERY: "{query}"{quantity_note}

PRODUCTS:
{products}

Select the product that best matches the query. Size or type variants of the
same food count as the same product ("apelsinai" = "dideli apelsinai").
Prefer a standard, reasonably priced option. Use -1 if nothing fits.

Respond with JSON: {{"selectedIndex": <0-{last} or -1>, "reasoning": "<1-2 sentences>", "confidence": <0.0-1.0>}}"""


class OpenAIPicker:
    """Model-backed search planning and product choice."""

    def __init__(self, *, api_key: str, model: str = "gpt-4o", plan_model: str = "gpt-4o-mini", client=None):
        if client is None:
            from openai import OpenAI

            client = OpenAI(api_key=api_key)
        self.client = client
        self.model = model
        self.plan_model = plan_model

    def _ask(self, model: str, system: str, prompt: str, temperature: float) -> dict:
        resp = self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            response_format={"type": "json_object"},
        )
        data = json.loads(resp.choices[0].message.content or "")
        if not isinstance(data, dict):
            raise ValueError("response is not a JSON object")
        return data

    def plan(self, query: str, log: LogSink) -> SearchPlan:
        fallback = search_plan(query)
        try:
            data = self._ask(
                self.plan_model,
                "You parse grocery queries. Respond only with JSON.",
                _PLAN_PROMPT.format(query=query),
                0,
            )
        except Exception as exc:
            log.warn(f"Query parsing failed, searching as typed: {exc}")
            return fallback

        name = data.get("productName")
        variations = data.get("searchVariations")
        if not isinstance(name, str) or not name.strip() or not isinstance(variations, list):
            log.warn("Query parsing returned an unexpected shape, searching as typed")
            return fallback

        desired = data.get("desiredQuantity")
        terms = [v for v in variations if isinstance(v, str)]
        plan = SearchPlan(
            product_name=name.strip(),
            # The literal query stays in the list so a poor rewrite never hides a direct hit.
            variations=_dedupe([*terms, query]),
            desired=desired if isinstance(desired, str) and desired.strip() else fallback.desired,
        )
        log.info(f'Parsed query: product="{plan.product_name}", qty="{plan.desired or "any"}"')
        return plan

    def pick(self, query: str, titles: Sequence[str], log: LogSink, *, quantity: int = 1) -> Pick:
        if not titles:
            return Pick(index=None, reasoning="no products")

        note = f"\nThe user wants {quantity} of this item." if quantity > 1 else ""
        prompt = _PICK_PROMPT.format(
            query=query,
            quantity_note=note,
            products="\n".join(f"{i}. {t}" for i, t in enumerate(titles)),
            last=len(titles) - 1,
        )
        log.info(f"Asking {self.model} to choose among {len(titles)} products...")
        try:
            data = self._ask(self.model, "You are a helpful grocery shopping assistant. Respond only with valid JSON.", prompt, 0.1)
        except Exception as exc:
            raise PickerUnavailable(f"OpenAI product choice failed: {exc}") from exc

        index = data.get("selectedIndex")
        if isinstance(index, bool) or not isinstance(index, int):
            raise PickerUnavailable(f"OpenAI returned a non-integer index: {index!r}")
        reasoning = str(data.get("reasoning") or "")
        confidence = data.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            confidence = None

        if index == -1:
            log.warn(f"No suitable product: {reasoning}")
            return Pick(index=None, reasoning=reasoning, confidence=confidence)
        if not 0 <= index < len(titles):
            raise PickerUnavailable(f"OpenAI returned an out-of-range index: {index}")

        log.info(f'Chose "{titles[index]}": {reasoning}')
        return Pick(index=index, reasoning=reasoning, confidence=confidence)


def choose(picker: ProductPicker, query: str, titles: Sequence[str], log: LogSink, *, quantity: int = 1) -> int | None:
    """Index of the card to add, or None when the picker rejects every card."""
    try:
        return picker.pick(query, titles, log, quantity=quantity).index
    except PickerUnavailable as exc:
        log.warn(f"{exc}; falling back to token matching")
        return RuleBasedPicker().pick(query, titles, log, quantity=quantity).index
