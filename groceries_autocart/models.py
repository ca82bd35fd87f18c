from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Site(str, Enum):
    BARBORA = "barbora"
    RIMI = "rimi"


class CandidateKind(str, Enum):
    URL = "url"
    QUERY = "query"


class FailureReason(str, Enum):
    OUT_OF_STOCK = "OutOfStock"
    NOT_FOUND = "NotFound"
    ERROR = "Error"


def classify_failure(detail: str) -> FailureReason:
    d = detail.lower()
    if "out_of_stock" in d:
        return FailureReason.OUT_OF_STOCK
    if "not_found" in d or "not found" in d:
        return FailureReason.NOT_FOUND
    return FailureReason.ERROR


@dataclass(frozen=True)
class Candidate:
    kind: CandidateKind
    value: str

    def preview(self, width: int = 60) -> str:
        if self.kind is CandidateKind.URL and len(self.value) > width:
            return self.value[:width] + "..."
        return self.value


def _text(row: dict, key: str) -> str:
    value = row.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {value!r}")
    return value.strip()


@dataclass(frozen=True)
class CartRequest:
    """A logical grocery ask for one site.

    ``alternatives`` is never empty. Build from a bare url/query with
    :meth:`single` or from a run payload with :meth:`from_dict`.
    """

    site: Site
    alternatives: tuple[Candidate, ...]
    quantity: int = 1

    def __post_init__(self) -> None:
        if not self.alternatives:
            raise ValueError("CartRequest needs at least one candidate")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int) or self.quantity < 1:
            raise ValueError(f"quantity must be an integer >= 1, got {self.quantity!r}")
        # Lists are accepted for convenience but stored as a tuple.
        object.__setattr__(self, "alternatives", tuple(self.alternatives))

    @classmethod
    def single(cls, site: Site, *, url: str | None = None, query: str | None = None, quantity: int = 1) -> "CartRequest":
        if url:
            return cls(site=site, alternatives=(Candidate(CandidateKind.URL, url),), quantity=quantity)
        if query:
            return cls(site=site, alternatives=(Candidate(CandidateKind.QUERY, query),), quantity=quantity)
        raise ValueError("CartRequest.single needs a url or a query")

    @classmethod
    def from_dict(cls, row: dict) -> "CartRequest":
        try:
            site = Site(str(row.get("site", "")).strip().lower())
        except ValueError:
            raise ValueError(f"Unsupported site: {row.get('site')!r}") from None

        qty = row.get("qty", row.get("quantity", 1))
        if qty is None:
            qty = 1
        if isinstance(qty, float) and qty.is_integer():
            qty = int(qty)

        raw_alts = row.get("alternatives") or []
        if not isinstance(raw_alts, list):
            raise ValueError(f"alternatives must be a list, got {type(raw_alts).__name__}")

        alts: list[Candidate] = []
        for alt in raw_alts:
            if not isinstance(alt, dict):
                raise ValueError(f"Alternative must be an object, got {alt!r}")
            kind = alt.get("type") or alt.get("kind")
            value = _text(alt, "value")
            if not value:
                continue
            try:
                alts.append(Candidate(CandidateKind(kind), value))
            except ValueError:
                raise ValueError(f"Unknown candidate type: {kind!r}") from None

        if alts:
            return cls(site=site, alternatives=tuple(alts), quantity=qty)

        url = _text(row, "url") or None
        query = _text(row, "query") or None
        if not url and not query:
            raise ValueError("Item has no url, query or alternatives")
        return cls.single(site, url=url, query=query, quantity=qty)

    @property
    def label(self) -> str:
        """Stable user-facing identity: the first candidate's value."""
        return self.alternatives[0].value

    def description(self) -> str:
        return " OR ".join(c.value for c in self.alternatives)


@dataclass(frozen=True)
class AddResult:
    """What a Site Driver reports after a successful add."""

    product_label: str
    units_added: int


@dataclass(frozen=True)
class AddOutcome:
    success: bool
    product_label: str | None = None
    units_added: int | None = None
    reason: FailureReason | None = None
    detail: str | None = None

    @classmethod
    def ok(cls, result: AddResult) -> "AddOutcome":
        return cls(success=True, product_label=result.product_label, units_added=result.units_added)

    @classmethod
    def failed(cls, detail: str) -> "AddOutcome":
        return cls(success=False, reason=classify_failure(detail), detail=detail)


@dataclass(frozen=True)
class AddedRecord:
    original_request_label: str
    product_label: str
    quantity_requested: int
    quantity_added: int
    site: Site


@dataclass(frozen=True)
class FailedItem:
    # Identity of the first candidate; reason/detail of the last one tried.
    identifier: str
    reason: FailureReason
    detail: str
    site: Site


CART_UNITS = ("units", "kg", "g", "l", "ml")


@dataclass(frozen=True)
class ActualCartLine:
    product_label: str
    quantity: float
    unit: str = "units"
    price: str | None = None

    def __post_init__(self) -> None:
        if self.unit not in CART_UNITS:
            raise ValueError(f"Unknown cart unit: {self.unit!r}")


@dataclass(frozen=True)
class Judgment:
    original_request_label: str
    status: str  # success, warning, failed
    quantity_requested: int
    match_score: int
    product_label: str | None = None
    quantity_added: float | None = None
    notes: tuple[str, ...] = ()


@dataclass
class SiteOutcome:
    """Per-site accumulator, owned by one Resolution Engine run."""

    site: Site
    added: list[AddedRecord] = field(default_factory=list)
    failed: list[FailedItem] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
