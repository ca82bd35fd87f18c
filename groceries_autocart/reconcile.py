from __future__ import annotations

import math
from collections import defaultdict, deque
from typing import Sequence

from .compare import Comparator, ComparatorUnavailable, RuleBasedComparator, clamp_score
from .log import LogSink
from .models import ActualCartLine, AddedRecord, CandidateKind, CartRequest, FailedItem, Judgment
from .quantity import convert, parse_amount, units_to_add

SUCCESS_MIN = 95
WARNING_MIN = 50

# Upper score bound by relative quantity divergence.
CLOSE_QTY_CAP = 94      # off by <= 15%
LOOSE_QTY_CAP = 69      # off by > 15% and < 50%
WRONG_QTY_CAP = 49      # off by >= 50%


def status_for(score: int) -> str:
    if score >= SUCCESS_MIN:
        return "success"
    if score >= WARNING_MIN:
        return "warning"
    return "failed"


def expected_quantity(units: int, product_label: str, line: ActualCartLine) -> float | None:
    """What ``units`` packs of ``product_label`` should show on the cart line, in the line's unit."""
    if line.unit == "units":
        return float(units)

    pack = parse_amount(product_label)
    if pack is not None and pack.unit != "units" and pack.value > 0:
        return convert(units * pack.value, pack.unit, line.unit)

    # Loose goods sold by weight or volume: the driver counts whole kg / l.
    if line.unit in ("kg", "l"):
        return float(units)
    return convert(float(units), "kg", line.unit)


def stated_amount(req: CartRequest) -> str | None:
    """The first query alternative that names an amount, e.g. ``"pienas 2L"``."""
    for cand in req.alternatives:
        if cand.kind is CandidateKind.QUERY and parse_amount(cand.value) is not None:
            return cand.value
    return None


def loose_amount(req: CartRequest, product_label: str, line: ActualCartLine) -> float | None:
    """The stated amount of loose goods weighed into a cart line, in the line's unit."""
    if line.unit == "units" or parse_amount(product_label) is not None:
        return None
    want = parse_amount(stated_amount(req))
    if want is None or want.value <= 0:
        return None
    return convert(want.value, want.unit, line.unit)


def requested_quantity(req: CartRequest, product_label: str, line: ActualCartLine) -> float | None:
    """What the request itself asks the cart line to show, in the line's unit."""
    loose = loose_amount(req, product_label, line)
    if loose is not None:
        return loose
    desired = stated_amount(req)
    return expected_quantity(units_to_add(desired, req.quantity, product_label), product_label, line)


def quantity_cap(expected: float, actual: float) -> int:
    if math.isclose(expected, actual, rel_tol=1e-9, abs_tol=1e-9):
        return 100
    if expected <= 0:
        return WRONG_QTY_CAP
    off = abs(actual - expected) / expected
    if off <= 0.15 + 1e-9:
        return CLOSE_QTY_CAP
    if off < 0.5:
        return LOOSE_QTY_CAP
    return WRONG_QTY_CAP


class Reconciler:
    """Checks the scraped cart against what was asked for and what drivers reported.

    Produces exactly one :class:`Judgment` per request, or nothing at all when
    the cart could not be read or the comparison backend is unavailable; the
    caller reports that site as unverified.
    """

    def __init__(self, comparator: Comparator | None = None, log: LogSink | None = None):
        self.comparator = comparator or RuleBasedComparator()
        self.log = log

    def reconcile(
        self,
        requests: Sequence[CartRequest],
        added: Sequence[AddedRecord],
        failed: Sequence[FailedItem],
        lines: Sequence[ActualCartLine],
    ) -> list[Judgment]:
        if not lines:
            self._warn("Cart snapshot is empty or unsupported; verification skipped")
            return []

        pending: dict[str, deque[AddedRecord]] = defaultdict(deque)
        for rec in added:
            pending[rec.original_request_label].append(rec)

        judgments: list[Judgment] = []
        try:
            for req in requests:
                queue = pending.get(req.label)
                if not queue:
                    judgments.append(
                        Judgment(
                            original_request_label=req.label,
                            status="failed",
                            quantity_requested=req.quantity,
                            match_score=0,
                            notes=("not added",),
                        )
                    )
                    continue
                judgments.append(self._judge(req, queue.popleft(), lines))
        except ComparatorUnavailable as exc:
            self._warn(f"Comparison unavailable, verification skipped: {exc}")
            return []

        return judgments

    def _judge(self, req: CartRequest, rec: AddedRecord, lines: Sequence[ActualCartLine]) -> Judgment:
        cmp = self.comparator.compare(req.description(), lines, product_label=rec.product_label)
        label = clamp_score(cmp.score)
        notes = list(cmp.notes)

        if rec.quantity_added != rec.quantity_requested:
            notes.append(f"driver reported {rec.quantity_added} added for {rec.quantity_requested} requested")

        idx = cmp.line_index
        if idx is not None and (isinstance(idx, bool) or not isinstance(idx, int) or not 0 <= idx < len(lines)):
            raise ComparatorUnavailable(f"comparator returned invalid cart line index {idx!r}")

        if idx is None or lines[idx].quantity <= 0:
            notes.append("absent from actual cart")
            return Judgment(
                original_request_label=req.label,
                status="failed",
                quantity_requested=req.quantity,
                match_score=min(label, WRONG_QTY_CAP),
                product_label=rec.product_label,
                quantity_added=0,
                notes=tuple(notes),
            )

        line = lines[idx]
        score = label
        mismatch = False
        # The cart must agree with both the request and the driver's own report.
        targets = [("requested", requested_quantity(req, rec.product_label, line))]
        if loose_amount(req, rec.product_label, line) is None:
            # A weighed line has no whole-unit count to check the report against.
            targets.append(("reported", expected_quantity(rec.quantity_added, rec.product_label, line)))
        for source, expected in targets:
            if expected is None:
                notes.append(f"cart quantity {line.quantity:g} {line.unit} not comparable with {source} amount")
                score = min(score, CLOSE_QTY_CAP)
                mismatch = True
                continue
            cap = quantity_cap(expected, line.quantity)
            if cap < 100:
                mismatch = True
                notes.append(f"{source} {expected:g} {line.unit} but cart has {line.quantity:g} {line.unit}")
            score = min(score, cap)

        status = status_for(score)
        if mismatch and label >= SUCCESS_MIN:
            # Right product, wrong amount: the line needs a manual fix, not a re-order.
            status = "warning"
            score = max(score, WARNING_MIN)

        return Judgment(
            original_request_label=req.label,
            status=status,
            quantity_requested=req.quantity,
            match_score=score,
            product_label=line.product_label,
            quantity_added=line.quantity,
            notes=tuple(notes),
        )

    def _warn(self, message: str) -> None:
        if self.log is not None:
            self.log.warn(message)


def reconcile(
    requests: Sequence[CartRequest],
    added: Sequence[AddedRecord],
    failed: Sequence[FailedItem],
    lines: Sequence[ActualCartLine],
    *,
    comparator: Comparator | None = None,
    log: LogSink | None = None,
) -> list[Judgment]:
    return Reconciler(comparator, log).reconcile(requests, added, failed, lines)


def overall_score(judgments: Sequence[Judgment]) -> float | None:
    if not judgments:
        return None
    return sum(j.match_score for j in judgments) / len(judgments)


def display_judgments(judgments: list[Judgment], log: LogSink) -> None:
    """Write the verification report to the run log, grouped by status."""
    if not judgments:
        log.warn("No judgments to display")
        return

    emit = {"success": log.info, "warning": log.warn, "failed": log.error}
    titles = {"success": "VERIFIED", "warning": "WARNINGS", "failed": "FAILED"}

    log.info("CART VERIFICATION REPORT:")
    for status in ("success", "warning", "failed"):
        group = [j for j in judgments if j.status == status]
        if not group:
            continue
        out = emit[status]
        out(f"{titles[status]} ({len(group)}):")
        for j in group:
            out(f"  • {j.original_request_label}")
            if j.product_label:
                out(f'    Added: "{j.product_label}" ({j.quantity_added or 0:g}x)')
            out(f"    Match: {j.match_score}%")
            for note in j.notes:
                out(f"    Note: {note}")

    log.info(f"Overall accuracy: {overall_score(judgments):.1f}%")
