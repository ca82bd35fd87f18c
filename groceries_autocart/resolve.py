from __future__ import annotations

import threading
from typing import Sequence

from .log import LogSink
from .models import AddOutcome, AddedRecord, CandidateKind, CartRequest, FailedItem, Site, SiteOutcome


class ResolutionEngine:
    """Walks each request's candidates in order against one site session.

    The engine owns the :class:`SiteOutcome` it returns; nothing else writes
    to it while a batch runs. Requests are handled strictly one after the
    other and records are appended in request order.
    """

    def __init__(self, site: Site, driver, log: LogSink, *, cancel: threading.Event | None = None):
        self.site = site
        self.driver = driver
        self.log = log
        self.cancel = cancel

    def resolve(self, session, requests: Sequence[CartRequest]) -> SiteOutcome:
        out = SiteOutcome(site=self.site)
        total = len(requests)

        for idx, req in enumerate(requests):
            if self.cancel is not None and self.cancel.is_set():
                # Only honoured between requests, never mid-candidate.
                self.log.warn(f"[{self.site.value}] Run cancelled; skipping {total - idx} remaining item(s)")
                out.skipped.extend(r.label for r in requests[idx:])
                break

            self.log.info(f"[{idx + 1}/{total}] {req.label} (qty={req.quantity})")
            self._resolve_one(session, req, out)

        return out

    def _resolve_one(self, session, req: CartRequest, out: SiteOutcome) -> None:
        n = len(req.alternatives)
        last: AddOutcome | None = None

        for alt_idx, cand in enumerate(req.alternatives):
            self.log.info(f"  trying alternative {alt_idx + 1}/{n}: {cand.preview()}")
            last = self._attempt(session, cand.kind, cand.value, req.quantity)

            if last.success:
                self.log.info(f"  added: {last.product_label} x{last.units_added}")
                out.added.append(
                    AddedRecord(
                        original_request_label=req.label,
                        product_label=last.product_label,
                        quantity_requested=req.quantity,
                        quantity_added=last.units_added,
                        site=self.site,
                    )
                )
                return

            self.log.warn(f"  alternative {alt_idx + 1} failed ({last.reason.value}): {last.detail}")

        self.log.error(f"  all {n} alternative(s) failed for {req.label}")
        out.failed.append(
            FailedItem(
                identifier=req.label,
                reason=last.reason,
                detail=last.detail,
                site=self.site,
            )
        )

    def _attempt(self, session, kind: CandidateKind, value: str, quantity: int) -> AddOutcome:
        try:
            if kind is CandidateKind.URL:
                result = self.driver.add_by_url(session, value, quantity, self.log)
            else:
                result = self.driver.add_by_query(session, value, quantity, self.log)
        except Exception as exc:
            return AddOutcome.failed(str(exc) or exc.__class__.__name__)
        return AddOutcome.ok(result)


def resolve(session, requests: Sequence[CartRequest], *, driver, log: LogSink, cancel: threading.Event | None = None) -> SiteOutcome:
    site = requests[0].site if requests else driver.site
    if any(r.site is not site for r in requests):
        raise ValueError("All requests in a batch must target the same site")
    return ResolutionEngine(site, driver, log, cancel=cancel).resolve(session, requests)
