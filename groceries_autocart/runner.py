from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Sequence

from .compare import Comparator
from .drivers.registry import get_driver
from .log import LogSink
from .models import ActualCartLine, AddedRecord, CartRequest, FailedItem, Judgment, Site
from .reconcile import Reconciler, display_judgments, overall_score
from .resolve import ResolutionEngine
from .session import DEFAULT_USERDATA_DIR, SessionError, SiteSession

# Site statuses in the run report.
VERIFIED = "verified"
UNVERIFIED = "unverified"
NOT_VERIFIED = "resolved"   # verification switched off
ABORTED = "aborted"
CANCELLED = "cancelled"


@dataclass(frozen=True)
class RunOptions:
    headful: bool = False
    verify: bool = True
    userdata_dir: str = DEFAULT_USERDATA_DIR


@dataclass
class SiteReport:
    site: Site
    status: str
    requested: int
    added: int = 0
    failed: int = 0
    score: float | None = None
    error: str | None = None


@dataclass
class RunResult:
    original_items: list[CartRequest] = field(default_factory=list)
    added_items: list[AddedRecord] = field(default_factory=list)
    failed_items: list[FailedItem] = field(default_factory=list)
    judgments: list[Judgment] = field(default_factory=list)
    sites: list[SiteReport] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def score(self) -> float | None:
        return overall_score(self.judgments)

    @property
    def unverified_sites(self) -> list[Site]:
        return [s.site for s in self.sites if s.status == UNVERIFIED]


def load_requests(path: str, log: LogSink) -> list[CartRequest]:
    """Read structured cart requests from a JSON file.

    Accepts a bare list or ``{"items": [...]}``. Rows that do not describe a
    valid request are logged and skipped.
    """
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    rows = data.get("items") if isinstance(data, dict) else data
    if not isinstance(rows, list):
        raise ValueError(f"{path}: expected a list of items")

    out: list[CartRequest] = []
    for idx, row in enumerate(rows, 1):
        if not isinstance(row, dict):
            log.warn(f"Item {idx}: not an object, skipping")
            continue
        try:
            out.append(CartRequest.from_dict(row))
        except ValueError as exc:
            log.warn(f"Item {idx}: {exc}, skipping")
    return out


def group_by_site(requests: Sequence[CartRequest]) -> dict[Site, list[CartRequest]]:
    groups: dict[Site, list[CartRequest]] = {}
    for req in requests:
        groups.setdefault(req.site, []).append(req)
    return groups


class Runner:
    """Drives one run: every site gets its own session, engine and output lists.

    Sites are processed one after the other. A site whose session cannot be
    started is reported as aborted; the remaining sites still run.
    """

    def __init__(
        self,
        log: LogSink,
        *,
        options: RunOptions | None = None,
        drivers: dict | None = None,
        open_session: Callable[..., object] = SiteSession,
        comparator: Comparator | None = None,
        cancel: threading.Event | None = None,
    ):
        self.log = log
        self.options = options or RunOptions()
        self.drivers = drivers
        self.open_session = open_session
        self.comparator = comparator
        self.cancel = cancel

    def run(self, requests: Sequence[CartRequest]) -> RunResult:
        result = RunResult(original_items=list(requests))
        if not requests:
            self.log.error("No items provided")
            return result

        groups = group_by_site(requests)
        self.log.info(f"Processing {len(requests)} item(s) across {len(groups)} site(s)")

        for site, reqs in groups.items():
            if self.cancel is not None and self.cancel.is_set():
                self.log.warn(f"[{site.value}] Run cancelled before start; skipping {len(reqs)} item(s)")
                result.skipped.extend(r.label for r in reqs)
                result.sites.append(SiteReport(site=site, status=CANCELLED, requested=len(reqs)))
                continue
            self._run_site(site, reqs, result)

        self.log.done("Ready for checkout")
        return result

    def _run_site(self, site: Site, reqs: list[CartRequest], result: RunResult) -> None:
        self.log.info(f"Processing {len(reqs)} item(s) for {site.value}...")
        report = SiteReport(site=site, status=NOT_VERIFIED, requested=len(reqs))
        result.sites.append(report)

        try:
            driver = get_driver(site, self.drivers)
        except RuntimeError as exc:
            report.status = ABORTED
            report.error = str(exc)
            self.log.error(f"Error processing {site.value}: {exc}")
            return

        try:
            with self.open_session(site, headful=self.options.headful, userdata_dir=self.options.userdata_dir) as session:
                self._login(driver, session, site)

                engine = ResolutionEngine(site, driver, self.log, cancel=self.cancel)
                outcome = engine.resolve(session, reqs)
                result.added_items.extend(outcome.added)
                result.failed_items.extend(outcome.failed)
                result.skipped.extend(outcome.skipped)
                report.added, report.failed = len(outcome.added), len(outcome.failed)
                self.log.info(f"Completed {site.value}: {report.added} added, {report.failed} failed")

                try:
                    driver.open_cart(session, self.log)
                except Exception as exc:
                    self.log.warn(f"[{site.value}] Could not open cart: {exc}")

                if not self.options.verify:
                    return

                lines = self._snapshot(driver, session, site)
                judgments = Reconciler(self.comparator, self.log).reconcile(reqs, outcome.added, outcome.failed, lines)
                if judgments:
                    report.status = VERIFIED
                    report.score = overall_score(judgments)
                    result.judgments.extend(judgments)
                    display_judgments(judgments, self.log)
                else:
                    report.status = UNVERIFIED
                    self.log.warn(f"[{site.value}] Cart not verified")
        except SessionError as exc:
            report.status = ABORTED
            report.error = str(exc)
            self.log.error(f"Error processing {site.value}: {exc}")

    def _login(self, driver, session, site: Site) -> None:
        try:
            driver.ensure_logged_in(session, self.log)
        except SessionError:
            raise
        except Exception as exc:
            raise SessionError(f"{site.value}: could not log in: {exc}") from exc

    def _snapshot(self, driver, session, site: Site) -> list[ActualCartLine]:
        try:
            return list(driver.snapshot(session, self.log))
        except Exception as exc:
            self.log.error(f"[{site.value}] Error scraping cart: {exc}")
            return []


def run_job(requests: Sequence[CartRequest], log: LogSink, **kwargs) -> RunResult:
    return Runner(log, **kwargs).run(requests)
