import json
import threading

from fakes import FakeDriver, session_factory
from groceries_autocart.log import LogSink
from groceries_autocart.models import ActualCartLine, AddResult, CartRequest, Site
from groceries_autocart.runner import (
    ABORTED,
    CANCELLED,
    NOT_VERIFIED,
    UNVERIFIED,
    VERIFIED,
    RunOptions,
    Runner,
    group_by_site,
    load_requests,
)


def _runner(drivers, *, failing_sites=(), verify=True, cancel=None):
    return Runner(
        LogSink(echo=False),
        options=RunOptions(verify=verify),
        drivers=drivers,
        open_session=session_factory(failing_sites),
        cancel=cancel,
    )


def test_group_by_site_keeps_order():
    reqs = [
        CartRequest.single(Site.RIMI, query="a"),
        CartRequest.single(Site.BARBORA, query="b"),
        CartRequest.single(Site.RIMI, query="c"),
    ]
    groups = group_by_site(reqs)
    assert list(groups) == [Site.RIMI, Site.BARBORA]
    assert [r.label for r in groups[Site.RIMI]] == ["a", "c"]


def test_end_to_end_success():
    drivers = {
        Site.BARBORA: FakeDriver(
            Site.BARBORA,
            {"milk": AddResult("Milk 1L", 2)},
            cart=[ActualCartLine("Milk 1L", 2, "units")],
        )
    }
    result = _runner(drivers).run([CartRequest.single(Site.BARBORA, query="milk", quantity=2)])

    assert len(result.added_items) == 1
    assert result.failed_items == []
    assert len(result.judgments) == 1
    assert result.judgments[0].status == "success"
    assert result.judgments[0].match_score >= 95
    assert result.sites[0].status == VERIFIED
    assert result.score == result.judgments[0].match_score


def test_empty_snapshot_marks_site_unverified():
    drivers = {Site.RIMI: FakeDriver(Site.RIMI, {"milk": AddResult("Milk 1L", 1)})}
    result = _runner(drivers).run([CartRequest.single(Site.RIMI, query="milk")])

    assert result.judgments == []
    assert result.sites[0].status == UNVERIFIED
    assert result.unverified_sites == [Site.RIMI]
    assert len(result.added_items) == 1
    assert result.failed_items == []


def test_scrape_error_is_degraded_not_fatal():
    drivers = {Site.BARBORA: FakeDriver(Site.BARBORA, {"milk": AddResult("Milk", 1)}, scrape_error="selector timeout")}
    result = _runner(drivers).run([CartRequest.single(Site.BARBORA, query="milk")])
    assert result.sites[0].status == UNVERIFIED
    assert len(result.added_items) == 1


def test_session_failure_aborts_only_that_site():
    drivers = {
        Site.BARBORA: FakeDriver(Site.BARBORA, {"milk": AddResult("Milk", 1)}, cart=[ActualCartLine("Milk", 1)]),
        Site.RIMI: FakeDriver(Site.RIMI, {"bread": AddResult("Bread", 1)}),
    }
    reqs = [CartRequest.single(Site.RIMI, query="bread"), CartRequest.single(Site.BARBORA, query="milk")]
    result = _runner(drivers, failing_sites={Site.RIMI}).run(reqs)

    by_site = {s.site: s for s in result.sites}
    assert by_site[Site.RIMI].status == ABORTED
    assert "boom" in by_site[Site.RIMI].error
    assert by_site[Site.BARBORA].status == VERIFIED
    assert [r.product_label for r in result.added_items] == ["Milk"]
    assert drivers[Site.RIMI].calls == []


def test_login_failure_is_session_failure():
    drivers = {Site.BARBORA: FakeDriver(Site.BARBORA, {"milk": AddResult("Milk", 1)}, login_error="not logged in")}
    result = _runner(drivers).run([CartRequest.single(Site.BARBORA, query="milk")])
    assert result.sites[0].status == ABORTED
    assert drivers[Site.BARBORA].calls == []


def test_verification_disabled():
    drivers = {Site.BARBORA: FakeDriver(Site.BARBORA, {"milk": AddResult("Milk", 1)}, cart=[ActualCartLine("Milk", 1)])}
    result = _runner(drivers, verify=False).run([CartRequest.single(Site.BARBORA, query="milk")])
    assert result.judgments == []
    assert result.sites[0].status == NOT_VERIFIED


def test_partial_failure_still_reports_everything():
    drivers = {
        Site.BARBORA: FakeDriver(
            Site.BARBORA,
            {"milk": AddResult("Milk 1L", 1), "eggs": "OUT_OF_STOCK: Eggs"},
            cart=[ActualCartLine("Milk 1L", 1)],
        )
    }
    reqs = [CartRequest.single(Site.BARBORA, query="milk"), CartRequest.single(Site.BARBORA, query="eggs")]
    result = _runner(drivers).run(reqs)

    assert len(result.original_items) == 2
    assert len(result.added_items) == 1
    assert len(result.failed_items) == 1
    assert [j.status for j in result.judgments] == ["success", "failed"]


def test_cancelled_before_site_starts():
    cancel = threading.Event()
    cancel.set()
    drivers = {Site.BARBORA: FakeDriver(Site.BARBORA)}
    result = _runner(drivers, cancel=cancel).run([CartRequest.single(Site.BARBORA, query="milk")])
    assert result.sites[0].status == CANCELLED
    assert result.skipped == ["milk"]


def test_no_items():
    log = LogSink(echo=False)
    result = Runner(log, drivers={}, open_session=session_factory()).run([])
    assert result.sites == []
    assert log.messages("error") == ["No items provided"]


def test_load_requests_skips_invalid_rows(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps(
            {
                "items": [
                    {"site": "barbora", "query": "pienas", "qty": 2},
                    {"site": "maxima", "query": "x"},
                    {"site": "rimi"},
                    "junk",
                    {"site": "rimi", "alternatives": [{"type": "query", "value": "duona"}]},
                ]
            }
        )
    )
    log = LogSink(echo=False)
    reqs = load_requests(str(path), log)

    assert [r.label for r in reqs] == ["pienas", "duona"]
    assert len(log.messages("warn")) == 3


def test_load_requests_skips_wrongly_typed_rows(tmp_path):
    path = tmp_path / "items.json"
    path.write_text(
        json.dumps(
            [
                {"site": "barbora", "alternatives": ["milk"]},
                {"site": "barbora", "url": 123},
                {"site": "barbora", "query": "sviestas"},
            ]
        )
    )
    log = LogSink(echo=False)
    reqs = load_requests(str(path), log)

    assert [r.label for r in reqs] == ["sviestas"]
    assert len(log.messages("warn")) == 2


def test_site_without_driver_aborts_only_that_site():
    drivers = {Site.BARBORA: FakeDriver(Site.BARBORA, {"milk": AddResult("Milk", 1)}, cart=[ActualCartLine("Milk", 1)])}
    reqs = [CartRequest.single(Site.RIMI, query="duona"), CartRequest.single(Site.BARBORA, query="milk")]
    result = _runner(drivers).run(reqs)

    by_site = {s.site: s for s in result.sites}
    assert by_site[Site.RIMI].status == ABORTED
    assert "No driver registered" in by_site[Site.RIMI].error
    assert by_site[Site.BARBORA].status == VERIFIED
