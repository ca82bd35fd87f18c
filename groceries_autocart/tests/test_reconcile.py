import pytest

from groceries_autocart.compare import ComparatorUnavailable, Comparison
from groceries_autocart.log import LogSink
from groceries_autocart.models import (
    ActualCartLine,
    AddedRecord,
    CartRequest,
    FailedItem,
    FailureReason,
    Site,
)
from groceries_autocart.reconcile import (
    display_judgments,
    expected_quantity,
    overall_score,
    quantity_cap,
    reconcile,
    status_for,
)


def _req(query, qty=1):
    return CartRequest.single(Site.BARBORA, query=query, quantity=qty)


def _added(label, product, requested=1, added=None):
    return AddedRecord(
        original_request_label=label,
        product_label=product,
        quantity_requested=requested,
        quantity_added=requested if added is None else added,
        site=Site.BARBORA,
    )


def _line(label, qty=1, unit="units"):
    return ActualCartLine(product_label=label, quantity=qty, unit=unit)


def test_status_bands():
    assert status_for(100) == "success"
    assert status_for(95) == "success"
    assert status_for(94) == "warning"
    assert status_for(50) == "warning"
    assert status_for(49) == "failed"


def test_quantity_cap_bands():
    assert quantity_cap(2, 2) == 100
    assert quantity_cap(10, 9) == 94
    assert quantity_cap(10, 7) == 69
    assert quantity_cap(10, 5) == 49
    assert quantity_cap(2, 4) == 49


def test_exact_match_is_success():
    j = reconcile([_req("milk", 2)], [_added("milk", "Milk 1L", 2)], [], [_line("Milk 1L", 2)])
    assert len(j) == 1
    assert j[0].status == "success"
    assert j[0].match_score >= 95
    assert j[0].product_label == "Milk 1L"
    assert j[0].quantity_added == 2


def test_quantity_mismatch_downgrades_exact_label_to_warning():
    j = reconcile([_req("milk", 2)], [_added("milk", "Milk 1L", 2)], [], [_line("Milk 1L", 1)])
    assert j[0].status == "warning"
    assert 50 <= j[0].match_score < 95
    assert any("cart has 1" in n for n in j[0].notes)


def test_weighted_item_discrepancy_is_never_success():
    j = reconcile([_req("potatoes", 4)], [_added("potatoes", "Potatoes 1kg", 4, added=2)], [], [_line("Potatoes 1kg", 1)])
    assert j[0].status in ("warning", "failed")
    assert any("driver reported 2 added for 4 requested" == n for n in j[0].notes)


def test_small_quantity_drift_is_warning():
    j = reconcile([_req("apples", 10)], [_added("apples", "Apples", 10)], [], [_line("Apples Gala", 9)])
    assert j[0].status == "warning"
    assert 70 <= j[0].match_score <= 94


def test_weight_line_compared_on_common_scale():
    rec = _added("sugar", "Sugar 500g", 4)
    assert expected_quantity(rec.quantity_added, rec.product_label, _line("Sugar 500g", 2, "kg")) == 2.0
    j = reconcile([_req("sugar", 4)], [rec], [], [_line("Sugar 500g", 2, "kg")])
    assert j[0].status == "success"


def test_short_delivery_is_not_success_even_when_reported_honestly():
    j = reconcile([_req("milk", 3)], [_added("milk", "Milk 1L", 3, added=1)], [], [_line("Milk 1L", 1)])
    assert j[0].status == "warning"
    assert j[0].match_score < 95
    assert "requested 3 units but cart has 1 units" in j[0].notes


def test_stated_amount_sets_the_target():
    req = _req("sugar 2kg")
    assert reconcile([req], [_added("sugar 2kg", "Sugar 500g", 1, added=4)], [], [_line("Sugar 500g", 4)])[0].status == "success"

    j = reconcile([req], [_added("sugar 2kg", "Sugar 500g", 1, added=2)], [], [_line("Sugar 500g", 2)])
    assert j[0].status == "warning"
    assert "requested 4 units but cart has 2 units" in j[0].notes


def test_loose_goods_compared_by_weight():
    req = _req("bulvės 2kg")
    j = reconcile([req], [_added("bulvės 2kg", "Bulvės", 1, added=2)], [], [_line("Bulvės", 2, "kg")])
    assert j[0].status == "success"

    j = reconcile([req], [_added("bulvės 2kg", "Bulvės", 1, added=2)], [], [_line("Bulvės", 1.5, "kg")])
    assert j[0].status == "warning"


def test_not_added_request_is_failed():
    failed = [FailedItem("bread", FailureReason.NOT_FOUND, "NOT_FOUND: bread", Site.BARBORA)]
    j = reconcile([_req("milk"), _req("bread")], [_added("milk", "Milk 1L")], failed, [_line("Milk 1L")])
    assert [x.original_request_label for x in j] == ["milk", "bread"]
    assert j[1].status == "failed"
    assert j[1].match_score == 0
    assert j[1].notes == ("not added",)


def test_absent_from_cart_is_failed():
    j = reconcile([_req("bananas")], [_added("bananas", "Bananas 1kg")], [], [_line("Milk 1L")])
    assert j[0].status == "failed"
    assert j[0].match_score < 50


def test_duplicate_labels_match_in_order():
    reqs = [_req("milk"), _req("milk", 2)]
    added = [_added("milk", "Milk 1L", 1), _added("milk", "Milk 2L", 2)]
    j = reconcile(reqs, added, [], [_line("Milk 1L", 1), _line("Milk 2L", 2)])
    assert len(j) == 2
    assert [x.quantity_requested for x in j] == [1, 2]
    assert all(x.status == "success" for x in j)


def test_empty_cart_is_unverified_not_failed():
    log = LogSink(echo=False)
    j = reconcile([_req("milk")], [_added("milk", "Milk 1L")], [], [], log=log)
    assert j == []
    assert log.messages("warn")


class _Down:
    def compare(self, description, lines, *, product_label=None):
        raise ComparatorUnavailable("offline")


class _Wild:
    def compare(self, description, lines, *, product_label=None):
        return Comparison(score=250, line_index=0, notes=("looks right",))


def test_unavailable_comparator_gives_no_judgments():
    j = reconcile([_req("milk")], [_added("milk", "Milk 1L")], [], [_line("Milk 1L")], comparator=_Down())
    assert j == []


class _PointsAt:
    def __init__(self, index):
        self.index = index

    def compare(self, description, lines, *, product_label=None):
        return Comparison(score=100, line_index=self.index)


@pytest.mark.parametrize("index", [5, -1, "0"])
def test_bad_line_index_means_unverified(index):
    log = LogSink(echo=False)
    j = reconcile([_req("milk")], [_added("milk", "Milk 1L")], [], [_line("Milk 1L")], comparator=_PointsAt(index), log=log)
    assert j == []
    assert any("invalid cart line index" in m for m in log.messages("warn"))


def test_backend_score_is_clamped():
    j = reconcile([_req("milk")], [_added("milk", "Milk 1L")], [], [_line("Milk 1L")], comparator=_Wild())
    assert j[0].match_score == 100
    assert j[0].status == "success"


def test_overall_score():
    j = reconcile(
        [_req("milk"), _req("bread")],
        [_added("milk", "Milk 1L")],
        [],
        [_line("Milk 1L")],
    )
    assert overall_score(j) == 50.0
    assert overall_score([]) is None


def test_display_judgments_groups_by_status():
    log = LogSink(echo=False)
    j = reconcile([_req("milk"), _req("bread")], [_added("milk", "Milk 1L")], [], [_line("Milk 1L")])
    display_judgments(j, log)
    assert "VERIFIED (1):" in log.messages("info")
    assert "FAILED (1):" in log.messages("error")
    assert log.messages()[-1] == "Overall accuracy: 50.0%"
