import json

from groceries_autocart.models import AddedRecord, CartRequest, FailedItem, FailureReason, Judgment, Site
from groceries_autocart.report import summary_text, to_dict, write_json
from groceries_autocart.runner import RunResult, SiteReport


def _result():
    return RunResult(
        original_items=[CartRequest.single(Site.BARBORA, query="milk"), CartRequest.single(Site.BARBORA, query="eggs")],
        added_items=[AddedRecord("milk", "Milk 1L", 1, 1, Site.BARBORA)],
        failed_items=[FailedItem("eggs", FailureReason.OUT_OF_STOCK, "OUT_OF_STOCK: Eggs", Site.BARBORA)],
        judgments=[
            Judgment("milk", "success", 1, 100, product_label="Milk 1L", quantity_added=1),
            Judgment("eggs", "failed", 1, 0, notes=("not added",)),
        ],
        sites=[SiteReport(Site.BARBORA, "verified", requested=2, added=1, failed=1, score=50.0)],
    )


def test_summary_text():
    text = summary_text(_result())
    assert "Items: 2  Added: 1  Failed: 1" in text
    assert "[VERIFIED] barbora: 1/2 added  score=50.0" in text
    assert "eggs [OutOfStock] OUT_OF_STOCK: Eggs" in text
    assert "Overall accuracy: 50.0%" in text


def test_summary_text_groups_judgments_by_status():
    text = summary_text(_result())
    assert text.index("VERIFIED (1):") < text.index("FAILED (1):")
    assert '  • milk → "Milk 1L"  100%' in text
    assert "  • eggs  0%" in text
    assert "      not added" in text
    assert "WARNINGS" not in text


def test_to_dict_is_json_friendly():
    data = to_dict(_result())
    assert data["originalItems"][0]["alternatives"][0] == {"kind": "query", "value": "milk"}
    assert data["failedItems"][0]["reason"] == "OutOfStock"
    assert data["judgments"][1]["notes"] == ["not added"]
    assert data["sites"][0]["site"] == "barbora"
    json.dumps(data)


def test_write_json(tmp_path):
    path = write_json(_result(), str(tmp_path / "out" / "report.json"))
    data = json.loads(open(path).read())
    assert data["score"] == 50.0
    assert len(data["judgments"]) == 2
