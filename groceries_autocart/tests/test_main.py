import json

import pytest

from groceries_autocart.main import VERSION, main


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ("AUTOCART_USE_OPENAI", "AUTOCART_VERIFY", "AUTOCART_HEADFUL", "AUTOCART_REPORT_PATH"):
        monkeypatch.delenv(key, raising=False)


def test_version(capsys):
    assert main(["--version"]) == 0
    assert capsys.readouterr().out.strip() == VERSION


def test_unreadable_items_exit_2(tmp_path):
    items = tmp_path / "items.json"
    items.write_text("not json")
    assert main(["run", str(items), "--jsonl"]) == 2


def test_wrongly_typed_rows_are_skipped_not_fatal(tmp_path, capsys):
    items = tmp_path / "items.json"
    items.write_text(json.dumps([{"site": "barbora", "url": 123}, {"site": "rimi", "alternatives": ["x"]}]))
    report = tmp_path / "report.json"

    assert main(["run", str(items), "--jsonl", "--report", str(report)]) == 0

    data = json.loads(report.read_text())
    assert data["originalItems"] == []
    levels = [json.loads(ln)["level"] for ln in capsys.readouterr().out.splitlines()]
    assert levels.count("warn") == 2
