from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from .runner import RunResult


def _plain(obj):
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: _plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_plain(v) for v in obj]
    return obj


def to_dict(result: RunResult) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "score": result.score,
        "sites": [_plain(asdict(s)) for s in result.sites],
        "originalItems": [_plain(asdict(r)) for r in result.original_items],
        "addedItems": [_plain(asdict(r)) for r in result.added_items],
        "failedItems": [_plain(asdict(r)) for r in result.failed_items],
        "judgments": [_plain(asdict(j)) for j in result.judgments],
        "skipped": list(result.skipped),
    }


def write_json(result: RunResult, path: str = "artifacts/run_report.json") -> str:
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(to_dict(result), indent=2, ensure_ascii=False))
    return str(out)


def summary_text(result: RunResult) -> str:
    lines = [
        f"Items: {len(result.original_items)}  Added: {len(result.added_items)}  "
        f"Failed: {len(result.failed_items)}  Skipped: {len(result.skipped)}",
        "",
    ]
    for s in result.sites:
        tag = s.status.upper()
        extra = f"  score={s.score:.1f}" if s.score is not None else ""
        if s.error:
            extra += f"  error={s.error}"
        lines.append(f"  [{tag}] {s.site.value}: {s.added}/{s.requested} added{extra}")

    if result.added_items:
        lines.append("")
        lines.append("Added:")
        for r in result.added_items:
            lines.append(f"  • {r.original_request_label} → {r.product_label} (x{r.quantity_added})")

    if result.failed_items:
        lines.append("")
        lines.append("Failed:")
        for f in result.failed_items:
            lines.append(f"  • {f.identifier} [{f.reason.value}] {f.detail}")

    titles = {"success": "VERIFIED", "warning": "WARNINGS", "failed": "FAILED"}
    for status, title in titles.items():
        group = [j for j in result.judgments if j.status == status]
        if not group:
            continue
        lines.append("")
        lines.append(f"{title} ({len(group)}):")
        for j in group:
            shown = f' → "{j.product_label}"' if j.product_label else ""
            lines.append(f"  • {j.original_request_label}{shown}  {j.match_score}%")
            for note in j.notes:
                lines.append(f"      {note}")

    if result.score is not None:
        lines.append("")
        lines.append(f"Overall accuracy: {result.score:.1f}%")
    return "\n".join(lines)

