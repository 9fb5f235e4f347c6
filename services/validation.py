"""Export validation for filled manuals.

Compares the original template with an exported copy:
1. Every package entry other than word/document.xml is byte-identical
2. Paragraph, table, row and cell counts are unchanged
3. Each cell whose text changed is listed (expected edits show up here)
"""
from __future__ import annotations

import zipfile
from collections import Counter
from dataclasses import asdict, dataclass, field
from io import BytesIO
from typing import Dict, List, Optional, Tuple

from services.manual_engine.errors import MalformedDocument
from services.manual_engine.package import DOCUMENT_PART, load_document_root
from services.manual_engine.walker import (
    P,
    TBL,
    cell_text,
    iter_row_cells,
    iter_table_rows,
    paragraph_text,
)


@dataclass
class ValidationIssue:
    """A single validation issue found during processing."""
    stage: str  # "package", "structure", "content"
    severity: str  # "error", "warning", "info"
    category: str  # "part_changed", "part_missing", "structure", "cell_changed", "extra_text"
    message: str
    details: Optional[Dict] = None


@dataclass
class StageSnapshot:
    """Snapshot of the body part at a particular stage."""
    stage: str
    paragraph_count: int
    table_count: int
    row_count: int
    cell_count: int
    # non-empty paragraph text -> occurrences
    paragraphs: Counter = field(default_factory=Counter)
    # (table, row, column) -> cell text
    cells: Dict[Tuple[int, int, int], str] = field(default_factory=dict)

    def counts(self) -> Dict[str, int]:
        return {
            "paragraph_count": self.paragraph_count,
            "table_count": self.table_count,
            "row_count": self.row_count,
            "cell_count": self.cell_count,
        }


@dataclass
class ValidationReport:
    """Complete validation report for an export."""
    document_id: str
    stages: List[StageSnapshot] = field(default_factory=list)
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(i.severity == "error" for i in self.issues)

    @property
    def has_warnings(self) -> bool:
        return any(i.severity == "warning" for i in self.issues)

    @property
    def changed_cells(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.category == "cell_changed"]

    def add_issue(self, stage: str, severity: str, category: str, message: str, details: Dict = None):
        self.issues.append(ValidationIssue(stage, severity, category, message, details))

    def to_dict(self) -> Dict:
        return {
            "document_id": self.document_id,
            "has_errors": self.has_errors,
            "has_warnings": self.has_warnings,
            "stages": [{"stage": s.stage, **s.counts()} for s in self.stages],
            "issues": [asdict(i) for i in self.issues],
        }


def snapshot_docx(data: bytes, stage: str) -> StageSnapshot:
    """Count the body structure and collect its text, straight from the XML."""
    _, body = load_document_root(data)

    paragraphs: Counter = Counter()
    paragraph_count = 0
    for p in body.iter(P):
        paragraph_count += 1
        text = paragraph_text(p).strip()
        if text:
            paragraphs[text] += 1

    cells: Dict[Tuple[int, int, int], str] = {}
    table_count = row_count = 0
    for t_idx, tbl in enumerate(body.iter(TBL)):
        table_count += 1
        for r_idx, tr in enumerate(iter_table_rows(tbl)):
            row_count += 1
            for c_idx, tc in enumerate(iter_row_cells(tr)):
                cells[(t_idx, r_idx, c_idx)] = cell_text(tc)

    return StageSnapshot(
        stage=stage,
        paragraph_count=paragraph_count,
        table_count=table_count,
        row_count=row_count,
        cell_count=len(cells),
        paragraphs=paragraphs,
        cells=cells,
    )


def compare_parts(original: bytes, exported: bytes, report: ValidationReport):
    """Every entry but the body part must come through untouched."""
    try:
        with zipfile.ZipFile(BytesIO(original)) as zin, zipfile.ZipFile(BytesIO(exported)) as zout:
            before = {name: zin.read(name) for name in zin.namelist()}
            after = {name: zout.read(name) for name in zout.namelist()}
    except zipfile.BadZipFile as exc:
        raise MalformedDocument("Invalid DOCX: not a ZIP package") from exc

    for name, content in before.items():
        if name == DOCUMENT_PART:
            continue
        if name not in after:
            report.add_issue("package", "error", "part_missing", f"Entry removed: {name}", {"part": name})
        elif after[name] != content:
            report.add_issue("package", "error", "part_changed", f"Entry modified: {name}", {"part": name})

    for name in after.keys() - before.keys():
        report.add_issue("package", "error", "part_added", f"Entry added: {name}", {"part": name})

    if list(before) != [n for n in after if n in before]:
        report.add_issue("package", "warning", "part_order", "Package entry order changed")


def compare_snapshots(before: StageSnapshot, after: StageSnapshot, report: ValidationReport):
    """Structure must match; changed cells are reported one by one."""
    stage = f"{before.stage} → {after.stage}"

    before_counts, after_counts = before.counts(), after.counts()
    for name, b in before_counts.items():
        a = after_counts[name]
        if b != a:
            label = name.split("_")[0].capitalize()
            report.add_issue(
                stage, "error", "structure",
                f"{label} count changed: {b} → {a} (diff: {a - b:+d})",
                {"before": b, "after": a},
            )

    for pos, text in before.cells.items():
        new_text = after.cells.get(pos)
        if new_text is None or new_text == text:
            continue
        report.add_issue(
            stage, "info", "cell_changed",
            f"Cell {pos} changed",
            {"table": pos[0], "row": pos[1], "cell": pos[2], "before": text, "after": new_text},
        )

    # Text outside tables should never change
    table_text = set(before.cells.values()) | set(after.cells.values())
    extra = after.paragraphs - before.paragraphs
    outside = {t: n for t, n in extra.items() if not any(t in cell for cell in table_text)}
    if outside:
        report.add_issue(
            stage, "warning", "extra_text",
            f"{sum(outside.values())} paragraph text element(s) changed outside tables",
            {"samples": dict(Counter(outside).most_common(5))},
        )


def validate_export(original: bytes, exported: bytes, document_id: str = "") -> ValidationReport:
    """Validate an exported manual against its template."""
    report = ValidationReport(document_id=document_id)
    compare_parts(original, exported, report)

    before = snapshot_docx(original, "template")
    after = snapshot_docx(exported, "export")
    report.stages.extend((before, after))
    compare_snapshots(before, after, report)
    return report
