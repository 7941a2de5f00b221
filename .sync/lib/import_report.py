#!/usr/bin/env python3
"""
Run report for Linear imports.

Accumulates created/updated/skipped records while the importer walks the
tree and renders them as text or JSON.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, field
from datetime import datetime
from typing import Dict, Any, List, Optional
import json


CREATE = 'create'
UPDATE = 'update'
SKIP = 'skip'


@dataclass
class ReportRecord:
    """Outcome for one desired issue."""
    action: str  # 'create' | 'update' | 'skip'
    title: str
    identifier: str
    issue_id: str
    url: Optional[str] = None
    parent_identifier: Optional[str] = None
    depth: int = 0
    reparented: bool = False
    fields: List[str] = field(default_factory=list)  # input keys sent to Linear
    dry_run: bool = False


@dataclass
class ImportReport:
    """Aggregate result of an import run."""
    team: str
    dry_run: bool = False
    update: bool = False
    project: Optional[str] = None
    source: Optional[str] = None
    records: List[ReportRecord] = field(default_factory=list)
    created_labels: List[str] = field(default_factory=list)
    pending_labels: List[str] = field(default_factory=list)
    started_at: str = field(default_factory=lambda: datetime.now().isoformat())
    duration_seconds: float = 0.0

    def add(self, record: ReportRecord) -> None:
        self.records.append(record)

    def _by_action(self, action: str) -> List[ReportRecord]:
        return [r for r in self.records if r.action == action]

    @property
    def created(self) -> List[ReportRecord]:
        return self._by_action(CREATE)

    @property
    def updated(self) -> List[ReportRecord]:
        return self._by_action(UPDATE)

    @property
    def skipped(self) -> List[ReportRecord]:
        return self._by_action(SKIP)

    def summary(self) -> Dict[str, int]:
        return {
            'total': len(self.records),
            'created': len(self.created),
            'updated': len(self.updated),
            'skipped': len(self.skipped),
            'reparented': sum(1 for r in self.records if r.reparented),
            'labels_created': len(self.created_labels),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.started_at,
            'team': self.team,
            'project': self.project,
            'source': self.source,
            'dry_run': self.dry_run,
            'update': self.update,
            'duration_seconds': round(self.duration_seconds, 3),
            'summary': self.summary(),
            'created': [asdict(r) for r in self.created],
            'updated': [asdict(r) for r in self.updated],
            'skipped': [asdict(r) for r in self.skipped],
            'labels': {
                'created': list(self.created_labels),
                'would_create': list(self.pending_labels),
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    def format_text(self) -> str:
        """Generate the human-readable report."""
        lines = []
        verb = "Would" if self.dry_run else ""

        lines.append("=" * 70)
        lines.append("DRY-RUN IMPORT REPORT" if self.dry_run else "IMPORT REPORT")
        lines.append("=" * 70)
        lines.append(f"Team: {self.team}")
        if self.project:
            lines.append(f"Project: {self.project}")
        lines.append("")

        summary = self.summary()
        if self.dry_run:
            lines.append(f"{verb} create {summary['created']} issue(s).")
            lines.append(f"{verb} update {summary['updated']} existing issue(s).")
            lines.append(f"{verb} skip {summary['skipped']} existing issue(s).")
        else:
            lines.append(f"Created {summary['created']} issue(s).")
            lines.append(f"Updated {summary['updated']} issue(s).")
            lines.append(f"Skipped {summary['skipped']} existing issue(s).")
        if summary['reparented']:
            lines.append(f"Reparented: {summary['reparented']}")
        if self.created_labels:
            lines.append(f"Labels created: {', '.join(self.created_labels)}")
        if self.pending_labels:
            lines.append(f"Labels that would be created: {', '.join(self.pending_labels)}")
        lines.append("")

        if self.records:
            lines.append("ISSUES:")
            for record in self.records:
                indent = "  " * (record.depth + 1)
                note = ""
                if record.reparented:
                    note = f" (reparent to {record.parent_identifier or 'top level'})"
                lines.append(
                    f"{indent}[{record.action.upper()}] {record.identifier} - {record.title}{note}"
                )
            lines.append("")

        for title, records in (("Created issues:", self.created), ("Updated issues:", self.updated)):
            if records and not self.dry_run:
                lines.append(title)
                for record in records:
                    lines.append(f"  {record.identifier}: {record.url or '#'}")
                lines.append("")

        lines.append("=" * 70)
        if self.dry_run:
            lines.append("NOTE: This is a simulation. No changes have been made.")
        else:
            lines.append(f"Completed in {self.duration_seconds:.2f}s")
        lines.append("=" * 70)

        return "\n".join(lines)
