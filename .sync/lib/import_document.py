#!/usr/bin/env python3
"""
Import document model and loader.

An import document declares a team, an optional project and default status,
and a tree of desired issues. Documents may be written in JSON or YAML; both
are read with yaml.safe_load. The tree is validated once here, so the rest of
the importer only ever sees well-formed DesiredNode objects.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import yaml

from validator import validate_import_document


class ValidationError(Exception):
    """Raised when an import document is malformed."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


@dataclass
class DesiredNode:
    """One issue as declared in the import document."""
    title: str
    identifier: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[int] = None
    estimate: Optional[float] = None
    labels: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    children: List['DesiredNode'] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DesiredNode':
        return cls(
            title=data['title'].strip(),
            identifier=data.get('identifier') or None,
            description=data.get('description') or None,
            status=data.get('status') or None,
            priority=data.get('priority'),
            estimate=data.get('estimate'),
            labels=[name.strip() for name in data.get('labels') or []],
            assignee=data.get('assignee') or None,
            children=[cls.from_dict(child) for child in data.get('subIssues') or []],
        )

    def walk(self, depth: int = 0) -> Iterator[Tuple['DesiredNode', int]]:
        """Yield this node and its descendants in pre-order with their depth."""
        yield self, depth
        for child in self.children:
            yield from child.walk(depth + 1)


@dataclass
class ImportDocument:
    """A validated import document."""
    team: str
    issues: List[DesiredNode]
    project: Optional[str] = None
    default_status: Optional[str] = None
    source: Optional[Path] = None

    def walk(self) -> Iterator[Tuple[DesiredNode, int]]:
        for node in self.issues:
            yield from node.walk()

    def count(self) -> int:
        """Total number of desired issues, sub-issues included."""
        return sum(1 for _ in self.walk())


def read_document_data(path: str | Path) -> Any:
    """
    Read a JSON or YAML document from disk.

    Raises:
        ValidationError: If the file is missing or cannot be parsed
    """
    p = Path(path)
    if not p.exists():
        raise ValidationError(f"File not found: {p}")

    try:
        with open(p, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValidationError(f"Invalid JSON/YAML in file: {p}\n{e}")


def parse_document(data: Any, source: Optional[Path] = None) -> ImportDocument:
    """
    Validate raw document data and build the typed model.

    Raises:
        ValidationError: Listing every structural problem found
    """
    errors = validate_import_document(data)
    if errors:
        where = f" ({source})" if source else ""
        raise ValidationError(
            f"Invalid import document{where}:\n" + "\n".join(f"  • {e}" for e in errors),
            errors=errors,
        )

    return ImportDocument(
        team=data['team'].strip(),
        project=(data.get('project') or '').strip() or None,
        default_status=(data.get('defaultStatus') or '').strip() or None,
        issues=[DesiredNode.from_dict(node) for node in data['issues']],
        source=source,
    )


def load_document(path: str | Path) -> ImportDocument:
    """Read, validate and parse an import document."""
    return parse_document(read_document_data(path), source=Path(path))


if __name__ == '__main__':
    try:
        doc = load_document(sys.argv[1])
    except ValidationError as e:
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✓ {doc.count()} issue(s) for team {doc.team}")
    for node, depth in doc.walk():
        print(f"  {'  ' * depth}- {node.title}")
