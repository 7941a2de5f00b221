#!/usr/bin/env python3
"""
Validation utilities for import documents.

Provides structural validation that runs offline, before any Linear call.
Each validator returns a list of human-readable errors; an empty list means
the input is valid.
"""

from __future__ import annotations

import json
import sys
from numbers import Number
from typing import Dict, List, Any


MIN_PRIORITY = 0
MAX_PRIORITY = 4


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_issue_node(node: Any, path: str) -> List[str]:
    """Validate one desired issue and, recursively, its sub-issues."""
    if not isinstance(node, dict):
        return [f"{path}: must be an object"]

    errors: List[str] = []
    title = node.get('title')
    if not isinstance(title, str) or not title.strip():
        errors.append(f"{path}: missing required field: \"title\"")

    label = f"{path} (\"{title}\")" if isinstance(title, str) and title.strip() else path

    for field in ('identifier', 'description', 'status', 'assignee'):
        value = node.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"{label}: \"{field}\" must be a string")

    priority = node.get('priority')
    if priority is not None and (not _is_int(priority) or not MIN_PRIORITY <= priority <= MAX_PRIORITY):
        errors.append(f"{label}: \"priority\" must be an integer between {MIN_PRIORITY} and {MAX_PRIORITY}")

    estimate = node.get('estimate')
    if estimate is not None and (isinstance(estimate, bool) or not isinstance(estimate, Number)):
        errors.append(f"{label}: \"estimate\" must be a number")

    labels = node.get('labels')
    if labels is not None:
        if not isinstance(labels, list):
            errors.append(f"{label}: \"labels\" must be an array")
        elif not all(isinstance(name, str) and name.strip() for name in labels):
            errors.append(f"{label}: \"labels\" must contain non-empty strings")

    sub_issues = node.get('subIssues')
    if sub_issues is not None:
        if not isinstance(sub_issues, list):
            errors.append(f"{label}: \"subIssues\" must be an array")
        else:
            for idx, child in enumerate(sub_issues):
                errors.extend(validate_issue_node(child, f"{path}.subIssues[{idx}]"))

    return errors


def _collect_identifiers(node: Any, path: str, seen: Dict[str, str], errors: List[str]) -> None:
    """Record each identifier's first path; report later repeats."""
    if not isinstance(node, dict):
        return

    identifier = node.get('identifier')
    if isinstance(identifier, str) and identifier.strip():
        key = identifier.strip().upper()
        if key in seen:
            errors.append(f"{path}: identifier \"{identifier.strip()}\" is already used at {seen[key]}")
        else:
            seen[key] = path

    sub_issues = node.get('subIssues')
    if isinstance(sub_issues, list):
        for idx, child in enumerate(sub_issues):
            _collect_identifiers(child, f"{path}.subIssues[{idx}]", seen, errors)


def validate_import_document(data: Any) -> List[str]:
    """
    Validate the shape of an import document.

    Checks:
    - Document is an object
    - 'team' is a non-empty string
    - 'issues' is a non-empty array
    - every issue (recursively) has a non-empty title and well-typed fields
    - no identifier appears twice (case-insensitive)
    """
    if not isinstance(data, dict):
        return ["document must be an object"]

    errors: List[str] = []

    team = data.get('team')
    if not isinstance(team, str) or not team.strip():
        errors.append("missing required field: \"team\"")

    for field in ('project', 'defaultStatus'):
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            errors.append(f"\"{field}\" must be a string")

    issues = data.get('issues')
    if not isinstance(issues, list):
        errors.append("missing required field: \"issues\" (must be an array)")
    elif not issues:
        errors.append("\"issues\" must contain at least one issue")
    else:
        seen: Dict[str, str] = {}
        for idx, node in enumerate(issues):
            errors.extend(validate_issue_node(node, f"issues[{idx}]"))
            _collect_identifiers(node, f"issues[{idx}]", seen, errors)

    return errors


# -----------------
# Linear payload validation helpers
# -----------------

def validate_issue_create_payload(data: Dict[str, Any]) -> List[str]:
    """Validate an IssueCreateInput before it is sent."""
    errors: List[str] = []
    if not str((data or {}).get('title') or '').strip():
        errors.append("missing or empty: title")
    if not str((data or {}).get('teamId') or '').strip():
        errors.append("missing or empty: teamId")
    return errors


if __name__ == '__main__':
    from import_document import read_document_data

    doc = read_document_data(sys.argv[1])
    print(json.dumps({'errors': validate_import_document(doc)}, indent=2))
