#!/usr/bin/env python3
"""
Existing-issue snapshot for a single import run.

The snapshot is fetched once per run and indexed two ways:
- by identifier (e.g. 'ENG-110'), team-wide, case-insensitive
- by (parent id, title), case-insensitive on the title

Issues created or updated during the run are recorded back into the
snapshot, so later nodes match against everything committed so far.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from import_document import DesiredNode


@dataclass
class ExistingIssue:
    """An issue as known to the importer."""
    id: str
    identifier: str
    title: str
    parent_id: Optional[str] = None
    team_id: Optional[str] = None
    url: Optional[str] = None
    placeholder: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any], parent_id: Optional[str] = None) -> 'ExistingIssue':
        """
        Build from a Linear issue payload.

        Args:
            data: Issue dict as returned by the Linear client
            parent_id: Parent to assume when the payload carries none
        """
        parent = data.get('parent') or {}
        team = data.get('team') or {}
        return cls(
            id=data['id'],
            identifier=data.get('identifier') or '',
            title=data.get('title') or '',
            parent_id=parent.get('id') or parent_id,
            team_id=team.get('id'),
            url=data.get('url'),
        )


TitleKey = Tuple[Optional[str], str]


class IssueSnapshot:
    """Indexed, mutable view of the team's issues for one run."""

    def __init__(self, issues: Iterable[ExistingIssue] = ()):
        self._by_id: Dict[str, ExistingIssue] = {}
        self._by_identifier: Dict[str, List[str]] = {}
        self._by_title: Dict[TitleKey, List[str]] = {}
        self._placeholders = 0

        for issue in issues:
            self.record(issue)

    @classmethod
    def fetch(cls, client, team_id: str) -> 'IssueSnapshot':
        """Load every current issue of a team."""
        return cls(ExistingIssue.from_api(data) for data in client.list_issues(team_id))

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, issue_id: str) -> bool:
        return issue_id in self._by_id

    def get(self, issue_id: Optional[str]) -> Optional[ExistingIssue]:
        if not issue_id:
            return None
        return self._by_id.get(issue_id)

    @staticmethod
    def _title_key(title: str, parent_id: Optional[str]) -> TitleKey:
        return (parent_id or None, title.strip().lower())

    def _unindex(self, issue: ExistingIssue) -> None:
        for index, key in (
            (self._by_identifier, issue.identifier.lower()),
            (self._by_title, self._title_key(issue.title, issue.parent_id)),
        ):
            ids = index.get(key)
            if ids and issue.id in ids:
                ids.remove(issue.id)
                if not ids:
                    del index[key]

    def record(self, issue: ExistingIssue) -> None:
        """
        Add an issue, or re-index it if already known.

        Re-recording an issue after an update moves it to its new
        (parent, title) slot, behind issues already holding that key.
        """
        previous = self._by_id.get(issue.id)
        if previous is not None:
            self._unindex(previous)

        self._by_id[issue.id] = issue
        if issue.identifier:
            self._by_identifier.setdefault(issue.identifier.lower(), []).append(issue.id)
        self._by_title.setdefault(self._title_key(issue.title, issue.parent_id), []).append(issue.id)

    def find_by_identifier(self, identifier: str) -> Optional[ExistingIssue]:
        ids = self._by_identifier.get(identifier.strip().lower())
        return self._by_id[ids[0]] if ids else None

    def find_by_title(self, title: str, parent_id: Optional[str]) -> Optional[ExistingIssue]:
        ids = self._by_title.get(self._title_key(title, parent_id))
        return self._by_id[ids[0]] if ids else None

    def match(self, node: DesiredNode, parent_id: Optional[str]) -> Optional[ExistingIssue]:
        """
        Find the existing issue a desired node refers to.

        A node with an identifier matches only by identifier, anywhere in the
        team. Otherwise it matches by title under the same parent: root nodes
        only match parentless issues, child nodes only match issues whose
        parent is the node's resolved parent.
        """
        if node.identifier:
            return self.find_by_identifier(node.identifier)
        return self.find_by_title(node.title, parent_id)

    def placeholder(self, title: str, parent_id: Optional[str] = None) -> ExistingIssue:
        """
        Synthesize a stand-in for an issue a dry run would create.

        Placeholders are not recorded; they only serve as the parent of the
        node's children while the dry run walks the tree.
        """
        self._placeholders += 1
        return ExistingIssue(
            id=f"dry-run-{self._placeholders}",
            identifier=f"DRY-{self._placeholders}",
            title=title,
            parent_id=parent_id,
            url=None,
            placeholder=True,
        )
