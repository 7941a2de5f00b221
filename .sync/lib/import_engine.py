#!/usr/bin/env python3
"""
Import Engine for Linear issue trees

Reconciles the desired issue tree of an import document against the team's
current issues: missing issues are created, existing ones are skipped or (in
update mode) patched, and sub-issues declared under a different parent are
moved.

The tree is walked depth-first, parent before children, one Linear call at
a time. A child's parent is whatever its parent node resolved to: the
skipped or updated existing issue, the newly created issue, or under dry-run
a placeholder standing in for an issue that would be created.

Any failure aborts the run. Issues already created or updated stay as they
are; re-running the same document picks up where the failed run stopped,
because every committed issue is matched on the next run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from import_document import DesiredNode, ImportDocument, ValidationError
from import_report import CREATE, SKIP, UPDATE, ImportReport, ReportRecord
from issue_snapshot import ExistingIssue, IssueSnapshot
from logger import get_logger
from reference_resolver import ReferenceResolver, ResolutionError
from validator import validate_issue_create_payload


@dataclass
class ImportOperation:
    action: str  # 'create' | 'update' | 'skip'
    node: DesiredNode
    parent: Optional[ExistingIssue]  # effective parent (None for top-level)
    existing: Optional[ExistingIssue] = None  # matched issue for update/skip
    payload: Dict[str, Any] = field(default_factory=dict)  # Linear input
    reparent: bool = False

    @property
    def parent_id(self) -> Optional[str]:
        return self.parent.id if self.parent else None


@dataclass
class ImportRun:
    """State owned by one run, threaded through the tree walk."""
    team: Dict[str, Any]
    project: Optional[Dict[str, Any]]
    states: List[Dict[str, Any]]
    default_state_id: Optional[str]
    snapshot: IssueSnapshot
    resolver: ReferenceResolver
    report: ImportReport

    @property
    def team_id(self) -> str:
        return self.team['id']


class ImportEngine:
    """Plan and apply the operations reconciling a document with Linear."""

    def __init__(self, client, dry_run: bool = False, update: bool = False) -> None:
        """
        Args:
            client: Linear API client (see linear_client.LinearClient)
            dry_run: Simulate every write; reads still hit Linear
            update: Patch matched issues instead of skipping them
        """
        self.client = client
        self.dry_run = dry_run
        self.update = update
        self.logger = get_logger()

    # ---------- Run ----------
    def prepare(self, document: ImportDocument) -> ImportRun:
        """Resolve shared references and take the issue snapshot."""
        resolver = ReferenceResolver(self.client, dry_run=self.dry_run)

        self.logger.info(f"Looking up team: {document.team}")
        team = resolver.resolve_team(document.team)

        project = None
        if document.project:
            self.logger.info(f"Looking up project: {document.project}")
            project = resolver.resolve_project(document.project, team['id'])

        states = resolver.load_states(team['id'])
        default_state_id = resolver.resolve_status(document.default_status, states)
        if document.default_status:
            self.logger.info(f"Default status: {document.default_status}")

        snapshot = IssueSnapshot.fetch(self.client, team['id'])
        self.logger.info(f"Found {len(snapshot)} existing issues in team")

        report = ImportReport(
            team=team.get('name') or document.team,
            project=project.get('name') if project else None,
            source=str(document.source) if document.source else None,
            dry_run=self.dry_run,
            update=self.update,
        )

        return ImportRun(
            team=team,
            project=project,
            states=states,
            default_state_id=default_state_id,
            snapshot=snapshot,
            resolver=resolver,
            report=report,
        )

    def run(self, document: ImportDocument) -> ImportReport:
        """
        Import a document.

        Raises:
            ResolutionError: Unknown team or status, or an issue declared below itself
            ValidationError: An issue input could not be built
            LinearError: Any Linear failure
        """
        start = time.time()
        if self.dry_run:
            self.logger.warning("Running in dry-run mode - no changes will be made")
        if self.update:
            self.logger.info("Update mode enabled - existing issues will be updated")

        try:
            run = self.prepare(document)

            self.logger.info(f"Processing {len(document.issues)} issues...")
            for node in document.issues:
                self.reconcile(run, node, parent=None, depth=0)

        except Exception as e:
            self.logger.log_operation(
                'import_run',
                'failure',
                duration=time.time() - start,
                context={'error': str(e), 'dry_run': self.dry_run},
            )
            raise

        report = run.report
        report.created_labels = [label.get('name') for label in run.resolver.created_labels]
        report.pending_labels = list(run.resolver.pending_labels)
        report.duration_seconds = time.time() - start

        self.logger.log_operation(
            'import_run',
            'success',
            duration=report.duration_seconds,
            context={**report.summary(), 'dry_run': self.dry_run},
        )
        return report

    # ---------- Planning ----------
    def _state_id(self, run: ImportRun, node: DesiredNode) -> Optional[str]:
        """Node status, else the document default, else none."""
        if node.status:
            return run.resolver.resolve_status(node.status, run.states)
        return run.default_state_id

    def plan(
        self,
        run: ImportRun,
        node: DesiredNode,
        parent: Optional[ExistingIssue],
        ancestor_ids: Tuple[str, ...] = (),
    ) -> ImportOperation:
        """
        Decide what to do with one node.

        Status names are checked for every node so a bad status fails the
        run even when the node would be skipped. Labels are only resolved
        (and created) for nodes that will be written.

        Args:
            run: Current import run
            node: Desired issue
            parent: Issue the node is declared under (None at top level)
            ancestor_ids: Ids of every issue above the node, root first

        Raises:
            ResolutionError: If, in update mode, the node matches one of its
                own ancestors
        """
        parent_id = parent.id if parent else None
        existing = run.snapshot.match(node, parent_id)
        state_id = self._state_id(run, node)

        if existing and not self.update:
            return ImportOperation(action=SKIP, node=node, parent=parent, existing=existing)

        if existing and existing.id in ancestor_ids:
            raise ResolutionError(
                f"Issue {existing.identifier} (\"{node.title}\") is declared below itself"
            )

        label_ids = run.resolver.resolve_labels(node.labels, run.team_id) if node.labels else []

        if existing:
            payload: Dict[str, Any] = {}
            if node.description:
                payload['description'] = node.description
            if label_ids:
                payload['labelIds'] = label_ids
            if state_id:
                payload['stateId'] = state_id

            reparent = existing.parent_id != parent_id
            if reparent:
                payload['parentId'] = parent_id

            return ImportOperation(
                action=UPDATE,
                node=node,
                parent=parent,
                existing=existing,
                payload=payload,
                reparent=reparent,
            )

        payload = {'title': node.title, 'teamId': run.team_id}
        if run.project:
            payload['projectId'] = run.project['id']
        if node.description:
            payload['description'] = node.description
        if label_ids:
            payload['labelIds'] = label_ids
        if state_id:
            payload['stateId'] = state_id
        if parent_id:
            payload['parentId'] = parent_id
        if node.priority is not None:
            payload['priority'] = node.priority
        if node.estimate is not None:
            payload['estimate'] = node.estimate
        assignee_id = run.resolver.resolve_assignee(node.assignee)
        if assignee_id:
            payload['assigneeId'] = assignee_id

        return ImportOperation(action=CREATE, node=node, parent=parent, payload=payload)

    # ---------- Execution ----------
    def reconcile(
        self,
        run: ImportRun,
        node: DesiredNode,
        parent: Optional[ExistingIssue],
        depth: int,
        ancestor_ids: Tuple[str, ...] = (),
    ) -> ExistingIssue:
        """Plan and apply one node, then recurse into its sub-issues."""
        op = self.plan(run, node, parent, ancestor_ids)

        if op.action == SKIP:
            target = self._skip(run, op, depth)
        elif op.action == UPDATE:
            target = self._apply_update(run, op, depth)
        else:
            target = self._apply_create(run, op, depth)

        for child in node.children:
            self.reconcile(run, child, parent=target, depth=depth + 1,
                           ancestor_ids=ancestor_ids + (target.id,))

        return target

    def _record(self, run: ImportRun, op: ImportOperation, issue: ExistingIssue, depth: int) -> None:
        run.report.add(ReportRecord(
            action=op.action,
            title=op.node.title,
            identifier=issue.identifier,
            issue_id=issue.id,
            url=issue.url,
            parent_identifier=op.parent.identifier if op.parent else None,
            depth=depth,
            reparented=op.reparent,
            fields=sorted(op.payload),
            dry_run=self.dry_run,
        ))

    def _skip(self, run: ImportRun, op: ImportOperation, depth: int) -> ExistingIssue:
        existing = op.existing
        self.logger.warning(
            f"{'  ' * depth}Skipped (exists): {existing.identifier} - {op.node.title}"
        )
        self._record(run, op, existing, depth)
        return existing

    def _apply_update(self, run: ImportRun, op: ImportOperation, depth: int) -> ExistingIssue:
        existing = op.existing
        indent = '  ' * depth
        note = ''
        if op.reparent:
            note = f" (reparent to {op.parent.identifier if op.parent else 'top level'})"

        if self.dry_run:
            self.logger.info(f"{indent}[dry-run] Would update: {existing.identifier} - {op.node.title}{note}")
            self._record(run, op, existing, depth)
            return existing

        if not op.payload:
            self.logger.debug(
                f"{indent}Nothing to update: {existing.identifier}",
                context={'title': op.node.title},
            )
            self._record(run, op, existing, depth)
            return existing

        result = self.client.update_issue(existing.id, op.payload)
        updated = ExistingIssue.from_api(result)
        updated.parent_id = op.payload['parentId'] if 'parentId' in op.payload else existing.parent_id
        updated.team_id = updated.team_id or existing.team_id
        updated.url = updated.url or existing.url
        run.snapshot.record(updated)

        self.logger.info(f"{indent}Updated: {updated.identifier} - {updated.title}{note}")
        self._record(run, op, updated, depth)
        return updated

    def _apply_create(self, run: ImportRun, op: ImportOperation, depth: int) -> ExistingIssue:
        indent = '  ' * depth

        errors = validate_issue_create_payload(op.payload)
        if errors:
            raise ValidationError(
                f"Invalid issue input for \"{op.node.title}\": {', '.join(errors)}",
                errors=errors,
            )

        if self.dry_run:
            issue = run.snapshot.placeholder(op.node.title, op.parent_id)
            self.logger.info(f"{indent}[dry-run] Would create: {op.node.title}")
            self._record(run, op, issue, depth)
            return issue

        result = self.client.create_issue(op.payload)
        issue = ExistingIssue.from_api(result)
        issue.parent_id = op.parent_id
        issue.team_id = issue.team_id or run.team_id
        run.snapshot.record(issue)

        self.logger.info(f"{indent}Created: {issue.identifier} - {issue.title}")
        self._record(run, op, issue, depth)
        return issue


# Module interface functions

def import_document(
    document: ImportDocument,
    client,
    dry_run: bool = False,
    update: bool = False,
) -> ImportReport:
    """
    Import a parsed document.

    Args:
        document: Validated import document
        client: Linear API client
        dry_run: Simulate every write
        update: Patch matched issues instead of skipping them

    Returns:
        ImportReport for the run
    """
    return ImportEngine(client, dry_run=dry_run, update=update).run(document)
