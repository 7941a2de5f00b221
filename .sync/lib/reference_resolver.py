#!/usr/bin/env python3
"""
Reference resolution for Linear imports.

Turns the names used in an import document (team, project, labels, workflow
states, assignees) into Linear IDs. Lookups are fetched once per run and
cached; labels missing from Linear are created on first use and added to the
cache so later references reuse the same label.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from logger import get_logger


class ResolutionError(Exception):
    """Raised when a referenced name cannot be resolved."""
    pass


class TeamNotFoundError(ResolutionError):
    """Raised when no team matches by name or key."""

    def __init__(self, name: str, available: List[str]):
        message = f"Team \"{name}\" not found"
        if available:
            message += f". Available: {', '.join(available)}"
        super().__init__(message)
        self.name = name
        self.available = available


class StatusNotFoundError(ResolutionError):
    """Raised when a status name is not a workflow state of the team."""

    def __init__(self, name: str, valid_names: List[str]):
        super().__init__(f"Status \"{name}\" not found. Available: {', '.join(valid_names)}")
        self.name = name
        self.valid_names = valid_names


def find_by_name(items: List[Dict[str, Any]], name: str) -> Optional[Dict[str, Any]]:
    """Case-insensitive exact match on the `name` field."""
    wanted = name.strip().lower()
    for item in items:
        if (item.get('name') or '').lower() == wanted:
            return item
    return None


class ReferenceResolver:
    """
    Resolves document references against Linear for a single import run.

    The resolver owns the run's label cache: labels are listed on first use,
    and labels created during the run are appended so each missing name is
    created at most once.
    """

    def __init__(self, client, dry_run: bool = False):
        """
        Args:
            client: Linear API client (see linear_client.LinearClient)
            dry_run: Never create labels; unknown labels resolve to nothing
        """
        self.client = client
        self.dry_run = dry_run
        self.logger = get_logger()

        self._labels: Optional[List[Dict[str, Any]]] = None
        self._labels_team: Optional[str] = None
        self._users: Optional[List[Dict[str, Any]]] = None
        self._missing_users: set = set()

        self.created_labels: List[Dict[str, Any]] = []
        self.pending_labels: List[str] = []

    # ----- Team / project -----
    def resolve_team(self, name: str) -> Dict[str, Any]:
        """
        Resolve a team by name or key.

        Raises:
            TeamNotFoundError: If nothing matches
        """
        team = self.client.lookup_team(name)
        if not team:
            available = [f"{t.get('name')} ({t.get('key')})" for t in self.client.list_teams()]
            raise TeamNotFoundError(name, available)

        self.logger.info(f"Found team: {team.get('name')} ({team.get('key')})")
        return team

    def resolve_project(self, name: str, team_id: str) -> Optional[Dict[str, Any]]:
        """Resolve a project; a missing project is only a warning."""
        project = self.client.lookup_project(name, team_id)
        if project:
            self.logger.info(f"Found project: {project.get('name')}")
        else:
            self.logger.warning(
                f"Project \"{name}\" not found - issues will be created without a project"
            )
        return project

    # ----- Labels -----
    def _label_cache(self, team_id: str) -> List[Dict[str, Any]]:
        if self._labels is None or self._labels_team != team_id:
            self._labels = list(self.client.list_labels(team_id))
            self._labels_team = team_id
            self.logger.debug(f"Loaded {len(self._labels)} labels", context={'team_id': team_id})
        return self._labels

    def resolve_labels(self, names: List[str], team_id: str) -> List[str]:
        """
        Resolve label names to IDs, creating missing labels.

        Args:
            names: Label names (case-insensitive)
            team_id: Team owning newly created labels

        Returns:
            Label IDs in input order, without duplicates. In dry-run mode
            labels that do not exist yet produce no ID.
        """
        labels = self._label_cache(team_id)
        label_ids: List[str] = []

        for name in names:
            label = find_by_name(labels, name)

            if not label:
                if self.dry_run:
                    if name.lower() not in (p.lower() for p in self.pending_labels):
                        self.pending_labels.append(name)
                        self.logger.info(f"[dry-run] Would create label: {name}")
                    continue

                self.logger.info(f"Creating label: {name}")
                label = self.client.create_label(name, team_id)
                labels.append(label)
                self.created_labels.append(label)

            if label['id'] not in label_ids:
                label_ids.append(label['id'])

        return label_ids

    # ----- Workflow states -----
    def load_states(self, team_id: str) -> List[Dict[str, Any]]:
        """Fetch the team's workflow states."""
        states = self.client.list_workflow_states(team_id)
        self.logger.debug(
            f"Loaded {len(states)} workflow states",
            context={'states': [s.get('name') for s in states]},
        )
        return states

    def resolve_status(self, name: Optional[str], states: List[Dict[str, Any]]) -> Optional[str]:
        """
        Resolve a status name to a workflow state ID.

        Returns:
            State ID, or None when no name is given

        Raises:
            StatusNotFoundError: If the name matches no state
        """
        if not name:
            return None

        state = find_by_name(states, name)
        if not state:
            raise StatusNotFoundError(name, [s.get('name') for s in states])
        return state['id']

    # ----- Users -----
    def resolve_assignee(self, name: Optional[str]) -> Optional[str]:
        """
        Resolve an assignee by email, name or display name.

        An unknown assignee is reported once and the issue stays unassigned.
        """
        if not name:
            return None

        if self._users is None:
            self._users = self.client.list_users()

        wanted = name.strip().lower()
        for user in self._users:
            candidates = (user.get('email'), user.get('name'), user.get('displayName'))
            if any((c or '').lower() == wanted for c in candidates):
                return user['id']

        if wanted not in self._missing_users:
            self._missing_users.add(wanted)
            self.logger.warning(f"Assignee \"{name}\" not found - issue will be left unassigned")
        return None
