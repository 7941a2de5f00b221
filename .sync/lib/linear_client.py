#!/usr/bin/env python3
"""
Linear GraphQL client with error handling and retry logic.

Provides the narrow set of Linear operations the importer consumes. Every
call goes through LinearClient._exec, which owns retries, timeouts and the
mapping of HTTP/GraphQL failures to LinearError.
"""

import sys
import time
from typing import Dict, Any, Optional, List

import requests

from logger import get_logger


DEFAULT_API_URL = 'https://api.linear.app/graphql'

# HTTP statuses worth another attempt
TRANSIENT_STATUS = {429, 500, 502, 503, 504}

ISSUE_FIELDS = """
    id
    identifier
    title
    url
    team { id }
    parent { id }
"""

# Fields shown by `list issues`
ISSUE_SUMMARY_FIELDS = """
    id
    identifier
    title
    priority
    url
    state { name type }
    labels { nodes { name } }
    assignee { name }
    project { name }
"""

CYCLE_FIELDS = "id number name startsAt endsAt"

CYCLE_OFFSETS = {'previous': -1, 'current': 0, 'next': 1}


def build_issue_filter(
    status: Optional[str] = None,
    project: Optional[str] = None,
    label: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Build a Linear IssueFilter.

    Without a status only open issues are matched (completed and canceled
    states are excluded).
    """
    issue_filter: Dict[str, Any] = {}
    if status:
        issue_filter['state'] = {'name': {'eqIgnoreCase': status}}
    else:
        issue_filter['state'] = {'type': {'nin': ['completed', 'canceled']}}
    if project:
        issue_filter['project'] = {'name': {'eqIgnoreCase': project}}
    if label:
        issue_filter['labels'] = {'name': {'eqIgnoreCase': label}}
    return issue_filter


class LinearError(Exception):
    """Raised when a Linear API call fails."""

    def __init__(self, message: str, status_code: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient


class LinearClient:
    """GraphQL client for the Linear API with retry logic."""

    def __init__(
        self,
        api_key: str,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        page_size: int = 250,
        snapshot_limit: int = 1000,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Linear client.

        Args:
            api_key: Linear personal API key
            api_url: GraphQL endpoint
            timeout: Request timeout in seconds
            max_retries: Maximum number of retries for transient failures
            retry_delay: Base delay between retries (exponential backoff)
            page_size: Page size for paginated list queries
            snapshot_limit: Upper bound on issues fetched by list_issues
            session: Optional requests session (tests inject one)
        """
        if not api_key:
            raise LinearError("Linear API key is required")

        self.api_url = api_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.page_size = page_size
        self.snapshot_limit = snapshot_limit
        self.logger = get_logger()

        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': api_key,
            'Content-Type': 'application/json',
        })

    @classmethod
    def from_config(cls, config) -> 'LinearClient':
        """Build a client from an ImportConfig."""
        return cls(
            api_key=config.require_api_key(),
            api_url=config.get('linear.api_url', DEFAULT_API_URL),
            timeout=config.get('linear.timeout', 30),
            max_retries=config.get('linear.max_retries', 3),
            retry_delay=config.get('linear.retry_delay', 1.0),
            page_size=config.get('import.page_size', 250),
            snapshot_limit=config.get('import.snapshot_limit', 1000),
        )

    # ----- Transport -----
    def _post(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Send one GraphQL request and return its `data` payload."""
        start = time.time()
        try:
            resp = self.session.post(
                self.api_url,
                json={'query': query, 'variables': variables},
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise LinearError(f"Linear API request timed out after {self.timeout}s", transient=True)
        except requests.exceptions.ConnectionError as e:
            raise LinearError(f"Connection error reaching Linear API: {e}", transient=True)

        self.logger.log_http_request('POST', self.api_url, resp.status_code, time.time() - start)

        if resp.status_code in (401, 403):
            raise LinearError(
                "Linear authentication failed. Check your LINEAR_API_KEY.",
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError:
            raise LinearError(
                f"Linear API error: {resp.status_code} {resp.text[:300]}",
                status_code=resp.status_code,
                transient=resp.status_code in TRANSIENT_STATUS,
            )

        errors = body.get('errors') if isinstance(body, dict) else None
        if errors:
            messages = [e.get('message', str(e)) for e in errors]
            rate_limited = any(
                'rate limit' in m.lower()
                or (e.get('extensions') or {}).get('code') == 'RATELIMITED'
                for e, m in zip(errors, messages)
            )
            raise LinearError(
                "GraphQL error: " + ", ".join(messages),
                status_code=resp.status_code,
                transient=rate_limited or resp.status_code in TRANSIENT_STATUS,
            )

        if not resp.ok:
            raise LinearError(
                f"Linear API error: {resp.status_code} {resp.reason}",
                status_code=resp.status_code,
                transient=resp.status_code in TRANSIENT_STATUS,
            )

        return body.get('data') or {}

    def _exec(
        self,
        query: str,
        variables: Optional[Dict[str, Any]] = None,
        retries: Optional[int] = None,
        mutation: bool = False,
    ) -> Dict[str, Any]:
        """
        Execute a GraphQL operation with retry logic.

        Mutations are only retried when Linear rejected the request outright
        (HTTP 429), never after a timeout or dropped connection, since the
        write may already have been applied.

        Args:
            query: GraphQL query or mutation
            variables: Operation variables
            retries: Number of retries (uses max_retries if None)
            mutation: Whether the operation writes

        Returns:
            Response `data` payload

        Raises:
            LinearError: If the call fails after retries
        """
        if retries is None:
            retries = self.max_retries
        variables = variables or {}

        for attempt in range(retries + 1):
            try:
                self.logger.debug(
                    f"linear exec attempt {attempt + 1}/{retries + 1}",
                    context={'mutation': mutation, 'variables': list(variables)},
                )
                return self._post(query, variables)

            except LinearError as e:
                retryable = e.transient and (not mutation or e.status_code == 429)
                if retryable and attempt < retries:
                    delay = self.retry_delay * (2 ** attempt)
                    self.logger.warning(
                        f"Linear transient failure, retrying in {delay:.2f}s",
                        context={'error': str(e), 'attempt': attempt + 1},
                    )
                    time.sleep(delay)
                    continue

                self.logger.error("Linear request failed", context={'error': str(e)})
                raise

        raise LinearError(f"Linear request failed after {retries} retries")

    def _paginate(
        self,
        query: str,
        path: List[str],
        variables: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Collect `nodes` across pages of a connection.

        Args:
            query: Query taking $first and $after
            path: Keys leading from `data` to the connection
            variables: Extra variables
            limit: Stop after this many nodes

        Returns:
            List of node dicts
        """
        nodes: List[Dict[str, Any]] = []
        after = None

        while True:
            first = self.page_size
            if limit is not None:
                first = min(first, limit - len(nodes))
                if first <= 0:
                    break

            data = self._exec(query, {**(variables or {}), 'first': first, 'after': after})
            connection: Any = data
            for key in path:
                connection = (connection or {}).get(key)
            if connection is None:
                raise LinearError(f"Unexpected Linear response: missing {'.'.join(path)}")

            nodes.extend(connection.get('nodes') or [])
            page_info = connection.get('pageInfo') or {}
            if not page_info.get('hasNextPage'):
                break
            after = page_info.get('endCursor')

        if limit is not None and len(nodes) >= limit:
            self.logger.warning(
                f"Stopped listing at {limit} records; raise import.snapshot_limit to fetch more",
                context={'path': '.'.join(path)},
            )
        return nodes

    @staticmethod
    def _payload(data: Dict[str, Any], field: str, entity: str, what: str) -> Dict[str, Any]:
        """Unwrap a mutation payload, failing on success: false."""
        payload = data.get(field) or {}
        if not payload.get('success') or not payload.get(entity):
            raise LinearError(f"Failed to {what}")
        return payload[entity]

    # ----- Teams / projects / users -----
    def list_teams(self) -> List[Dict[str, Any]]:
        """List accessible teams ({id, name, key})."""
        query = """
            query Teams($first: Int!, $after: String) {
              teams(first: $first, after: $after) {
                nodes { id name key }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return self._paginate(query, ['teams'])

    def lookup_team(self, name: str) -> Optional[Dict[str, Any]]:
        """Find a team by name or key, case-insensitively."""
        wanted = name.strip().lower()
        for team in self.list_teams():
            if (team.get('name') or '').lower() == wanted or (team.get('key') or '').lower() == wanted:
                return team
        return None

    def list_projects(self) -> List[Dict[str, Any]]:
        """List workspace projects ({id, name, teams})."""
        query = """
            query Projects($first: Int!, $after: String) {
              projects(first: $first, after: $after) {
                nodes { id name state teams { nodes { id } } }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return self._paginate(query, ['projects'])

    def lookup_project(self, name: str, team_id: str) -> Optional[Dict[str, Any]]:
        """
        Find a project by name, case-insensitively.

        Projects attached to the team win over same-named projects elsewhere.
        """
        wanted = name.strip().lower()
        matches = [p for p in self.list_projects() if (p.get('name') or '').lower() == wanted]
        for project in matches:
            team_ids = {t.get('id') for t in ((project.get('teams') or {}).get('nodes') or [])}
            if team_id in team_ids:
                return project
        return matches[0] if matches else None

    def list_users(self) -> List[Dict[str, Any]]:
        """List active workspace users."""
        query = """
            query Users($first: Int!, $after: String) {
              users(first: $first, after: $after) {
                nodes { id name displayName email active }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        return [u for u in self._paginate(query, ['users']) if u.get('active', True)]

    # ----- Labels / states -----
    def list_labels(self, team_id: str) -> List[Dict[str, Any]]:
        """List labels scoped to the team plus workspace-wide labels."""
        query = """
            query Labels($first: Int!, $after: String) {
              issueLabels(first: $first, after: $after) {
                nodes { id name team { id } }
                pageInfo { hasNextPage endCursor }
              }
            }
        """
        labels = self._paginate(query, ['issueLabels'])
        return [
            label for label in labels
            if not label.get('team') or label['team'].get('id') == team_id
        ]

    def create_label(self, name: str, team_id: str) -> Dict[str, Any]:
        """Create a team-scoped label."""
        mutation = """
            mutation CreateLabel($input: IssueLabelCreateInput!) {
              issueLabelCreate(input: $input) {
                success
                issueLabel { id name team { id } }
              }
            }
        """
        data = self._exec(mutation, {'input': {'name': name, 'teamId': team_id}}, mutation=True)
        return self._payload(data, 'issueLabelCreate', 'issueLabel', f"create label \"{name}\"")

    def list_workflow_states(self, team_id: str) -> List[Dict[str, Any]]:
        """List workflow states of a team ({id, name, type})."""
        query = """
            query WorkflowStates($teamId: String!, $first: Int!, $after: String) {
              team(id: $teamId) {
                states(first: $first, after: $after) {
                  nodes { id name type position }
                  pageInfo { hasNextPage endCursor }
                }
              }
            }
        """
        states = self._paginate(query, ['team', 'states'], {'teamId': team_id})
        return sorted(states, key=lambda s: s.get('position') or 0)

    # ----- Issues -----
    def list_issues(self, team_id: str) -> List[Dict[str, Any]]:
        """List the team's issues, bounded by snapshot_limit."""
        query = f"""
            query TeamIssues($teamId: String!, $first: Int!, $after: String) {{
              team(id: $teamId) {{
                issues(first: $first, after: $after) {{
                  nodes {{ {ISSUE_FIELDS} }}
                  pageInfo {{ hasNextPage endCursor }}
                }}
              }}
            }}
        """
        return self._paginate(query, ['team', 'issues'], {'teamId': team_id}, limit=self.snapshot_limit)

    def search_issues(self, team_id: str, issue_filter: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        List the team's issues matching an IssueFilter, most recently updated first.

        Args:
            team_id: Team UUID
            issue_filter: Linear IssueFilter (see build_issue_filter)

        Returns:
            Issue summaries, bounded by snapshot_limit
        """
        query = f"""
            query TeamIssueSearch($teamId: String!, $filter: IssueFilter, $first: Int!, $after: String) {{
              team(id: $teamId) {{
                issues(filter: $filter, first: $first, after: $after, orderBy: updatedAt) {{
                  nodes {{ {ISSUE_SUMMARY_FIELDS} }}
                  pageInfo {{ hasNextPage endCursor }}
                }}
              }}
            }}
        """
        return self._paginate(
            query,
            ['team', 'issues'],
            {'teamId': team_id, 'filter': issue_filter or None},
            limit=self.snapshot_limit,
        )

    def get_cycle_issues(self, team_id: str, which: str = 'current') -> Optional[Dict[str, Any]]:
        """
        Get the issues of the team's active cycle, or of the cycle before/after it.

        Args:
            team_id: Team UUID
            which: 'current', 'previous' or 'next'

        Returns:
            {'cycle': {...}, 'issues': [...]}, or None when there is no such cycle
        """
        if which not in CYCLE_OFFSETS:
            raise ValueError(f"Invalid cycle: {which!r} (use: {', '.join(CYCLE_OFFSETS)})")

        data = self._exec(
            f"""
            query ActiveCycle($teamId: String!) {{
              team(id: $teamId) {{ activeCycle {{ {CYCLE_FIELDS} }} }}
            }}
            """,
            {'teamId': team_id},
        )
        active = (data.get('team') or {}).get('activeCycle')
        if not active:
            return None

        target = active
        if CYCLE_OFFSETS[which]:
            query = f"""
                query TeamCycles($teamId: String!, $first: Int!, $after: String) {{
                  team(id: $teamId) {{
                    cycles(first: $first, after: $after) {{
                      nodes {{ {CYCLE_FIELDS} }}
                      pageInfo {{ hasNextPage endCursor }}
                    }}
                  }}
                }}
            """
            cycles = sorted(
                self._paginate(query, ['team', 'cycles'], {'teamId': team_id}),
                key=lambda c: c.get('startsAt') or '',
            )
            ids = [c.get('id') for c in cycles]
            if active['id'] not in ids:
                return None
            index = ids.index(active['id']) + CYCLE_OFFSETS[which]
            if not 0 <= index < len(cycles):
                return None
            target = cycles[index]

        query = f"""
            query CycleIssues($cycleId: String!, $first: Int!, $after: String) {{
              cycle(id: $cycleId) {{
                issues(first: $first, after: $after) {{
                  nodes {{ {ISSUE_SUMMARY_FIELDS} }}
                  pageInfo {{ hasNextPage endCursor }}
                }}
              }}
            }}
        """
        issues = self._paginate(query, ['cycle', 'issues'], {'cycleId': target['id']})
        return {'cycle': target, 'issues': issues}

    def create_issue(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Create a Linear issue.

        Args:
            data: IssueCreateInput (title and teamId required)

        Returns:
            Created issue ({id, identifier, title, url, team, parent})

        Raises:
            LinearError: If the input is incomplete or the mutation fails
        """
        if not data.get('title'):
            raise LinearError("create_issue requires 'title'")
        if not data.get('teamId'):
            raise LinearError("create_issue requires 'teamId'")

        mutation = f"""
            mutation CreateIssue($input: IssueCreateInput!) {{
              issueCreate(input: $input) {{
                success
                issue {{ {ISSUE_FIELDS} }}
              }}
            }}
        """
        result = self._exec(mutation, {'input': data}, mutation=True)
        return self._payload(result, 'issueCreate', 'issue', f"create issue \"{data['title']}\"")

    def update_issue(self, issue_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Update a Linear issue with a partial IssueUpdateInput.

        Args:
            issue_id: Issue UUID or identifier
            data: Fields to change; absent keys are left untouched

        Returns:
            Updated issue
        """
        mutation = f"""
            mutation UpdateIssue($issueId: String!, $input: IssueUpdateInput!) {{
              issueUpdate(id: $issueId, input: $input) {{
                success
                issue {{ {ISSUE_FIELDS} }}
              }}
            }}
        """
        result = self._exec(mutation, {'issueId': issue_id, 'input': data}, mutation=True)
        return self._payload(result, 'issueUpdate', 'issue', f"update issue \"{issue_id}\"")


if __name__ == '__main__':
    from config_loader import load_config, ConfigError

    try:
        client = LinearClient.from_config(load_config())

        print("✓ Listing teams...")
        teams = client.list_teams()
        for team in teams[:3]:
            print(f"  - {team.get('name')} ({team.get('key')})")
        if not teams:
            print("  No teams found")

        print("\n✓ All checks passed!")

    except (LinearError, ConfigError) as e:
        print(f"\n✗ Linear integration failed:\n{e}", file=sys.stderr)
        sys.exit(1)
