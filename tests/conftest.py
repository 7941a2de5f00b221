import copy
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Local libs live in .sync/lib and are imported by bare module name
LIB_DIR = Path(__file__).resolve().parents[1] / '.sync' / 'lib'
if str(LIB_DIR) not in sys.path:
    sys.path.insert(0, str(LIB_DIR))

import logger as logger_module  # noqa: E402
from linear_client import LinearError  # noqa: E402


TEAM = {'id': 'team-1', 'name': 'Engineering', 'key': 'ENG'}

DEFAULT_STATES = [
    {'id': 'state-backlog', 'name': 'Backlog', 'type': 'backlog'},
    {'id': 'state-todo', 'name': 'Todo', 'type': 'unstarted'},
    {'id': 'state-progress', 'name': 'In Progress', 'type': 'started'},
    {'id': 'state-done', 'name': 'Done', 'type': 'completed'},
]


def make_issue(issue_id: str, identifier: str, title: str,
               parent_id: Optional[str] = None, team_id: str = 'team-1') -> Dict[str, Any]:
    """Issue payload shaped like the Linear API response."""
    return {
        'id': issue_id,
        'identifier': identifier,
        'title': title,
        'url': f"https://linear.app/acme/issue/{identifier}",
        'team': {'id': team_id},
        'parent': {'id': parent_id} if parent_id else None,
    }


class FakeLinearClient:
    """In-memory Linear client recording every call."""

    def __init__(
        self,
        teams: Optional[List[Dict[str, Any]]] = None,
        states: Optional[List[Dict[str, Any]]] = None,
        labels: Optional[List[Dict[str, Any]]] = None,
        issues: Optional[List[Dict[str, Any]]] = None,
        projects: Optional[List[Dict[str, Any]]] = None,
        users: Optional[List[Dict[str, Any]]] = None,
    ):
        self.teams = teams if teams is not None else [dict(TEAM)]
        self.states = states if states is not None else copy.deepcopy(DEFAULT_STATES)
        self.labels = list(labels or [])
        self.issues = [copy.deepcopy(i) for i in issues or []]
        self.projects = list(projects or [])
        self.users = list(users or [])
        self.summaries: List[Dict[str, Any]] = []
        self.cycles: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def calls_to(self, name: str) -> List[tuple]:
        return [c[1:] for c in self.calls if c[0] == name]

    @property
    def mutations(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ('create_issue', 'update_issue', 'create_label')]

    # ----- reads -----
    def list_teams(self):
        self.calls.append(('list_teams',))
        return copy.deepcopy(self.teams)

    def lookup_team(self, name):
        self.calls.append(('lookup_team', name))
        for team in self.teams:
            if name.lower() in (team['name'].lower(), team['key'].lower()):
                return dict(team)
        return None

    def list_projects(self):
        self.calls.append(('list_projects',))
        return copy.deepcopy(self.projects)

    def lookup_project(self, name, team_id):
        self.calls.append(('lookup_project', name, team_id))
        for project in self.projects:
            if project['name'].lower() == name.lower():
                return dict(project)
        return None

    def list_users(self):
        self.calls.append(('list_users',))
        return copy.deepcopy(self.users)

    def list_labels(self, team_id):
        self.calls.append(('list_labels', team_id))
        return [
            dict(label) for label in self.labels
            if not label.get('team') or label['team']['id'] == team_id
        ]

    def list_workflow_states(self, team_id):
        self.calls.append(('list_workflow_states', team_id))
        return copy.deepcopy(self.states)

    def list_issues(self, team_id):
        self.calls.append(('list_issues', team_id))
        keys = ('id', 'identifier', 'title', 'url', 'team', 'parent')
        return [
            {k: copy.deepcopy(i.get(k)) for k in keys}
            for i in self.issues if i['team']['id'] == team_id
        ]

    def search_issues(self, team_id, issue_filter=None):
        self.calls.append(('search_issues', team_id, copy.deepcopy(issue_filter)))
        return copy.deepcopy(self.summaries)

    def get_cycle_issues(self, team_id, which='current'):
        self.calls.append(('get_cycle_issues', team_id, which))
        return copy.deepcopy(self.cycles.get(which))

    # ----- writes -----
    def create_label(self, name, team_id):
        self.calls.append(('create_label', name, team_id))
        label = {'id': f"label-{self._next()}", 'name': name, 'team': {'id': team_id}}
        self.labels.append(label)
        return dict(label)

    def create_issue(self, data):
        self.calls.append(('create_issue', copy.deepcopy(data)))
        n = self._next()
        key = next(t['key'] for t in self.teams if t['id'] == data['teamId'])
        issue = make_issue(f"issue-{n}", f"{key}-{100 + n}", data['title'],
                           parent_id=data.get('parentId'), team_id=data['teamId'])
        for field in ('description', 'labelIds', 'stateId', 'priority', 'estimate',
                      'projectId', 'assigneeId'):
            if field in data:
                issue[field] = copy.deepcopy(data[field])
        self.issues.append(issue)
        return copy.deepcopy(issue)

    def update_issue(self, issue_id, data):
        self.calls.append(('update_issue', issue_id, copy.deepcopy(data)))
        for issue in self.issues:
            if issue['id'] == issue_id:
                for field, value in data.items():
                    if field == 'parentId':
                        issue['parent'] = {'id': value} if value else None
                    else:
                        issue[field] = copy.deepcopy(value)
                return copy.deepcopy(issue)
        raise LinearError(f"Entity not found: {issue_id}")


@pytest.fixture(autouse=True)
def quiet_logger(tmp_path, monkeypatch):
    """Route logs to a temp dir and keep the console clean."""
    monkeypatch.delenv('DEBUG', raising=False)
    log = logger_module.configure_logger(log_dir=tmp_path / 'logs', console_output=False)
    yield log
    for handler in list(log.logger.handlers):
        handler.close()
    log.logger.handlers.clear()
    logger_module._logger = None


@pytest.fixture
def fake_client():
    return FakeLinearClient()
