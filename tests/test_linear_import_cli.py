import json

import pytest

import linear_import
from conftest import FakeLinearClient, make_issue


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Run the CLI against a fake Linear workspace."""
    for var in ('LINEAR_API_KEY', 'LINEAR_IMPORT_CONFIG', 'DEBUG'):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)

    client = FakeLinearClient(issues=[make_issue('a', 'ENG-1', 'Existing')])
    monkeypatch.setattr(linear_import.LinearClient, 'from_config', lambda config: client)
    return client


def write_doc(tmp_path, data):
    path = tmp_path / 'issues.json'
    path.write_text(json.dumps(data))
    return path


def test_import_prints_json_report(cli, tmp_path, capsys):
    path = write_doc(tmp_path, {'team': 'ENG', 'issues': [
        {'title': 'Existing'},
        {'title': 'New', 'subIssues': [{'title': 'Child'}]},
    ]})

    code = linear_import.main(['import', str(path), '--json'])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report['summary']['created'] == 2
    assert report['summary']['skipped'] == 1
    assert len(cli.calls_to('create_issue')) == 2


def test_import_dry_run_text(cli, tmp_path, capsys):
    path = write_doc(tmp_path, {'team': 'ENG', 'issues': [{'title': 'New'}]})

    code = linear_import.main(['import', str(path), '--dry-run'])

    assert code == 0
    assert 'Would create 1 issue(s).' in capsys.readouterr().out
    assert cli.mutations == []


def test_invalid_document_fails_before_any_remote_call(cli, tmp_path, capsys):
    path = write_doc(tmp_path, {'team': 'ENG', 'issues': [{'description': 'no title'}]})

    code = linear_import.main(['import', str(path)])

    assert code == 1
    assert 'missing required field: "title"' in capsys.readouterr().err
    assert cli.calls == []


def test_resolution_error_exits_nonzero(cli, tmp_path, capsys):
    path = write_doc(tmp_path, {'team': 'ENG', 'issues': [{'title': 'A', 'status': 'Shipped'}]})

    code = linear_import.main(['import', str(path)])

    assert code == 1
    assert 'Status "Shipped" not found' in capsys.readouterr().err
    assert cli.mutations == []


def test_list_states(cli, capsys):
    code = linear_import.main(['list', 'states', 'eng'])

    assert code == 0
    out = capsys.readouterr().out
    assert 'Backlog' in out
    assert 'In Progress' in out


def test_list_labels_requires_team(cli, capsys):
    code = linear_import.main(['list', 'labels'])

    assert code == 1
    assert 'requires a team' in capsys.readouterr().err


def test_list_teams_json(cli, capsys):
    code = linear_import.main(['list', 'teams', '--json'])

    assert code == 0
    assert json.loads(capsys.readouterr().out)[0]['key'] == 'ENG'


def test_list_teams_tolerates_missing_key(cli, capsys):
    cli.teams.append({'id': 'team-2', 'name': 'Ops', 'key': None})

    code = linear_import.main(['list', 'teams'])

    assert code == 0
    assert 'Ops' in capsys.readouterr().out


SUMMARY = {
    'id': 'a',
    'identifier': 'ENG-1',
    'title': 'Login page',
    'priority': 2,
    'state': {'name': 'Todo', 'type': 'unstarted'},
    'labels': {'nodes': [{'name': 'bug'}, {'name': 'ui'}]},
    'assignee': {'name': 'Ada'},
    'project': {'name': 'Roadmap'},
}


def test_list_issues_defaults_to_open_issues(cli, capsys):
    cli.summaries = [SUMMARY]

    code = linear_import.main(['list', 'issues', 'ENG'])

    assert code == 0
    out = capsys.readouterr().out
    assert 'Issues for Engineering (open): 1 found' in out
    assert '  ENG-1 [Todo] (High) Login page {bug, ui} @Ada' in out
    assert cli.calls_to('search_issues') == [
        ('team-1', {'state': {'type': {'nin': ['completed', 'canceled']}}}),
    ]


def test_list_issues_with_filters(cli, capsys):
    code = linear_import.main([
        'list', 'issues', 'eng', '--status', 'In Progress', '--project', 'Roadmap', '--label', 'bug',
    ])

    assert code == 0
    out = capsys.readouterr().out
    assert 'status="In Progress", project="Roadmap", label="bug"' in out
    assert 'No issues found matching the filters.' in out
    assert cli.calls_to('search_issues') == [('team-1', {
        'state': {'name': {'eqIgnoreCase': 'In Progress'}},
        'project': {'name': {'eqIgnoreCase': 'Roadmap'}},
        'labels': {'name': {'eqIgnoreCase': 'bug'}},
    })]


def test_list_issues_requires_team(cli, capsys):
    code = linear_import.main(['list', 'issues'])

    assert code == 1
    assert 'requires a team' in capsys.readouterr().err


def test_list_cycle_issues(cli, capsys):
    cli.cycles['previous'] = {
        'cycle': {'id': 'c-1', 'number': 7, 'name': 'Hardening',
                  'startsAt': '2026-09-01T00:00:00.000Z', 'endsAt': '2026-09-14T00:00:00.000Z'},
        'issues': [SUMMARY],
    }

    code = linear_import.main(['list', 'issues', 'ENG', '--cycle', 'previous'])

    assert code == 0
    out = capsys.readouterr().out
    assert 'Cycle 7: Hardening (2026-09-01 - 2026-09-14)' in out
    assert '1 issues:' in out
    assert 'ENG-1 [Todo]' in out
    assert cli.calls_to('get_cycle_issues') == [('team-1', 'previous')]
    assert cli.calls_to('search_issues') == []


def test_list_missing_cycle_is_not_an_error(cli, capsys):
    code = linear_import.main(['list', 'issues', 'ENG', '--cycle', 'next'])

    assert code == 0
    assert 'ENG-' not in capsys.readouterr().out


def test_list_issues_rejects_unknown_cycle(cli):
    with pytest.raises(SystemExit):
        linear_import.main(['list', 'issues', 'ENG', '--cycle', 'someday'])
