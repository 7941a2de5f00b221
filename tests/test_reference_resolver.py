import pytest

from conftest import FakeLinearClient
from reference_resolver import (
    ReferenceResolver,
    StatusNotFoundError,
    TeamNotFoundError,
    find_by_name,
)


def test_find_by_name_is_case_insensitive():
    items = [{'id': '1', 'name': 'In Progress'}]

    assert find_by_name(items, 'in progress')['id'] == '1'
    assert find_by_name(items, 'progress') is None


def test_resolve_team_by_name_or_key(fake_client):
    resolver = ReferenceResolver(fake_client)

    assert resolver.resolve_team('engineering')['id'] == 'team-1'
    assert resolver.resolve_team('Eng')['id'] == 'team-1'
    with pytest.raises(TeamNotFoundError) as excinfo:
        resolver.resolve_team('Marketing')
    assert excinfo.value.available == ['Engineering (ENG)']


def test_resolve_project_absent_is_none(fake_client):
    fake_client.projects = [{'id': 'p1', 'name': 'Roadmap'}]
    resolver = ReferenceResolver(fake_client)

    assert resolver.resolve_project('ROADMAP', 'team-1')['id'] == 'p1'
    assert resolver.resolve_project('Unknown', 'team-1') is None


def test_labels_match_team_and_workspace_labels():
    client = FakeLinearClient(labels=[
        {'id': 'l-team', 'name': 'Bug', 'team': {'id': 'team-1'}},
        {'id': 'l-ws', 'name': 'Docs', 'team': None},
        {'id': 'l-other', 'name': 'Ops', 'team': {'id': 'team-2'}},
    ])
    resolver = ReferenceResolver(client)

    assert resolver.resolve_labels(['bug', 'DOCS', 'Bug'], 'team-1') == ['l-team', 'l-ws']
    assert client.mutations == []


def test_missing_label_created_once_and_cached(fake_client):
    resolver = ReferenceResolver(fake_client)

    first = resolver.resolve_labels(['needs-triage'], 'team-1')
    second = resolver.resolve_labels(['Needs-Triage', 'needs-triage'], 'team-1')

    assert first == second
    assert len(fake_client.calls_to('create_label')) == 1
    assert len(fake_client.calls_to('list_labels')) == 1
    assert [l['name'] for l in resolver.created_labels] == ['needs-triage']


def test_label_of_another_team_is_not_reused():
    client = FakeLinearClient(labels=[{'id': 'l-other', 'name': 'Ops', 'team': {'id': 'team-2'}}])
    resolver = ReferenceResolver(client)

    ids = resolver.resolve_labels(['ops'], 'team-1')

    assert ids != ['l-other']
    assert client.calls_to('create_label') == [('ops', 'team-1')]


def test_dry_run_skips_missing_labels_silently(fake_client):
    resolver = ReferenceResolver(fake_client, dry_run=True)

    assert resolver.resolve_labels(['new', 'NEW'], 'team-1') == []
    assert fake_client.mutations == []
    assert resolver.pending_labels == ['new']


def test_resolve_status(fake_client):
    resolver = ReferenceResolver(fake_client)
    states = resolver.load_states('team-1')

    assert resolver.resolve_status(None, states) is None
    assert resolver.resolve_status('done', states) == 'state-done'
    with pytest.raises(StatusNotFoundError) as excinfo:
        resolver.resolve_status('Shipped', states)
    assert excinfo.value.valid_names == ['Backlog', 'Todo', 'In Progress', 'Done']


def test_resolve_assignee_by_email_name_or_display_name(fake_client):
    fake_client.users = [
        {'id': 'u1', 'name': 'Grace Hopper', 'displayName': 'grace', 'email': 'grace@example.com'},
    ]
    resolver = ReferenceResolver(fake_client)

    assert resolver.resolve_assignee('GRACE@example.com') == 'u1'
    assert resolver.resolve_assignee('grace hopper') == 'u1'
    assert resolver.resolve_assignee('Grace') == 'u1'
    assert resolver.resolve_assignee('nobody') is None
    assert resolver.resolve_assignee(None) is None
    assert len(fake_client.calls_to('list_users')) == 1
