#!/usr/bin/env python3
"""
linear-import: create and reconcile Linear issue trees from a document.

Usage:
    linear-import import issues.json [--dry-run] [--update] [--json]
    linear-import list teams|projects
    linear-import list labels|states <team>
    linear-import list issues <team> [--status S] [--project P] [--label L] [--cycle current]
"""

import sys
import json
import argparse
from pathlib import Path
from typing import List, Optional

from config_loader import ConfigError, load_config
from import_document import ValidationError, load_document
from import_engine import ImportEngine
from linear_client import CYCLE_OFFSETS, LinearClient, LinearError, build_issue_filter
from logger import configure_logger, get_logger
from reference_resolver import ReferenceResolver, ResolutionError


VERSION = '1.3.0'

PRIORITY_NAMES = {1: 'Urgent', 2: 'High', 3: 'Medium', 4: 'Low'}

IMPORT_FORMAT = """
import document (JSON or YAML):
  {
    "team": "TeamName",           // required: team name or key
    "project": "ProjectName",     // optional
    "defaultStatus": "Todo",      // optional: default workflow state
    "issues": [
      {
        "title": "Issue title",         // required
        "identifier": "ENG-110",        // optional: match an existing issue
        "description": "Markdown",
        "status": "In Progress",
        "priority": 2,                  // 0=none 1=urgent 2=high 3=medium 4=low
        "estimate": 3,
        "labels": ["bug"],              // created if missing
        "assignee": "user@example.com",
        "subIssues": [ { "title": "Sub-task" } ]
      }
    ]
  }
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='linear-import',
        description='Create and reconcile Linear issue trees from a JSON/YAML document',
        epilog=IMPORT_FORMAT,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--version', action='version', version=f'linear-import {VERSION}')
    parser.add_argument('--config', type=Path, help='Path to import_config.yaml')
    parser.add_argument('--debug', action='store_true', help='Verbose logging')

    sub = parser.add_subparsers(dest='command', required=True)

    imp = sub.add_parser('import', help='Create issues from a document')
    imp.add_argument('file', type=Path, help='Import document')
    imp.add_argument('--dry-run', action='store_true', help='Preview changes without writing to Linear')
    imp.add_argument('--update', action='store_true', help='Update existing issues instead of skipping')
    imp.add_argument('--json', action='store_true', help='Print the report as JSON')

    lst = sub.add_parser('list', help='List teams, projects, labels, workflow states or issues')
    lst.add_argument('kind', choices=['teams', 'projects', 'labels', 'states', 'issues'])
    lst.add_argument('team', nargs='?', help='Team name or key (labels/states/issues)')
    lst.add_argument('--status', help='issues: only this workflow state (default: open issues)')
    lst.add_argument('--project', help='issues: only this project')
    lst.add_argument('--label', help='issues: only issues with this label')
    lst.add_argument('--cycle', choices=list(CYCLE_OFFSETS), help='issues: list a cycle instead')
    lst.add_argument('--json', action='store_true', help='Print JSON')

    return parser


def format_issue_line(issue) -> str:
    """One-line summary: ENG-1 [Todo] (High) Title {bug, ui} @Ada"""
    parts = [issue.get('identifier') or '', f"[{(issue.get('state') or {}).get('name') or ''}]"]

    priority = PRIORITY_NAMES.get(issue.get('priority'))
    if priority:
        parts.append(f"({priority})")

    parts.append(issue.get('title') or '')

    labels = [label.get('name') for label in ((issue.get('labels') or {}).get('nodes') or [])]
    if labels:
        parts.append('{' + ', '.join(labels) + '}')

    assignee = (issue.get('assignee') or {}).get('name')
    if assignee:
        parts.append(f"@{assignee}")

    return '  ' + ' '.join(parts)


def list_issues(args, client: LinearClient, team) -> int:
    logger = get_logger()

    if args.cycle:
        logger.info(f"Fetching {args.cycle} cycle for {team['name']}...")
        result = client.get_cycle_issues(team['id'], args.cycle)
        if result is None:
            logger.warning(f"No {args.cycle} cycle found for {team['name']}")
            if args.json:
                print(json.dumps(None))
            return 0

        if args.json:
            print(json.dumps(result, indent=2))
            return 0

        cycle, issues = result['cycle'], result['issues']
        name = f": {cycle['name']}" if cycle.get('name') else ''
        start = (cycle.get('startsAt') or '')[:10]
        end = (cycle.get('endsAt') or '')[:10]
        print(f"Cycle {cycle.get('number')}{name} ({start} - {end})")
        print(f"{len(issues)} issues:\n")
        for issue in issues:
            print(format_issue_line(issue))
        return 0

    logger.info(f"Fetching issues for {team['name']}...")
    issues = client.search_issues(team['id'], build_issue_filter(args.status, args.project, args.label))

    if args.json:
        print(json.dumps(issues, indent=2))
        return 0

    filters = [
        f'{name}="{value}"'
        for name, value in (('status', args.status), ('project', args.project), ('label', args.label))
        if value
    ]
    described = f" ({', '.join(filters)})" if filters else " (open)"
    print(f"Issues for {team['name']}{described}: {len(issues)} found\n")
    if not issues:
        print("No issues found matching the filters.")
    for issue in issues:
        print(format_issue_line(issue))
    return 0


def cmd_import(args, config) -> int:
    logger = get_logger()
    logger.info(f"Loading {args.file}...")
    document = load_document(args.file)

    # The document is validated before any credentials or network are needed
    client = LinearClient.from_config(config)
    engine = ImportEngine(client, dry_run=args.dry_run, update=args.update)
    report = engine.run(document)

    print(report.to_json() if args.json else report.format_text())
    return 0


def cmd_list(args, client: LinearClient) -> int:
    if args.kind in ('labels', 'states', 'issues') and not args.team:
        print(f"Error: 'list {args.kind}' requires a team name or key", file=sys.stderr)
        return 1

    if args.kind == 'teams':
        rows = client.list_teams()
        lines = [f"{t.get('key') or '':<10} {t.get('name') or ''}" for t in rows]
    elif args.kind == 'projects':
        rows = client.list_projects()
        lines = [f"{p.get('name')} ({p.get('state') or 'unknown'})" for p in rows]
    else:
        resolver = ReferenceResolver(client)
        team = resolver.resolve_team(args.team)
        if args.kind == 'issues':
            return list_issues(args, client, team)
        if args.kind == 'labels':
            rows = client.list_labels(team['id'])
            lines = [
                f"{label.get('name')}{'' if label.get('team') else ' (workspace)'}"
                for label in rows
            ]
        else:
            rows = resolver.load_states(team['id'])
            lines = [f"{s.get('name') or '':<20} {s.get('type') or ''}" for s in rows]

    if args.json:
        print(json.dumps(rows, indent=2))
    else:
        print("\n".join(lines) if lines else f"No {args.kind} found")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
        log_dir = config.get('logging.log_dir')
        configure_logger(
            log_dir=Path(log_dir) if log_dir else None,
            debug=args.debug or bool(config.get('logging.debug')),
        )
        if args.command == 'import':
            return cmd_import(args, config)
        return cmd_list(args, LinearClient.from_config(config))

    except (ConfigError, ValidationError, ResolutionError, LinearError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
