"""Command line interface over the state document and the scheduler."""
from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from dataclasses import fields
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import AppConfig, ConfigurationError, load_app_config, load_configuration
from .enrichment import LeadEnricher
from .errors import LeadNavigatorError, ValidationError
from .exporters import export_leads
from .models import AutomationSettings, ICPProfile, SearchFilters, TaskStatus, to_jsonable
from .orchestrator import AutomationScheduler
from .presets import AUTOMATION_MODES, PresetService
from .repository import StateRepository
from .store import AtomicDocumentStore
from .tasks import TaskLifecycleManager

LOGGER = logging.getLogger(__name__)


def _timestamp(text: str) -> datetime:
    """Parse an ISO-8601 time; naive values are taken as UTC."""

    try:
        moment = datetime.fromisoformat(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid ISO-8601 time: {text!r}") from exc
    return moment if moment.tzinfo else moment.replace(tzinfo=timezone.utc)


def build_parser(prog: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Manage LinkedIn prospecting presets, tasks and leads",
    )
    parser.add_argument("--config", help="Path to a configuration file (YAML or JSON)")
    parser.add_argument("--state-file", help="Override the path of the JSON state document")
    parser.add_argument("--log-level", help="Logging level (e.g. DEBUG, INFO, WARNING)")
    commands = parser.add_subparsers(dest="command", required=True)

    # icp
    icp = commands.add_parser("icp", help="View or replace the ideal customer profile").add_subparsers(
        dest="action", required=True
    )
    icp.add_parser("show", help="Print the stored profile")
    icp_set = icp.add_parser("set", help="Replace the profile from a file")
    icp_set.add_argument("path", help="JSON or YAML file with the profile fields")

    # presets
    presets = commands.add_parser("presets", help="Manage search presets").add_subparsers(
        dest="action", required=True
    )
    presets.add_parser("list", help="List stored presets")
    create = presets.add_parser("create", help="Create a preset")
    create.add_argument("--name", help="Preset name (defaults to the mode's name with --mode)")
    create.add_argument("--description")
    create.add_argument("--page-limit", type=int)
    create.add_argument("--link-icp", action="store_true", help="Merge the stored ICP into the filters")
    create.add_argument("--filters", help="Path to a JSON file with search filters")
    create.add_argument("--mode", choices=sorted(AUTOMATION_MODES), help="Start from an automation mode")
    delete = presets.add_parser("delete", help="Delete a preset")
    delete.add_argument("preset_id")

    # tasks
    tasks = commands.add_parser("tasks", help="Manage automation tasks").add_subparsers(
        dest="action", required=True
    )
    tasks.add_parser("list", help="List tasks")
    draft = tasks.add_parser("draft", help="Create a draft Sales Navigator task")
    draft.add_argument("preset_id")
    draft.add_argument("--name")
    queue = tasks.add_parser("queue", help="Queue a Sales Navigator task")
    queue.add_argument("preset_id")
    queue.add_argument("--at", type=_timestamp, help="ISO-8601 time to run at")
    accounts = tasks.add_parser("accounts", help="Create a company people task")
    accounts.add_argument("urls", nargs="+")
    posts = tasks.add_parser("posts", help="Create a post engagement task")
    posts.add_argument("urls", nargs="+")
    posts.add_argument("--reactions", action="store_true", help="Collect reactors")
    posts.add_argument("--comments", action="store_true", help="Collect commenters")
    profiles = tasks.add_parser("profiles", help="Create a profile list task")
    profiles.add_argument("urls", nargs="+")
    for typed in (accounts, posts, profiles):
        typed.add_argument("--name")
        typed.add_argument("--list-name", help="Lead list the results belong to")
    status = tasks.add_parser("status", help="Move a task to another status")
    status.add_argument("task_id")
    status.add_argument("status", choices=[item.value for item in TaskStatus])
    status.add_argument("--at", type=_timestamp, help="Scheduled time for pending/queued")
    remove = tasks.add_parser("delete", help="Delete a task")
    remove.add_argument("task_id")

    # leads
    leads = commands.add_parser("leads", help="Inspect and export leads").add_subparsers(
        dest="action", required=True
    )
    leads.add_parser("list", help="List leads")
    export = leads.add_parser("export", help="Write leads to CSV or XLSX")
    export.add_argument("output", help="Destination file (.csv, .tsv or .xlsx)")
    export.add_argument("--ids", nargs="*", help="Only export these lead ids")
    enrich = leads.add_parser("enrich", help="Look up and verify email addresses")
    enrich.add_argument("--ids", nargs="*", help="Only enrich these lead ids")

    # settings
    settings = commands.add_parser("settings", help="View or change automation settings").add_subparsers(
        dest="action", required=True
    )
    settings.add_parser("show", help="Print the automation settings")
    setter = settings.add_parser("set", help="Change settings with KEY=VALUE pairs")
    setter.add_argument("pairs", nargs="+", metavar="KEY=VALUE")

    # run
    run = commands.add_parser("run", help="Run due tasks")
    run.add_argument("--loop", action="store_true", help="Keep polling instead of running a single tick")
    run.add_argument("--interval", type=float, help="Seconds between polls with --loop")
    run.add_argument("--bypass-quiet-hours", action="store_true")
    run.add_argument("--bypass-daily-limits", action="store_true")
    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def _emit(value: Any) -> None:
    print(json.dumps(to_jsonable(value), indent=2, ensure_ascii=False))


def _parse_setting(raw: str) -> tuple[str, Any]:
    key, separator, value = raw.partition("=")
    if not separator or not key.strip():
        raise ValidationError(f"Expected KEY=VALUE, got {raw!r}")
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def _load_filters(path: Optional[str]) -> SearchFilters:
    if not path:
        return SearchFilters()
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValidationError(f"Could not read filters from '{path}': {exc}") from exc
    return SearchFilters.from_dict(data)


def _icp(args: argparse.Namespace, repository: StateRepository) -> int:
    if args.action == "show":
        _emit(repository.get_icp())
        return 0
    try:
        data = load_configuration(args.path)
    except ConfigurationError as exc:
        raise ValidationError(str(exc)) from exc
    unknown = sorted(set(data) - {f.name for f in fields(ICPProfile)})
    if unknown:
        raise ValidationError(f"Unknown ICP fields: {', '.join(unknown)}")
    _emit(repository.save_icp(ICPProfile.from_dict(data)))
    LOGGER.info("Saved ICP from %s", args.path)
    return 0


def _presets(args: argparse.Namespace, repository: StateRepository) -> int:
    service = PresetService(repository)
    if args.action == "list":
        _emit(service.list())
    elif args.action == "create":
        if args.mode:
            _emit(service.create_from_mode(args.mode, name=args.name))
        else:
            data: Dict[str, Any] = {
                "name": args.name,
                "description": args.description,
                "linked_icp": args.link_icp,
                "filters": _load_filters(args.filters),
            }
            if args.page_limit is not None:
                data["page_limit"] = args.page_limit
            _emit(service.create(data))
    elif args.action == "delete":
        service.delete(args.preset_id)
        LOGGER.info("Deleted preset %s", args.preset_id)
    return 0


def _tasks(args: argparse.Namespace, repository: StateRepository) -> int:
    manager = TaskLifecycleManager(repository)
    settings = repository.get_automation_settings()
    if args.action == "list":
        _emit(manager.list())
    elif args.action == "draft":
        _emit(manager.create_draft(args.preset_id, settings, name=args.name))
    elif args.action == "queue":
        _emit(manager.queue(args.preset_id, settings, scheduled_for=args.at))
    elif args.action == "accounts":
        _emit(manager.create_accounts_task(settings, args.urls, name=args.name, target_lead_list_name=args.list_name))
    elif args.action == "posts":
        _emit(
            manager.create_post_task(
                settings,
                args.urls,
                scrape_reactions=args.reactions,
                scrape_commenters=args.comments,
                name=args.name,
                target_lead_list_name=args.list_name,
            )
        )
    elif args.action == "profiles":
        _emit(manager.create_profile_task(settings, args.urls, name=args.name, target_lead_list_name=args.list_name))
    elif args.action == "status":
        updates = {"scheduled_for": args.at} if args.at else None
        _emit(manager.update_status(args.task_id, args.status, updates))
    elif args.action == "delete":
        manager.delete(args.task_id)
        LOGGER.info("Deleted task %s", args.task_id)
    return 0


def _leads(args: argparse.Namespace, repository: StateRepository) -> int:
    if args.action == "list":
        _emit(repository.list_leads())
    elif args.action == "export":
        path = export_leads(repository.list_leads(), args.output, ids=args.ids)
        LOGGER.info("Leads written to %s", path.resolve())
    elif args.action == "enrich":
        _emit(LeadEnricher(repository).enrich_pending(args.ids))
    return 0


def _settings(args: argparse.Namespace, repository: StateRepository) -> int:
    current = repository.get_automation_settings()
    if args.action == "show":
        _emit(current)
        return 0
    data = to_jsonable(current)
    for pair in args.pairs:
        key, value = _parse_setting(pair)
        if key not in data:
            raise ValidationError(f"Unknown setting '{key}'")
        data[key] = value
    updated = AutomationSettings.from_dict(data)
    try:
        updated.validate()
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    _emit(repository.save_automation_settings(updated))
    return 0


def _run(args: argparse.Namespace, repository: StateRepository, config: AppConfig) -> int:
    scheduler = AutomationScheduler(repository)
    try:
        if args.loop:
            stop = threading.Event()
            try:
                scheduler.run_forever(args.interval or config.background_tick_seconds, stop)
            except KeyboardInterrupt:
                LOGGER.info("Stopping scheduler")
                stop.set()
            return 0
        futures = scheduler.tick(
            bypass_quiet_hours=args.bypass_quiet_hours,
            bypass_daily_limits=args.bypass_daily_limits,
        )
        results: List[Any] = [future.result() for future in futures]
        LOGGER.info("Ran %s task(s)", len(results))
        _emit(results)
    finally:
        scheduler.shutdown()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        config = load_app_config(args.config)
    except ConfigurationError as exc:
        logging.basicConfig(level=logging.INFO)
        LOGGER.error("%s", exc)
        return 1
    if args.state_file:
        config.state_file = Path(args.state_file)
    level = (args.log_level or config.log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))

    try:
        repository = StateRepository(AtomicDocumentStore(config.state_file))
        if args.command == "icp":
            return _icp(args, repository)
        if args.command == "presets":
            return _presets(args, repository)
        if args.command == "tasks":
            return _tasks(args, repository)
        if args.command == "leads":
            return _leads(args, repository)
        if args.command == "settings":
            return _settings(args, repository)
        return _run(args, repository, config)
    except (LeadNavigatorError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return 1


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
