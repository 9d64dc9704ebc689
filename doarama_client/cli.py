"""Command line interface to doarama.com."""
from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from dotenv import load_dotenv
from tqdm import tqdm

from .auth import resolve_session
from .batch import create_visualisation_from_tracks, upload_tracks
from .client import Client
from .config import AppConfig, parse_retries, parse_timeout
from .errors import DoaramaError, InvalidInputError
from .models import Activity, VisualisationURLOptions
from .retry import Cancellation
from .utils import configure_logging

logger = logging.getLogger(__name__)

Command = Callable[[argparse.Namespace, AppConfig, Client, Cancellation], int]


def parse_activity_ids(values: Sequence[str]) -> list[int]:
    """Parse every id up front so a typo fails before anything is sent."""
    ids = []
    for value in values:
        # plain ASCII digits only: no sign, whitespace or underscores
        if not (value.isascii() and value.isdigit()):
            raise InvalidInputError(f"invalid activity id: {value!r}")
        ids.append(int(value))
    return ids


def url_options_from_args(args: argparse.Namespace) -> VisualisationURLOptions:
    return VisualisationURLOptions(
        names=args.name or None,
        avatars=args.avatar or None,
        avatar_base_url=args.avatarbaseurl or "",
        fixed_aspect=args.fixedaspect,
        minimal_view=args.minimalview,
        dzml=args.dzml or "",
    )


def resolve_config(args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Merge command line flags over the environment."""
    config = AppConfig.from_env(environ)
    overrides: dict[str, object] = {}
    for flag, attr in (
        ("apiurl", "api_url"),
        ("apiname", "api_name"),
        ("apikey", "api_key"),
        ("userid", "user_id"),
        ("userkey", "user_key"),
    ):
        value = getattr(args, flag)
        if value is not None:
            overrides[attr] = value
    if args.timeout is not None:
        overrides["timeout"] = parse_timeout(args.timeout, "--timeout")
    if args.retries is not None:
        overrides["retries"] = parse_retries(args.retries, "--retries")
    if args.logfile is not None:
        overrides["log_file"] = args.logfile
    return dataclasses.replace(config, **overrides)


def print_activity(path: Path, activity: Activity) -> None:
    tqdm.write(f"ActivityId: {activity.id}", file=sys.stdout)


def activity_create(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    session = resolve_session(client, config.user_id, config.user_key)
    paths = [Path(f) for f in args.files]
    with tqdm(paths, desc="Uploading tracks", unit="file", disable=None if len(paths) > 1 else True) as progress:
        report = upload_tracks(session, progress, args.typeid, cancellation, on_created=print_activity)
    return 0 if report.ok else 1


def activity_delete(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    session = resolve_session(client, config.user_id, config.user_key)
    ids = parse_activity_ids(args.ids)
    status = 0
    for activity_id in ids:
        try:
            session.activity(activity_id).delete(cancellation)
        except DoaramaError as e:
            logger.error("Failed to delete activity %s: %s", activity_id, e)
            status = 1
            continue
        print(f"DeletedActivityId: {activity_id}")
    return status


def create(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    session = resolve_session(client, config.user_id, config.user_key)
    visualisation = create_visualisation_from_tracks(
        session, args.files, args.typeid, cancellation, on_created=print_activity
    )
    print(f"VisualisationKey: {visualisation.key}")
    print(f"VisualisationURL: {visualisation.url(url_options_from_args(args))}")
    return 0


def query_activity_types(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    for activity_type in client.activity_types(cancellation):
        print(f"{activity_type.name}: {activity_type.id}")
    return 0


def visualisation_create(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    session = resolve_session(client, config.user_id, config.user_key)
    activities = [session.activity(i) for i in parse_activity_ids(args.ids)]
    visualisation = session.create_visualisation(activities, cancellation)
    print(f"VisualisationKey: {visualisation.key}")
    return 0


def visualisation_url(args: argparse.Namespace, config: AppConfig, client: Client, cancellation: Cancellation) -> int:
    options = url_options_from_args(args)
    for key in args.keys:
        print(f"VisualisationURL: {client.visualisation(key).url(options)}")
    return 0


def _add_url_option_flags(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--name", action="append", help="Activity display name (repeat once per activity)")
    parser.add_argument("--avatar", action="append", help="Activity avatar (repeat once per activity)")
    parser.add_argument("--avatarbaseurl", help="Base URL for relative avatar references")
    parser.add_argument("--fixedaspect", action="store_true", help="Fix the aspect ratio")
    parser.add_argument("--minimalview", action="store_true", help="Use the minimal view")
    parser.add_argument("--dzml", help="DZML document reference")


def _add_typeid_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--typeid", type=int, default=None, help="Activity type id (see query-activity-types)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="doarama", description="A command line interface to doarama.com")
    parser.add_argument("--apiurl", help="Doarama API URL [$DOARAMA_API_URL]")
    parser.add_argument("--apiname", help="Doarama API name [$DOARAMA_API_NAME]")
    parser.add_argument("--apikey", help="Doarama API key [$DOARAMA_API_KEY]")
    parser.add_argument("--userid", help="Doarama user ID [$DOARAMA_USER_ID]")
    parser.add_argument("--userkey", help="Doarama user key [$DOARAMA_USER_KEY]")
    parser.add_argument("--timeout", help="Request timeout in seconds [$DOARAMA_TIMEOUT]")
    parser.add_argument("--retries", help="Retries for transient failures, default 0 [$DOARAMA_RETRIES]")
    parser.add_argument("--logfile", type=Path, help="Also write the log to this file [$DOARAMA_LOG_FILE]")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show debug logging")

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    activity = commands.add_parser("activity", aliases=["a"], help="Manages activities")
    activity_commands = activity.add_subparsers(dest="activity_command", metavar="COMMAND")
    activity_commands.required = True

    p = activity_commands.add_parser("create", aliases=["c"], help="Creates an activity from one or more tracklogs")
    _add_typeid_flag(p)
    p.add_argument("files", nargs="*", help="GPX or IGC files")
    p.set_defaults(func=activity_create)

    p = activity_commands.add_parser("delete", aliases=["d"], help="Deletes one or more activities by id")
    p.add_argument("ids", nargs="*", help="Activity ids")
    p.set_defaults(func=activity_delete)

    p = commands.add_parser("create", aliases=["c"], help="Creates a visualisation URL from one or more tracklogs")
    _add_typeid_flag(p)
    _add_url_option_flags(p)
    p.add_argument("files", nargs="*", help="GPX or IGC files")
    p.set_defaults(func=create)

    p = commands.add_parser("query-activity-types", aliases=["qat"], help="Queries activity types")
    p.set_defaults(func=query_activity_types)

    visualisation = commands.add_parser("visualisation", aliases=["v"], help="Manages visualisations")
    visualisation_commands = visualisation.add_subparsers(dest="visualisation_command", metavar="COMMAND")
    visualisation_commands.required = True

    p = visualisation_commands.add_parser("create", aliases=["c"], help="Creates a visualisation from a list of activities")
    p.add_argument("ids", nargs="*", help="Activity ids")
    p.set_defaults(func=visualisation_create)

    p = visualisation_commands.add_parser("url", aliases=["u"], help="Creates a visualisation URL from a visualisation key")
    _add_url_option_flags(p)
    p.add_argument("keys", nargs="*", help="Visualisation keys")
    p.set_defaults(func=visualisation_url)

    return parser


def main(argv: Optional[Sequence[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    """Run the CLI and return the process exit status.

    ``environ`` replaces ``os.environ`` (and skips ``.env`` loading) when given.
    """
    if environ is None:
        load_dotenv(encoding="utf-8")
        environ = os.environ

    args = build_parser().parse_args(argv)
    try:
        config = resolve_config(args, environ)
    except InvalidInputError as e:
        configure_logging(verbose=args.verbose)
        logger.error("%s", e)
        return 1
    configure_logging(config.log_file, verbose=args.verbose)

    command: Command = args.func
    cancellation = Cancellation()
    previous = signal.signal(signal.SIGTERM, lambda signum, frame: cancellation.cancel())
    try:
        with Client.from_config(config) as client:
            return command(args, config, client, cancellation)
    except DoaramaError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        print("\nStopped by user.", file=sys.stderr)
        return 130
    finally:
        signal.signal(signal.SIGTERM, previous if previous is not None else signal.SIG_DFL)


if __name__ == "__main__":
    sys.exit(main())
