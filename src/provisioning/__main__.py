"""
Command line entry point.

Usage:
    # Parse an export and print records and warnings
    python -m provisioning parse export.xml
    python -m provisioning parse teachers.csv --json
    python -m provisioning parse teachers.csv --mapping first_name=0,last_name=2,email=3

    # Rehearse a sync without touching the directory
    python -m provisioning sync export.xml --dry-run

    # Create accounts (interactive login in the browser)
    python -m provisioning sync export.xml --attributes first_name last_name email institutional_id

    # Account maintenance
    python -m provisioning users --search mueller
    python -m provisioning disable <user-id> [<user-id> ...]
    python -m provisioning delete <user-id> [<user-id> ...] --dry-run

Connection settings come from config/config.yaml and the KEYCLOAK_URL,
KEYCLOAK_REALM, KEYCLOAK_CLIENT_ID, KEYCLOAK_REDIRECT_URI and APP_ENV
environment variables (a .env file in the project root is loaded).
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

import aiohttp
from dotenv import load_dotenv

from config.config import AppConfig, load_config
from core.errors.exceptions import ProvisioningError
from core.http.client import create_session
from core.logging.setup import get_logger, setup_logging
from core.oauth2.models import OIDCEndpoints
from core.oauth2.session import AuthSession
from core.utils.json_serializers import json_serializer
from provisioning.directory import KeycloakDirectory
from provisioning.ids import InstitutionalIdPolicy
from provisioning.ingest import detect_format, mapping_report, parse_document, process_with_mapping
from provisioning.models import (
    DEFAULT_SYNC_ATTRIBUTES,
    CsvParseResult,
    FieldMapping,
    ParseResult,
    SyncableAttribute,
    SyncResult,
    SyncSummary,
    UserType,
)
from provisioning.profile import ProviderProfile, load_profile
from provisioning.sync import IdentitySyncEngine

# __main__.py is at src/provisioning/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="provisioning",
        description="Provision school accounts in the identity directory from SchILD/CSV exports",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to config.yaml")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Console log level (default: from config)",
    )
    parser.add_argument("--log-dir", type=Path, default=None, help="Directory for JSON log files")

    commands = parser.add_subparsers(dest="command", required=True)

    parse_cmd = commands.add_parser("parse", help="Parse an export and print the records")
    _add_document_args(parse_cmd)
    parse_cmd.add_argument("--json", action="store_true", help="Print records as JSON")

    sync_cmd = commands.add_parser("sync", help="Create accounts for the records in an export")
    _add_document_args(sync_cmd)
    sync_cmd.add_argument("--dry-run", action="store_true", help="Simulate without network calls")
    sync_cmd.add_argument(
        "--include-students",
        action="store_true",
        help="Also sync student records (default: teachers only)",
    )
    sync_cmd.add_argument(
        "--attributes",
        nargs="+",
        choices=[a.value for a in SyncableAttribute],
        default=[a.value for a in DEFAULT_SYNC_ATTRIBUTES],
        help="Record attributes copied to new accounts",
    )

    users_cmd = commands.add_parser("users", help="List directory users")
    users_cmd.add_argument("--search", default=None)
    users_cmd.add_argument("--first", type=int, default=0)
    users_cmd.add_argument("--max", type=int, default=100)

    for name, help_text in (
        ("enable", "Enable accounts"),
        ("disable", "Disable accounts"),
        ("delete", "Delete accounts"),
    ):
        cmd = commands.add_parser(name, help=help_text)
        cmd.add_argument("user_ids", nargs="+")
        cmd.add_argument("--dry-run", action="store_true")

    return parser.parse_args(argv)


def _add_document_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", type=Path, help="XML or CSV export")
    parser.add_argument("--format", choices=["xml", "csv"], default=None, help="Override detection by suffix")
    parser.add_argument(
        "--mapping",
        default=None,
        help="CSV column mapping, e.g. first_name=0,last_name=1,email=2",
    )


def parse_mapping_arg(value: str) -> FieldMapping:
    columns = {}
    for part in value.split(","):
        name, _, index = part.partition("=")
        if not index.strip().isdigit():
            raise ValueError(f"Invalid mapping entry: {part!r}")
        columns[name.strip()] = int(index)
    return FieldMapping.manual([], **columns)


def load_records(args: argparse.Namespace, config: AppConfig) -> ParseResult:
    text = args.file.read_text(encoding="utf-8-sig")
    fmt = args.format or detect_format(args.file)

    if fmt == "csv" and args.mapping:
        return process_with_mapping(text, parse_mapping_arg(args.mapping))
    return parse_document(text, fmt, config.ingestion.to_limits())


def print_parse_result(result: ParseResult, as_json: bool) -> None:
    if isinstance(result, CsvParseResult) and result.needs_manual_mapping:
        print("Columns could not be mapped automatically. Supply --mapping.")
        print("Headers:")
        for index, header in enumerate(result.mapping.headers):
            print(f"  {index}: {header}")
        print("Sample rows:")
        for row in result.mapping.sample_rows:
            print("  " + " | ".join(row))
        return

    if as_json:
        print(json.dumps({"users": result.users, "warnings": result.warnings}, default=json_serializer, indent=2))
        return

    if isinstance(result, CsvParseResult):
        print(mapping_report(result.mapping))
        print()
    for user in result.users:
        label = f" [{user.class_label}]" if user.class_label else ""
        print(f"{user.id:<14} {user.user_type.value:<8} {user.display_name}{label} <{user.email}> {user.institutional_id}")
    print(f"\n{len(result.teachers)} teachers, {len(result.students)} students")
    for warning in result.warnings:
        print(f"WARNING: {warning}")


def print_sync_results(results: List[SyncResult]) -> None:
    for result in results:
        if not result.success:
            print(f"FAILED   {result.record_id}: {result.error}")
        elif result.already_existed:
            print(f"EXISTS   {result.record_id}")
        else:
            print(f"CREATED  {result.record_id}")
    summary = SyncSummary.from_results(results)
    print(
        f"\n{summary.total} records: {summary.created} created, "
        f"{summary.already_existed} already existed, {summary.failed} failed"
    )


def build_session(config: AppConfig, http: aiohttp.ClientSession) -> AuthSession:
    idp = config.identity_provider
    return AuthSession(
        OIDCEndpoints(idp.url, idp.realm),
        idp.client_id,
        idp.redirect_uri,
        http,
        timeout=config.http.timeout_seconds,
        retry_config=config.http.retry,
    )


async def interactive_login(session: AuthSession, config: AppConfig) -> ProviderProfile:
    print("Open this URL in a browser and sign in:\n")
    print(session.initiate_login())
    callback_url = await asyncio.get_running_loop().run_in_executor(
        None, input, "\nPaste the URL you were redirected to: "
    )
    await session.complete_login_from_callback(callback_url.strip())
    return await load_profile(
        session,
        required_role=config.sync.required_admin_role,
        role_attribute=config.sync.role_attribute,
        school_number_attribute=config.sync.school_number_attribute,
    )


def _progress(position: int, total: int, result: SyncResult) -> None:
    logger.debug("Sync progress %s/%s", position, total, extra={"record_id": result.record_id})


async def run_sync(args: argparse.Namespace, config: AppConfig) -> int:
    parsed = load_records(args, config)
    if isinstance(parsed, CsvParseResult) and parsed.needs_manual_mapping:
        print_parse_result(parsed, as_json=False)
        return 2

    for warning in parsed.warnings:
        print(f"WARNING: {warning}")
    records = [u for u in parsed.users if args.include_students or u.user_type is UserType.TEACHER]
    attributes = [SyncableAttribute(a) for a in args.attributes]
    policy = InstitutionalIdPolicy.from_config(config.institutional_ids)

    if args.dry_run:
        engine = IdentitySyncEngine(None, config.sync, id_policy=policy)
        print_sync_results(await engine.sync_users(records, attributes, dry_run=True, on_progress=_progress))
        return 0

    async with create_session() as http:
        session = build_session(config, http)
        try:
            profile = await interactive_login(session, config)
            directory = KeycloakDirectory(session, session.endpoints.admin_url)
            engine = IdentitySyncEngine(directory, config.sync, profile=profile, id_policy=policy)
            results = await engine.sync_users(records, attributes, on_progress=_progress)
        finally:
            await session.logout()

    print_sync_results(results)
    return 0 if all(r.success for r in results) else 1


async def run_directory_command(args: argparse.Namespace, config: AppConfig) -> int:
    dry_run = getattr(args, "dry_run", False)
    if dry_run and args.command != "users":
        engine = IdentitySyncEngine(None, config.sync)
        results = await _bulk(engine, args.command, args.user_ids, dry_run=True)
        print_sync_results(results)
        return 0

    async with create_session() as http:
        session = build_session(config, http)
        try:
            await interactive_login(session, config)
            directory = KeycloakDirectory(session, session.endpoints.admin_url)
            if args.command == "users":
                users = await directory.list_users(args.first, args.max, args.search)
                total = await directory.count_users(args.search)
                for user in users:
                    state = "enabled" if user.enabled else "disabled"
                    print(f"{user.id}  {user.username:<40} {state}")
                print(f"\n{len(users)} of {total} users")
                return 0

            engine = IdentitySyncEngine(directory, config.sync)
            results = await _bulk(engine, args.command, args.user_ids, dry_run=False)
        finally:
            await session.logout()

    print_sync_results(results)
    return 0 if all(r.success for r in results) else 1


async def _bulk(engine: IdentitySyncEngine, command: str, user_ids: List[str], dry_run: bool) -> List[SyncResult]:
    if command == "delete":
        return await engine.delete_many(user_ids, dry_run=dry_run)
    return await engine.set_enabled_many(user_ids, command == "enable", dry_run=dry_run)


def _needs_identity_provider(args: argparse.Namespace) -> bool:
    if args.command == "parse":
        return False
    return not getattr(args, "dry_run", False)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv(PROJECT_ROOT / ".env")

    global logger
    args = parse_args(argv)

    try:
        config = load_config(args.config, require_identity_provider=_needs_identity_provider(args))
    except (FileNotFoundError, ValueError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    log_dir = args.log_dir or (Path(config.logging.log_dir) if config.logging.log_dir else None)
    console_level = config.logging.level(args.log_level or config.logging.console_level)
    if getattr(args, "json", False):
        # Keep stdout parseable
        console_level = max(console_level, logging.WARNING)
    setup_logging(
        name="provisioning",
        stage=args.command,
        realm=config.identity_provider.realm or None,
        log_dir=log_dir,
        json_format=config.logging.json_format,
        console_level=console_level,
        file_level=config.logging.level(config.logging.file_level),
        log_to_stdout=log_dir is None or os.getenv("LOG_TO_STDOUT", "false").lower() in ("true", "1", "yes"),
    )
    logger = get_logger(__name__)

    try:
        if args.command == "parse":
            print_parse_result(load_records(args, config), args.json)
            return 0
        if args.command == "sync":
            return asyncio.run(run_sync(args, config))
        return asyncio.run(run_directory_command(args, config))
    except ProvisioningError as e:
        logger.error("Command failed: %s", e, extra={"error_type": type(e).__name__})
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
