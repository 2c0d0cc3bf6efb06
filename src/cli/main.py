"""Lodestream CLI entry points.
This module exposes ingest, query, and dead-letter commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
from dataclasses import asdict, replace
import json
from pathlib import Path
from typing import Any, Sequence

from core.config import LodestreamConfig
from core.errors import LodestreamError
from core.logging_config import configure_logging
from core.types import JobOutcome
from lodestream import LodestreamClient


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="lodestream", description="Lodestream ingestion CLI")
    parser.add_argument("--data-root", help="Override LODESTREAM_DATA_ROOT for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_ingest_command(subparsers)
    _add_query_command(subparsers)
    _add_dead_letters_command(subparsers)
    _add_resubmit_command(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Lodestream CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    query_params: dict[str, Any] = {}
    if args.command == "query":
        try:
            query_params = _parse_query_params(args.params)
        except ValueError as error:
            parser.error(str(error))
    try:
        config = _build_config(args.data_root)
        configure_logging(config.log_level)
        with LodestreamClient(config) as client:
            if args.command == "ingest":
                return _run_ingest_command(client, args)
            if args.command == "query":
                return _run_query_command(client, query_params)
            if args.command == "dead-letters":
                return _run_dead_letters_command(client)
            if args.command == "resubmit":
                return _run_resubmit_command(client, args)
    except LodestreamError as error:
        parser.exit(1, f"lodestream: error: {error}\n")
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_config(data_root: str | None) -> LodestreamConfig:
    """Build runtime config with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Runtime configuration.
    """
    config = LodestreamConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    return config


def _run_ingest_command(client: LodestreamClient, args: argparse.Namespace) -> int:
    """Handle ingest command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Zero when every job succeeded, else one.
    """
    futures = [client.submit(reference) for reference in args.references]
    outcomes = [future.result() for future in futures]
    for outcome in outcomes:
        _print_json(_outcome_payload(outcome))
    return 0 if all(outcome.status == "succeeded" for outcome in outcomes) else 1


def _run_query_command(client: LodestreamClient, params: dict[str, Any]) -> int:
    """Handle query command.

    Args:
        client: SDK client.
        params: Parsed query parameters.

    Returns:
        Exit code.
    """
    page = client.query(params)
    _print_json(asdict(page))
    return 0


def _run_dead_letters_command(client: LodestreamClient) -> int:
    """Handle dead-letters command."""
    for entry in client.dead_letters():
        _print_json(asdict(entry))
    return 0


def _run_resubmit_command(client: LodestreamClient, args: argparse.Namespace) -> int:
    """Handle resubmit command."""
    outcome = client.resubmit(args.job_id)
    _print_json(_outcome_payload(outcome))
    return 0 if outcome.status == "succeeded" else 1


def _parse_query_params(raw_params: Sequence[str]) -> dict[str, Any]:
    """Parse ``key=value`` tokens, collecting repeated keys into lists."""
    params: dict[str, Any] = {}
    for token in raw_params:
        key, separator, value = token.partition("=")
        if not separator or not key:
            raise ValueError(
                f"Invalid query parameter '{token}': expected key=value."
            )
        if key in params:
            existing = params[key]
            params[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            params[key] = value
    return params


def _outcome_payload(outcome: JobOutcome) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "job_id": outcome.job.job_id,
        "file_reference": outcome.job.file_reference,
        "status": outcome.status,
        "attempts": outcome.attempts,
    }
    if outcome.result is not None:
        payload["records_parsed"] = outcome.result.records_parsed
        payload["records_written"] = outcome.result.records_written
        payload["records_discarded"] = outcome.result.records_discarded
        payload["batches_failed"] = len(outcome.result.failed_batches)
    if outcome.error_type is not None:
        payload["error_type"] = outcome.error_type
        payload["error_message"] = outcome.error_message
    return payload


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, sort_keys=True, default=str))


def _add_ingest_command(subparsers: Any) -> None:
    """Register ingest command."""
    parser = subparsers.add_parser("ingest", help="Ingest JSON array files into the store")
    parser.add_argument(
        "references",
        nargs="+",
        help="File references: s3://bucket/key, http(s):// URL, or local path",
    )


def _add_query_command(subparsers: Any) -> None:
    """Register query command."""
    parser = subparsers.add_parser("query", help="Filter and page stored records")
    parser.add_argument(
        "params",
        nargs="*",
        help="Filters such as unifiedPrice__gte=100 plus _limit/_skip/_sort/_order",
    )


def _add_dead_letters_command(subparsers: Any) -> None:
    """Register dead-letters command."""
    subparsers.add_parser("dead-letters", help="List jobs that exhausted their retries")


def _add_resubmit_command(subparsers: Any) -> None:
    """Register resubmit command."""
    parser = subparsers.add_parser("resubmit", help="Resubmit a dead-lettered job")
    parser.add_argument("job_id", help="Job id from the dead-letters listing")
