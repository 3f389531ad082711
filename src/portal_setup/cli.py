from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from pydantic import ValidationError

from . import console
from .audit import InMemoryAuditStore, JsonAuditLogger
from .config import RetrySettings, SecretRef, SetupConfig
from .discovery import ConnectionChoice
from .errors import MissingConnectionsError, SetupError, ValidationFailure
from .prompts import prompt_config, select_connections
from .setup_runner import SetupRunner

EXIT_VALIDATION = 1
EXIT_MISSING_CONNECTIONS = 2
EXIT_INTERRUPTED = 130

SUMMARY_EVENTS = ("operation_failed", "retry_exhausted", "artefact_missing", "connection_skipped")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Provision an Auth0 tenant for the Self Service Portal")
    parser.add_argument("--config", help="Path to a setup configuration YAML")
    parser.add_argument("--domain", help="Auth0 tenant domain, e.g. tenant.auth0.com")
    parser.add_argument("--token-env", help="Environment variable holding the Management API token")
    parser.add_argument("--portal-url", help="Public URL of the portal deployment")
    parser.add_argument("--output-dir", help="Directory for client.env and server.env")
    parser.add_argument("--ad-connection", help="AD connection id or name to enable")
    parser.add_argument("--sms-connection", help="SMS passwordless connection id or name to enable")
    parser.add_argument("--email-connection", help="Email passwordless connection id or name to enable")
    parser.add_argument("--retry-delay", type=float, help="Seconds to wait after a 429 response")
    parser.add_argument("--max-attempts", type=int, help="Give up on a call after this many attempts")
    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Fail instead of prompting for missing values",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> SetupConfig:
    values: Dict[str, object] = {}
    if args.config:
        values.update(SetupConfig.read_raw(Path(args.config)))
    if args.domain:
        values["domain"] = args.domain
    if args.token_env:
        values["token"] = SecretRef(env=args.token_env)
    if args.portal_url:
        values["portal_url"] = args.portal_url
    if args.output_dir:
        values["output_dir"] = Path(args.output_dir)
    if args.retry_delay is not None or args.max_attempts is not None:
        retry = dict(values.get("retry") or {})
        if args.retry_delay is not None:
            retry["delay_seconds"] = args.retry_delay
        if args.max_attempts is not None:
            retry["max_attempts"] = args.max_attempts
        values["retry"] = RetrySettings(**retry)

    if args.non_interactive:
        return SetupConfig(**values)
    return prompt_config(values)


def summarize_run(store: InMemoryAuditStore) -> List[str]:
    """One line per problem the run reported but carried on past, oldest first."""
    lines: List[str] = []
    for name in SUMMARY_EVENTS:
        for event in reversed(store.named(name)):
            detail = ", ".join(f"{k}={v}" for k, v in event.extra.items())
            lines.append(f"{name}: {detail}" if detail else name)
    return lines


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    preselected = {
        "ad": args.ad_connection,
        "sms": args.sms_connection,
        "email": args.email_connection,
    }

    def selector(discovered: Mapping[str, List[ConnectionChoice]]) -> Dict[str, str]:
        return select_connections(discovered, preselected, interactive=not args.non_interactive)

    store = InMemoryAuditStore()
    try:
        config = build_config(args)
        runner = SetupRunner(config, audit_logger=JsonAuditLogger(store=store))
        asyncio.run(runner.run(selector))
    except MissingConnectionsError as exc:
        console.fail(exc.message)
        return EXIT_MISSING_CONNECTIONS
    except (ValidationFailure, ValidationError, ValueError, FileNotFoundError) as exc:
        console.fail(str(exc))
        return EXIT_VALIDATION
    except SetupError as exc:
        console.fail(str(exc))
        return EXIT_VALIDATION
    except KeyboardInterrupt:
        console.fail("setup interrupted")
        return EXIT_INTERRUPTED

    problems = summarize_run(store)
    if problems:
        console.warn(f"Setup finished with {len(problems)} problem(s); the env files may be incomplete:")
        for line in problems:
            console.warn(f"  {line}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
