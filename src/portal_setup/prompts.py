"""Interactive collection of the operator's settings and connection choices."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from rich.prompt import Prompt

from . import console
from .auth import REQUIRED_SCOPES, ManagementToken, check_domain_reachable
from .config import SecretRef, SetupConfig, normalize_domain, normalize_web_url
from .discovery import ConnectionChoice
from .errors import ValidationFailure

STRATEGY_LABELS: Dict[str, str] = {
    "ad": "an AD connection",
    "sms": "an SMS passwordless connection",
    "email": "an email passwordless connection",
}

TOKEN_FILE = "token.txt"


def _default_token(token_file: Path) -> Optional[str]:
    if token_file.exists():
        return token_file.read_text(encoding="utf-8").strip() or None
    return None


def ask_domain() -> str:
    while True:
        domain = Prompt.ask("Please enter Auth0 tenant domain.")
        try:
            domain = normalize_domain(domain)
            asyncio.run(check_domain_reachable(domain))
        except (ValueError, ValidationFailure):
            console.fail("Please enter a valid domain in {tenant}.auth0.com format.")
            continue
        return domain


def ask_token(domain: str, token_file: Path = Path(TOKEN_FILE)) -> str:
    message = (
        "Please enter management api token with [bold]"
        + ", ".join(REQUIRED_SCOPES)
        + "[/bold] scopes."
    )
    default = _default_token(token_file)
    while True:
        raw = Prompt.ask(message, default=default, password=default is None, show_default=False)
        try:
            ManagementToken.from_raw(raw or "").validate_for(domain)
        except ValidationFailure as exc:
            console.fail(str(exc))
            continue
        return raw.strip()


def ask_portal_url() -> str:
    while True:
        url = Prompt.ask("Please enter public url of the portal deployment.")
        try:
            return normalize_web_url(url)
        except ValueError as exc:
            console.fail(str(exc))


def prompt_config(overrides: Optional[Mapping[str, object]] = None) -> SetupConfig:
    """Ask for whatever the CLI flags did not provide and build the run config."""
    values: Dict[str, object] = dict(overrides or {})
    if not values.get("domain"):
        values["domain"] = ask_domain()
    if not values.get("token"):
        values["token"] = SecretRef(value=ask_token(normalize_domain(str(values["domain"]))))
    if not values.get("portal_url"):
        values["portal_url"] = ask_portal_url()
    return SetupConfig(**values)


def select_connections(
    discovered: Mapping[str, List[ConnectionChoice]],
    preselected: Optional[Mapping[str, Optional[str]]] = None,
    interactive: bool = True,
) -> Dict[str, str]:
    """Pick one connection id per strategy.

    Preselected ids must be among the discovered ones. A strategy with a
    single connection is chosen without asking.
    """
    preselected = preselected or {}
    selected: Dict[str, str] = {}
    for strategy, choices in discovered.items():
        wanted = preselected.get(strategy)
        if wanted:
            match = next((c for c in choices if wanted in (c.id, c.label)), None)
            if match is None:
                raise ValidationFailure(f"Connection {wanted} is not a {strategy} connection")
            selected[strategy] = match.id
            continue
        if len(choices) == 1 or not interactive:
            if len(choices) > 1:
                raise ValidationFailure(
                    f"Several {strategy} connections exist; choose one with --{strategy}-connection"
                )
            selected[strategy] = choices[0].id
            continue
        label = Prompt.ask(
            f"Please select {STRATEGY_LABELS.get(strategy, f'a {strategy} connection')}.",
            choices=[c.label for c in choices],
            default=choices[0].label,
        )
        selected[strategy] = next(c.id for c in choices if c.label == label)
    return selected
