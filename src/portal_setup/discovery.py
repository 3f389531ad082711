from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping

from .api_client import ManagementApiClient
from .errors import MissingConnectionsError

STRATEGY_REQUIREMENTS: Dict[str, str] = {
    "ad": "AD connection is required. Please setup an AD connection and rerun the script.",
    "sms": (
        "SMS passwordless connection is required. "
        "Please setup passwordless SMS and rerun the script."
    ),
    "email": (
        "Email passwordless connection is required. "
        "Please setup passwordless Email and rerun the script."
    ),
}


@dataclass(frozen=True)
class ConnectionChoice:
    label: str
    id: str


async def find_connections(client: ManagementApiClient, strategy: str) -> List[ConnectionChoice]:
    connections = await client.list(
        "connections", params={"strategy": strategy, "fields": "name"}
    )
    return [ConnectionChoice(label=c["name"], id=c["id"]) for c in connections or []]


async def discover_all(
    client: ManagementApiClient, strategies: Iterable[str]
) -> Dict[str, List[ConnectionChoice]]:
    """Discover connections for every strategy concurrently, keyed by strategy."""
    strategies = list(strategies)
    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(find_connections(client, s)) for s in strategies]
    except ExceptionGroup as group_error:
        raise group_error.exceptions[0] from group_error
    return {strategy: task.result() for strategy, task in zip(strategies, tasks)}


def ensure_required(
    discovered: Mapping[str, List[ConnectionChoice]], required: Iterable[str]
) -> None:
    for strategy in required:
        if not discovered.get(strategy):
            message = STRATEGY_REQUIREMENTS.get(
                strategy,
                f"A {strategy} connection is required. "
                f"Please setup a {strategy} connection and rerun the script.",
            )
            raise MissingConnectionsError(strategy, message)
