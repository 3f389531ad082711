"""Operator-facing console output."""
from __future__ import annotations

from rich.console import Console

console = Console(highlight=False)


def banner(text: str) -> None:
    console.print(f" {text} ", style="bold white on green", markup=False)
    console.print()


def step(text: str) -> None:
    console.print(text, style="bold green", markup=False)


def warn(text: str) -> None:
    console.print(text, style="bold yellow", markup=False)


def fail(text: str) -> None:
    console.print(text, style="bold red", markup=False)


def done(text: str) -> None:
    console.print(text, style="bold on green", markup=False)
