"""
Terminal multi-select prompt.
"""

from __future__ import annotations

import asyncio

import typer

from chainfund.errors import InsufficientFundsError, PreconditionError
from chainfund.selection import SelectPrompt

DEFAULT_MAX_ATTEMPTS = 3


def parse_picks(answer: str, choice_count: int) -> list[int]:
    """
    Parse "1,3" style picks into zero-based indexes.

    "all" picks every choice. Duplicates are ignored, order is kept.

    Raises:
        ValueError: On anything that is not a valid choice number
    """
    answer = answer.strip().lower()
    if not answer:
        return []
    if answer == "all":
        return list(range(choice_count))

    picks: list[int] = []
    for part in answer.replace(" ", ",").split(","):
        if not part:
            continue
        if not part.isdigit() or not 1 <= int(part) <= choice_count:
            raise ValueError(f"Not a choice: {part}")
        index = int(part) - 1
        if index not in picks:
            picks.append(index)
    return picks


async def checkbox_prompt(
    prompt: SelectPrompt, max_attempts: int = DEFAULT_MAX_ATTEMPTS
) -> list[str]:
    """
    Ask the user to pick several choices, re-asking until the selection validates.

    Raises:
        InsufficientFundsError: If the last selection did not cover the outputs
        PreconditionError: If the last answer picked no coins
    """
    typer.echo(f"\nSelect {prompt.name} (comma separated numbers, or 'all'):")
    for i, choice in enumerate(prompt.choices, 1):
        typer.echo(f"  [{i}] {choice.name}")

    shortfall: str | None = None
    for _ in range(max_attempts):
        answer = await asyncio.to_thread(typer.prompt, "Selection", default="", show_default=False)

        try:
            picks = parse_picks(answer, len(prompt.choices))
        except ValueError as e:
            typer.secho(str(e), fg=typer.colors.YELLOW)
            shortfall = None
            continue

        selected = [prompt.choices[i].value for i in picks]
        verdict = prompt.validate(selected)
        if verdict is True:
            return selected

        shortfall = verdict if isinstance(verdict, str) else None
        typer.secho(shortfall or "Select at least one entry", fg=typer.colors.YELLOW)

    if shortfall is None:
        raise PreconditionError("ExpectedSelectedUtxosToFundTransaction")
    raise InsufficientFundsError(shortfall)
