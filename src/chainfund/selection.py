"""
Interactive coin selection.

The wallet's confirmed coins are offered as a multi-select prompt. A
selection is accepted only when the chosen coins cover the requested
outputs; otherwise the prompt shows how much is still missing.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from loguru import logger

from chainfund.amounts import format_tokens
from chainfund.errors import EmptyWalletError
from chainfund.models import Output, Utxo

# True accepts, False rejects silently, a string rejects with that message
ValidationResult = bool | str
Validator = Callable[[list[str]], ValidationResult]


@dataclass(frozen=True)
class Choice:
    """Selectable prompt item."""

    name: str
    value: str


@dataclass(frozen=True)
class SelectPrompt:
    """Description of a prompt for the ask capability."""

    name: str
    type: str
    choices: list[Choice]
    validate: Validator
    loop: bool = False


class Ask(Protocol):
    def __call__(self, prompt: SelectPrompt) -> Awaitable[list[str]]: ...


def check_selection(total_requested: int, selected: Sequence[int]) -> ValidationResult:
    """
    Decide whether selected coin values cover the requested total.

    Args:
        total_requested: Sum of requested outputs in satoshis
        selected: Values of the selected coins in satoshis

    Returns:
        True when covered, False for an empty selection, otherwise a
        message with the shortfall in bitcoin
    """
    if not selected:
        return False

    tokens = sum(selected)
    if tokens < total_requested:
        missing = total_requested - tokens
        return f"Selected {format_tokens(tokens)}, need {format_tokens(missing)} more"

    return True


def coin_choices(utxos: Sequence[Utxo]) -> list[Choice]:
    return [
        Choice(name=f"{format_tokens(utxo.tokens)} {utxo.outpoint}", value=str(utxo.outpoint))
        for utxo in utxos
    ]


def selection_validator(utxos: Sequence[Utxo], outputs: Sequence[Output]) -> Validator:
    """Build the prompt validator for a set of coins and requested outputs."""
    total = sum(output.tokens for output in outputs)
    values = {str(utxo.outpoint): utxo.tokens for utxo in utxos}

    def validate(selected: list[str]) -> ValidationResult:
        return check_selection(total, [values[outpoint] for outpoint in selected])

    return validate


async def select_utxos(ask: Ask, utxos: Sequence[Utxo], outputs: Sequence[Output]) -> list[str]:
    """
    Ask for the coins to spend.

    Raises:
        EmptyWalletError: If there are no coins to offer; the prompt is not shown
    """
    if not utxos:
        raise EmptyWalletError("WalletHasZeroConfirmedUtxos")

    logger.debug(f"Offering {len(utxos)} confirmed coins for selection")

    return await ask(
        SelectPrompt(
            name="inputs",
            type="checkbox",
            choices=coin_choices(utxos),
            validate=selection_validator(utxos, outputs),
            loop=False,
        )
    )
