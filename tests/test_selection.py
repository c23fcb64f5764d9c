"""
Tests for interactive coin selection.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from conftest import RecordingAsk

from chainfund.errors import EmptyWalletError
from chainfund.models import Output, Utxo
from chainfund.selection import (
    check_selection,
    coin_choices,
    select_utxos,
    selection_validator,
)


class TestCheckSelection:
    """Tests for the pure selection check."""

    def test_empty_selection_rejected(self) -> None:
        assert check_selection(100_000, []) is False

    def test_exact_cover_accepted(self) -> None:
        assert check_selection(100_000, [60_000, 40_000]) is True

    def test_over_cover_accepted(self) -> None:
        assert check_selection(100_000, [250_000]) is True

    def test_shortfall_message(self) -> None:
        assert check_selection(100_000, [60_000]) == "Selected 0.00060000, need 0.00040000 more"

    @pytest.mark.parametrize(
        "total, selected",
        [
            (100_000, [1]),
            (2_500_000, [1_000_000, 999_999]),
            (123_456_789, [23_456_789]),
        ],
    )
    def test_shortfall_equals_total_minus_selected(self, total: int, selected: list[int]) -> None:
        message = check_selection(total, selected)

        assert isinstance(message, str)
        shortfall = Decimal(message.split("need ")[1].split(" more")[0])
        assert shortfall * 100_000_000 == total - sum(selected)

    def test_zero_total_accepts_any_selection(self) -> None:
        assert check_selection(0, [1]) is True


class TestChoices:
    def test_coin_choices(self, wallet_utxos: list[Utxo]) -> None:
        choices = coin_choices(wallet_utxos)

        assert [c.value for c in choices] == ["cc" * 32 + ":0", "dd" * 32 + ":2"]
        assert choices[0].name == "0.00060000 " + "cc" * 32 + ":0"

    def test_validator_recomputes_each_selection(self, wallet_utxos: list[Utxo]) -> None:
        validate = selection_validator(wallet_utxos, [Output("addr1", 100_000)])

        assert validate([]) is False
        assert validate(["cc" * 32 + ":0"]) == "Selected 0.00060000, need 0.00040000 more"
        assert validate(["dd" * 32 + ":2"]) == "Selected 0.00050000, need 0.00050000 more"
        assert validate(["cc" * 32 + ":0", "dd" * 32 + ":2"]) is True

    def test_validator_sums_all_outputs(self, wallet_utxos: list[Utxo]) -> None:
        outputs = [Output("addr1", 30_000), Output("addr2", 40_000)]
        validate = selection_validator(wallet_utxos, outputs)

        assert validate(["dd" * 32 + ":2"]) == "Selected 0.00050000, need 0.00020000 more"
        assert validate(["cc" * 32 + ":0"]) is True


class TestSelectUtxos:
    """Tests for select_utxos."""

    @pytest.mark.asyncio
    async def test_prompt_shape(self, wallet_utxos: list[Utxo]) -> None:
        ask = RecordingAsk(["cc" * 32 + ":0", "dd" * 32 + ":2"])

        selected = await select_utxos(ask, wallet_utxos, [Output("addr1", 100_000)])

        assert selected == ["cc" * 32 + ":0", "dd" * 32 + ":2"]
        assert len(ask.prompts) == 1
        prompt = ask.prompts[0]
        assert prompt.name == "inputs"
        assert prompt.type == "checkbox"
        assert prompt.loop is False
        assert len(prompt.choices) == 2

    @pytest.mark.asyncio
    async def test_empty_wallet_never_prompts(self) -> None:
        ask = RecordingAsk()

        with pytest.raises(EmptyWalletError, match="WalletHasZeroConfirmedUtxos"):
            await select_utxos(ask, [], [Output("addr1", 100_000)])

        assert ask.prompts == []
