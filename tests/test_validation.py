"""
Tests for funding request validation.
"""

from __future__ import annotations

from typing import Any

import pytest
from conftest import FakeBackend, RecordingAsk

from chainfund.errors import PreconditionError
from chainfund.funding import fund_transaction, validate_request
from chainfund.models import FundRequest

OUTPOINT = "ab" * 32 + ":0"


def make_request(**overrides: Any) -> FundRequest:
    fields: dict[str, Any] = {"addresses": ["addr1"], "amounts": ["0.001"], "utxos": []}
    fields.update(overrides)
    return FundRequest(**fields)


class TestValidateRequest:
    """Tests for each precondition."""

    def test_valid_request(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        validate_request(make_request(), backend, ask)

    def test_missing_backend(self, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedAuthenticatedBackend"):
            validate_request(make_request(), None, ask)

    def test_amounts_not_a_list(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedAmountsToFundTransaction"):
            validate_request(make_request(amounts="0.001"), backend, ask)

    def test_addresses_not_a_list(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedAddressesToFundTransaction"):
            validate_request(make_request(addresses=None), backend, ask)

    def test_no_addresses(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedAddressToSendFundsTo"):
            validate_request(make_request(addresses=[], amounts=[]), backend, ask)

    def test_length_mismatch(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        request = make_request(addresses=["addr1", "addr2"], amounts=["0.001"])
        with pytest.raises(PreconditionError, match="ExpectedAmountOfFundsToSendToAddress"):
            validate_request(request, backend, ask)

    def test_public_key_as_address(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        request = make_request(addresses=["addr1", "03" + "ab" * 32], amounts=["1", "2"])
        with pytest.raises(PreconditionError, match="NotPublicKeys"):
            validate_request(request, backend, ask)

    def test_missing_ask(self, backend: FakeBackend) -> None:
        with pytest.raises(PreconditionError, match="ExpectedAskFunction"):
            validate_request(make_request(), backend, None)

    def test_utxos_not_a_list(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedArrayOfUtxos"):
            validate_request(make_request(utxos=OUTPOINT), backend, ask)

    def test_malformed_utxo(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError, match="ExpectedOutpointFormattedUtxo"):
            validate_request(make_request(utxos=[OUTPOINT, "ab" * 32]), backend, ask)

    def test_explicit_utxos_and_selection(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        request = make_request(utxos=[OUTPOINT], is_selecting_utxos=True)
        with pytest.raises(PreconditionError, match="NotBoth"):
            validate_request(request, backend, ask)

    def test_selection_without_explicit_utxos(
        self, backend: FakeBackend, ask: RecordingAsk
    ) -> None:
        validate_request(make_request(is_selecting_utxos=True), backend, ask)

    def test_error_code(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        with pytest.raises(PreconditionError) as exc_info:
            validate_request(make_request(addresses=[], amounts=[]), backend, ask)
        assert exc_info.value.code == 400

    def test_same_error_twice(self, backend: FakeBackend, ask: RecordingAsk) -> None:
        request = make_request(addresses=["addr1", "addr2"])
        errors = []
        for _ in range(2):
            with pytest.raises(PreconditionError) as exc_info:
                validate_request(request, backend, ask)
            errors.append((type(exc_info.value), exc_info.value.message))

        assert errors[0] == errors[1]


class TestValidationBeforeSideEffects:
    """Invalid requests never reach the node."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides",
        [
            {"addresses": ["a1", "a2"], "amounts": ["0.001"]},
            {"addresses": ["a1"], "amounts": ["0.001", "0.002"]},
            {"addresses": ["a1", "a2", "a3"], "amounts": []},
            {"utxos": [OUTPOINT], "is_selecting_utxos": True},
            {"utxos": ["not-an-outpoint"]},
        ],
    )
    async def test_no_backend_calls(
        self, backend: FakeBackend, ask: RecordingAsk, overrides: dict[str, Any]
    ) -> None:
        with pytest.raises(PreconditionError):
            await fund_transaction(make_request(**overrides), backend, ask)

        assert backend.calls == []
        assert ask.prompts == []
