"""
Errors raised by the funding workflow.

Every error carries an HTTP-style ``code`` next to its message so callers
can tell caller mistakes (4xx) from node failures (5xx).
"""

from __future__ import annotations


class FundTransactionError(Exception):
    """Base error for a failed funding invocation."""

    code = 500

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code}, {self.message!r})"


class PreconditionError(FundTransactionError):
    """Request failed validation; nothing was sent to the node."""

    code = 400


class AmountParseError(FundTransactionError):
    """An amount string could not be converted into satoshis."""

    code = 400


class InsufficientFundsError(FundTransactionError):
    """Selected coins do not cover the requested outputs."""

    code = 400


class DustOutputError(FundTransactionError):
    """An output is below the dust floor."""

    code = 400


class EmptyWalletError(FundTransactionError):
    """No confirmed coins are available to select from."""

    code = 400


class ExternalServiceError(FundTransactionError):
    """The node rejected or failed a call. The node's message is kept as-is."""

    code = 503
