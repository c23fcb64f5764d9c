"""
Minimal PSBT (BIP 174) reader.

Only the global unsigned transaction is decoded. Backends use it to report
which coins a funded PSBT spends and which outputs it pays.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

PSBT_MAGIC = b"psbt\xff"
PSBT_GLOBAL_UNSIGNED_TX = 0x00


class PsbtDecodeError(Exception):
    pass


@dataclass
class TxInput:
    txid: str
    vout: int
    sequence: int


@dataclass
class TxOutput:
    value: int
    script: bytes


@dataclass
class UnsignedTransaction:
    version: int
    inputs: list[TxInput]
    outputs: list[TxOutput]
    locktime: int


def read_varint(data: bytes, offset: int) -> tuple[int, int]:
    first = data[offset]
    offset += 1

    if first < 0xFD:
        return first, offset
    if first == 0xFD:
        value = int.from_bytes(data[offset : offset + 2], "little")
        return value, offset + 2
    if first == 0xFE:
        value = int.from_bytes(data[offset : offset + 4], "little")
        return value, offset + 4
    value = int.from_bytes(data[offset : offset + 8], "little")
    return value, offset + 8


def deserialize_unsigned_transaction(tx_bytes: bytes) -> UnsignedTransaction:
    """Parse a transaction serialized without witness data."""
    try:
        offset = 0
        version = int.from_bytes(tx_bytes[offset : offset + 4], "little")
        offset += 4

        input_count, offset = read_varint(tx_bytes, offset)
        inputs: list[TxInput] = []

        for _ in range(input_count):
            # Serialized little-endian, displayed big-endian
            txid = tx_bytes[offset : offset + 32][::-1].hex()
            offset += 32

            vout = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4

            script_len, offset = read_varint(tx_bytes, offset)
            offset += script_len

            sequence = int.from_bytes(tx_bytes[offset : offset + 4], "little")
            offset += 4

            inputs.append(TxInput(txid, vout, sequence))

        output_count, offset = read_varint(tx_bytes, offset)
        outputs: list[TxOutput] = []

        for _ in range(output_count):
            value = int.from_bytes(tx_bytes[offset : offset + 8], "little")
            offset += 8

            script_len, offset = read_varint(tx_bytes, offset)
            script = tx_bytes[offset : offset + script_len]
            offset += script_len

            outputs.append(TxOutput(value, script))

        if offset + 4 > len(tx_bytes):
            raise PsbtDecodeError("Transaction truncated before locktime")
        locktime = int.from_bytes(tx_bytes[offset : offset + 4], "little")

        return UnsignedTransaction(version, inputs, outputs, locktime)

    except PsbtDecodeError:
        raise
    except Exception as e:
        raise PsbtDecodeError(f"Failed to parse transaction: {e}") from e


def decode_psbt(psbt: str) -> UnsignedTransaction:
    """
    Extract the unsigned transaction from a base64 PSBT.

    Raises:
        PsbtDecodeError: If the PSBT is malformed or has no unsigned transaction
    """
    try:
        data = base64.b64decode(psbt, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PsbtDecodeError(f"Invalid PSBT encoding: {e}") from e

    if not data.startswith(PSBT_MAGIC):
        raise PsbtDecodeError("Missing PSBT magic bytes")

    offset = len(PSBT_MAGIC)
    try:
        while True:
            key_len, offset = read_varint(data, offset)
            if key_len == 0:
                break
            key = data[offset : offset + key_len]
            offset += key_len

            value_len, offset = read_varint(data, offset)
            value = data[offset : offset + value_len]
            offset += value_len

            if key == bytes([PSBT_GLOBAL_UNSIGNED_TX]):
                return deserialize_unsigned_transaction(value)
    except IndexError as e:
        raise PsbtDecodeError("PSBT global map truncated") from e

    raise PsbtDecodeError("PSBT has no unsigned transaction")
