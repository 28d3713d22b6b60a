"""
Transaction-related classes and functions.

Parses raw Bitcoin transactions, with or without SegWit witness data,
and computes the canonical transaction id from the legacy
(witness-free) serialization.
"""

from collections import namedtuple
from typing import List, Optional

from charmx.lib.errors import TxFormatError
from charmx.lib.hash import double_sha256, hash_to_hex_str
from charmx.lib.util import (
    pack_le_int32, pack_le_uint32, pack_le_uint64, pack_varint, pack_varbytes,
    read_varint, unpack_le_int32_from, unpack_le_uint32_from,
    unpack_le_uint64_from,
)

# Marker and flag bytes that follow the version field in a SegWit tx
SEGWIT_MARKER = 0x00
SEGWIT_FLAG = 0x01


class TxInput(namedtuple("TxInput", "prev_hash prev_idx script sequence witness")):
    """Class representing a transaction input.

    ``prev_hash`` is kept in serialized (internal) byte order and
    ``witness`` is a tuple of stack items, empty for legacy inputs.
    """

    def __str__(self):
        return f'Input({hash_to_hex_str(self.prev_hash)}, {self.prev_idx:d})'

    @property
    def outpoint(self) -> str:
        """The spent outpoint as ``txid:index``."""
        return f'{hash_to_hex_str(self.prev_hash)}:{self.prev_idx:d}'

    def serialize(self) -> bytes:
        return b''.join((
            self.prev_hash,
            pack_le_uint32(self.prev_idx),
            pack_varbytes(self.script),
            pack_le_uint32(self.sequence),
        ))


class TxOutput(namedtuple("TxOutput", "value pk_script")):

    def serialize(self) -> bytes:
        return b''.join((
            pack_le_uint64(self.value),
            pack_varbytes(self.pk_script),
        ))


class Tx(namedtuple("Tx", "version inputs outputs locktime")):
    """Class representing a transaction."""

    @property
    def has_witness(self) -> bool:
        return any(txin.witness for txin in self.inputs)

    def serialize_legacy(self) -> bytes:
        """The pre-SegWit serialization that the txid commits to."""
        return b''.join((
            pack_le_int32(self.version),
            pack_varint(len(self.inputs)),
            b''.join(txin.serialize() for txin in self.inputs),
            pack_varint(len(self.outputs)),
            b''.join(txout.serialize() for txout in self.outputs),
            pack_le_uint32(self.locktime),
        ))


class Deserializer:
    """Deserializes raw transactions.

    Reads the optional SegWit marker and flag and, when present, one
    witness stack per input after the outputs.  Any read past the end of
    the buffer raises TxFormatError.
    """

    def __init__(self, binary: bytes, start: int = 0):
        assert isinstance(binary, (bytes, bytearray, memoryview))
        self.binary = bytes(binary)
        self.binary_length = len(self.binary)
        self.cursor = start

    def read_tx(self) -> Tx:
        """Return a deserialized transaction."""
        version = self._read_le_int32()
        segwit = self._is_segwit_marker()
        if segwit:
            self.cursor += 2
        inputs = self._read_inputs()
        outputs = self._read_outputs()
        if segwit:
            inputs = [txin._replace(witness=self._read_witness_stack())
                      for txin in inputs]
        locktime = self._read_le_uint32()
        return Tx(version, inputs, outputs, locktime)

    def read_tx_and_check(self) -> Tx:
        """Read a transaction and require that it consumes every byte."""
        tx = self.read_tx()
        if self.cursor != self.binary_length:
            raise TxFormatError('trailing-data',
                                f'{self.binary_length - self.cursor} bytes left')
        return tx

    def _is_segwit_marker(self) -> bool:
        end = self.cursor + 2
        if end > self.binary_length:
            return False
        return (self.binary[self.cursor] == SEGWIT_MARKER
                and self.binary[self.cursor + 1] == SEGWIT_FLAG)

    def _read_inputs(self) -> List[TxInput]:
        read_input = self._read_input
        return [read_input() for _ in range(self._read_varint())]

    def _read_input(self) -> TxInput:
        return TxInput(
            self._read_nbytes(32),      # prev_hash
            self._read_le_uint32(),     # prev_idx
            self._read_varbytes(),      # script
            self._read_le_uint32(),     # sequence
            (),
        )

    def _read_outputs(self) -> List[TxOutput]:
        read_output = self._read_output
        return [read_output() for _ in range(self._read_varint())]

    def _read_output(self) -> TxOutput:
        return TxOutput(
            self._read_le_uint64(),     # value
            self._read_varbytes(),      # pk_script
        )

    def _read_witness_stack(self) -> tuple:
        read_varbytes = self._read_varbytes
        return tuple(read_varbytes() for _ in range(self._read_varint()))

    def _read_nbytes(self, n: int) -> bytes:
        cursor = self.cursor
        end = cursor + n
        if end > self.binary_length:
            raise TxFormatError('truncated',
                                f'need {n} bytes at offset {cursor}')
        self.cursor = end
        return self.binary[cursor:end]

    def _read_varbytes(self) -> bytes:
        return self._read_nbytes(self._read_varint())

    def _read_varint(self) -> int:
        try:
            n, self.cursor = read_varint(self.binary, self.cursor)
        except ValueError as e:
            raise TxFormatError('truncated', f'{e} at offset {self.cursor}') from None
        return n

    def _read_le_int32(self) -> int:
        return unpack_le_int32_from(self._read_nbytes(4))[0]

    def _read_le_uint32(self) -> int:
        return unpack_le_uint32_from(self._read_nbytes(4))[0]

    def _read_le_uint64(self) -> int:
        return unpack_le_uint64_from(self._read_nbytes(8))[0]


def parse_tx(raw: bytes) -> Tx:
    """Parse raw transaction bytes into a Tx."""
    return Deserializer(raw).read_tx_and_check()


def tx_hash(tx: Tx) -> bytes:
    """Double SHA-256 of the legacy serialization, in internal byte order."""
    return double_sha256(tx.serialize_legacy())


def tx_id(raw_or_tx) -> str:
    """The displayed transaction id of raw bytes or a parsed Tx.

    Hashing the witness-bearing bytes of a SegWit transaction gives the
    wtxid, not the txid, so the legacy form is always rebuilt.
    """
    tx = raw_or_tx if isinstance(raw_or_tx, Tx) else parse_tx(raw_or_tx)
    return hash_to_hex_str(tx_hash(tx))


def output_script(tx: Tx, index: int) -> Optional[bytes]:
    if 0 <= index < len(tx.outputs):
        return tx.outputs[index].pk_script
    return None
