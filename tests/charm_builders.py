"""
Byte-level builders for synthetic spell-carrying transactions.

Shared by the parser, locator, assembler and pipeline tests.
"""

import struct

import cbor2

from charmx.lib.tx import Tx, TxInput, TxOutput
from charmx.lib.util import pack_le_int32, pack_le_uint32, pack_varint, pack_varbytes

# Genesis block coinbase
GENESIS_TX_HEX = (
    '01000000010000000000000000000000000000000000000000000000000000000000000000'
    'ffffffff4d04ffff001d0104455468652054696d65732030332f4a616e2f32303039204368'
    '616e63656c6c6f72206f6e206272696e6b206f66207365636f6e64206261696c6f75742066'
    '6f722062616e6b73ffffffff0100f2052a01000000434104678afdb0fe5548271967f1a671'
    '30b7105cd6a828e03909a67962e0ea1f61deb649f6bc3f4cef38c4f35504e51ec112de5c38'
    '4df7ba0b8d578a4c702b6bf11d5fac00000000'
)
GENESIS_TXID = '4a5e1e4baab89f3a32518a88c31bc87f618f76673e2cc77ab2127b7afdeda33b'

IDENTITY = bytes(range(32))
VK_HASH = bytes(range(32, 64))
TOKEN_KEY = ('t', IDENTITY, VK_HASH)
NFT_KEY = ('n', IDENTITY, VK_HASH)
TOKEN_APP_ID = f't/{IDENTITY.hex()}/{VK_HASH.hex()}'

# Witness v1 (P2TR) and v0 (P2WPKH) output scripts
P2TR_SCRIPT = bytes([0x51, 0x20]) + bytes.fromhex(
    '79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798')
P2TR_ADDRESS = 'bc1p0xlxvlhemja6c4dqv22uapctqupfhlxm9h8z3k2e72q4k9hcz7vqzk5jj0'
P2WPKH_SCRIPT = bytes([0x00, 0x14]) + bytes.fromhex('751e76e8199196d454941c45d1b3a323f1433bd6')
P2WPKH_ADDRESS = 'bc1qw508d6qejxtdg4y5r3zarvary0c5xw7kv8f3t4'


def push(data: bytes) -> bytes:
    """Encode *data* as a minimal Bitcoin data-push."""
    n = len(data)
    if n <= 75:
        return bytes([n]) + data
    if n <= 0xFF:
        return bytes([0x4C, n]) + data
    if n <= 0xFFFF:
        return bytes([0x4D]) + struct.pack('<H', n) + data
    return bytes([0x4E]) + struct.pack('<I', n) + data


def spell_leaf_script(payload: bytes, chunk: int = 520,
                      pubkey: bytes = b'\x02' * 32) -> bytes:
    """Taproot leaf script committing to *payload*.

    Layout: push(pubkey) OP_CHECKSIG OP_FALSE OP_IF push('spell')
            push(chunk)... OP_ENDIF
    """
    pushes = b''.join(push(payload[i:i + chunk])
                      for i in range(0, len(payload), chunk))
    return (push(pubkey) + b'\xac' + b'\x00\x63' + push(b'spell')
            + pushes + b'\x68')


def op_return_script(payload: bytes) -> bytes:
    return b'\x6a' + push(b'spell') + payload


def spell_value(outs, apps, version=4, **tx_extra):
    tx = {'outs': outs}
    tx.update(tx_extra)
    return {'version': version, 'tx': tx, 'app_public_inputs': apps}


def spell_payload(outs=None, apps=None, version=4, proof=b'', **tx_extra) -> bytes:
    """CBOR ``[spell, proof]`` with one token charm on output 0 by default."""
    if outs is None:
        outs = [{0: 1000}]
    if apps is None:
        apps = {TOKEN_KEY: None}
    return cbor2.dumps([spell_value(outs, apps, version, **tx_extra), proof])


def make_input(prev_txid_byte: int = 0x11, prev_idx: int = 0,
               witness=(), script: bytes = b'',
               sequence: int = 0xffffffff) -> TxInput:
    return TxInput(bytes([prev_txid_byte]) * 32, prev_idx, script, sequence,
                   tuple(witness))


def make_tx(inputs, outputs, version: int = 2, locktime: int = 0) -> Tx:
    return Tx(version, list(inputs), list(outputs), locktime)


def serialize_tx(tx: Tx, segwit: bool = None) -> bytes:
    """Serialize *tx*, in SegWit form when any input has a witness."""
    if segwit is None:
        segwit = tx.has_witness
    if not segwit:
        return tx.serialize_legacy()
    parts = [pack_le_int32(tx.version), b'\x00\x01',
             pack_varint(len(tx.inputs))]
    parts.extend(txin.serialize() for txin in tx.inputs)
    parts.append(pack_varint(len(tx.outputs)))
    parts.extend(txout.serialize() for txout in tx.outputs)
    for txin in tx.inputs:
        parts.append(pack_varint(len(txin.witness)))
        parts.extend(pack_varbytes(item) for item in txin.witness)
    parts.append(pack_le_uint32(tx.locktime))
    return b''.join(parts)


def witness_spell_tx(payload: bytes, n_inputs: int = 2, spell_input: int = None,
                     outputs=None) -> Tx:
    """A transaction whose *spell_input* (default: last) carries *payload*."""
    if spell_input is None:
        spell_input = n_inputs - 1
    if outputs is None:
        outputs = [TxOutput(1000, P2TR_SCRIPT), TxOutput(5000, P2WPKH_SCRIPT)]
    inputs = []
    for idx in range(n_inputs):
        witness = [b'\x01' * 64]
        if idx == spell_input:
            witness = [b'\x01' * 64, spell_leaf_script(payload), b'\xc0' + b'\x02' * 32]
        inputs.append(make_input(0x11 + idx, idx, witness))
    return make_tx(inputs, outputs)


def op_return_spell_tx(payload: bytes, n_inputs: int = 2) -> Tx:
    inputs = [make_input(0x21 + idx, idx) for idx in range(n_inputs)]
    outputs = [TxOutput(1000, P2WPKH_SCRIPT), TxOutput(0, op_return_script(payload))]
    return make_tx(inputs, outputs)
