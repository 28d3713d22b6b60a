"""
Charms spell location and decoding

A spell is a CBOR-encoded ``[spell, proof]`` pair carried by a Bitcoin
transaction in one of two places:

WITNESS (Taproot script-path spend, current format)
---------------------------------------------------
The second witness element of an input is the leaf script:

    ... OP_FALSE OP_IF OP_PUSHBYTES_5 'spell' <push>(cbor) [<push>(cbor)]... OP_ENDIF ...

The CBOR document is split across as many data pushes as needed; the
pushes between the 'spell' marker and the closing OP_ENDIF are
concatenated in order.

OP_RETURN (output, fallback)
----------------------------
    OP_RETURN ... 'spell' <cbor>

Every byte after the marker is the CBOR document, with no push framing.

App keys in ``app_public_inputs`` are CBOR arrays ``[tag, identity, vk]``
and are canonicalized at decode time to the string form
``"<tag>/<hex identity>/<hex vk>"``.
"""

from collections import namedtuple
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import cbor2

from charmx.lib.errors import DecodeError
from charmx.lib.hash import HASH_LEN
from charmx.lib.script import OpCodes, is_op_return
from charmx.lib.tx import Tx

# Spell marker bytes
SPELL_MAGIC = b'spell'

# Token app tag, the only tag with a fixed triple layout
TOKEN_TAG = 't'

MALFORMED_PAYLOAD = 'malformed payload'
INVALID_SPELL = 'invalid spell structure'


class SpellLocation(namedtuple('SpellLocation', 'payload input_index output_index')):
    """Raw spell bytes and where they were found.

    Exactly one of ``input_index`` (witness-carried) and ``output_index``
    (OP_RETURN-carried) is set.
    """

    @property
    def in_witness(self) -> bool:
        return self.input_index is not None


class AppKey(namedtuple('AppKey', 'canonical raw')):
    """An ``app_public_inputs`` key.

    ``canonical`` is the string every later comparison uses; ``raw`` is
    the key exactly as decoded, kept so the spell can be re-encoded.
    """

    def __str__(self):
        return self.canonical


@dataclass
class NormalizedSpell:
    version: int
    outs: List[Dict[int, Any]]
    app_public_inputs: Dict[AppKey, Any]
    ins: Optional[List[str]] = None
    # The spell map exactly as decoded; re-encoding starts from it
    wire: Dict[Any, Any] = field(default_factory=dict)

    def to_wire(self, ins: Optional[List[str]] = None) -> Dict[Any, Any]:
        """Rebuild the CBOR-ready value, optionally with inherited inputs.

        Every decoded field keeps its original value and position.  When
        *ins* is given it replaces a decoded ``tx.ins`` in place, or else
        becomes the first ``tx`` field.
        """
        source = self.wire or {
            'version': self.version,
            'tx': {'outs': [dict(charms) for charms in self.outs]},
            'app_public_inputs': {key.raw: value for key, value
                                  in self.app_public_inputs.items()},
        }
        result: Dict[Any, Any] = {}
        for key, value in source.items():
            if key == 'tx' and isinstance(value, dict):
                value = _tx_with_ins(value, ins)
            result[key] = value
        return result


def _tx_with_ins(tx: Dict[Any, Any], ins: Optional[List[str]]) -> Dict[Any, Any]:
    if ins is None:
        return {k: v for k, v in tx.items() if k != 'ins'}
    if 'ins' in tx:
        return {k: (list(ins) if k == 'ins' else v) for k, v in tx.items()}
    result: Dict[Any, Any] = {'ins': list(ins)}
    result.update(tx)
    return result


# ------------------------------------------------------------------
# Location
# ------------------------------------------------------------------

def find_spell(tx: Tx) -> Optional[SpellLocation]:
    """Find the spell payload carried by *tx*.

    Witness leaf scripts are searched first, in input order, then
    OP_RETURN outputs in output order.  Returns None when the transaction
    carries no spell, which is the ordinary case.
    """
    for idx, txin in enumerate(tx.inputs):
        if len(txin.witness) < 2:
            continue
        payload = extract_from_witness_script(txin.witness[1])
        if payload:
            return SpellLocation(payload, idx, None)

    for idx, txout in enumerate(tx.outputs):
        if not is_op_return(txout.pk_script):
            continue
        payload = extract_from_op_return(txout.pk_script)
        if payload:
            return SpellLocation(payload, None, idx)

    return None


def extract_from_witness_script(script: bytes) -> Optional[bytes]:
    """Concatenate the data pushes between 'spell' and the final OP_ENDIF."""
    pos = script.find(SPELL_MAGIC)
    if pos == -1:
        return None
    start = pos + len(SPELL_MAGIC)
    end = script.rfind(bytes([OpCodes.OP_ENDIF]), start)
    if end == -1:
        return None
    data = _read_bounded_pushes(script, start, end)
    return data or None


def extract_from_op_return(script: bytes) -> Optional[bytes]:
    """Return every byte after the 'spell' marker of an OP_RETURN script."""
    pos = script.find(SPELL_MAGIC)
    if pos == -1:
        return None
    return script[pos + len(SPELL_MAGIC):] or None


def _read_bounded_pushes(data: bytes, pos: int, end: int) -> bytes:
    """Replay push framing over ``data[pos:end]`` and join the operands.

    Handles:
      • OP_PUSHBYTES_N  (0x01-0x4b)
      • OP_PUSHDATA1    (0x4c)
      • OP_PUSHDATA2    (0x4d)
      • OP_PUSHDATA4    (0x4e)
    Any other opcode is skipped.  A push whose length field or operand
    would cross *end* stops the walk; what was read so far is kept.
    """
    chunks: List[bytes] = []
    while pos < end:
        op = data[pos]
        pos += 1

        if 1 <= op <= 75:                            # OP_PUSHBYTES_N
            dlen = op
        elif op == OpCodes.OP_PUSHDATA1:
            if pos + 1 > end:
                break
            dlen = data[pos]; pos += 1
        elif op == OpCodes.OP_PUSHDATA2:
            if pos + 2 > end:
                break
            dlen = data[pos] | (data[pos + 1] << 8); pos += 2
        elif op == OpCodes.OP_PUSHDATA4:
            if pos + 4 > end:
                break
            dlen = (data[pos] | (data[pos + 1] << 8)
                    | (data[pos + 2] << 16) | (data[pos + 3] << 24))
            pos += 4
        else:
            continue                                 # non-push opcode

        if pos + dlen > end:
            break
        chunks.append(data[pos:pos + dlen])
        pos += dlen

    return b''.join(chunks)


# ------------------------------------------------------------------
# Decoding
# ------------------------------------------------------------------

def canonical_app_key(raw: Any) -> str:
    """Canonical string form of an ``app_public_inputs`` key.

    A token key ``('t', identity(32), vk(32), ...)`` becomes
    ``'t/<hex identity>/<hex vk>'`` with any further elements dropped.
    Everything else uses its natural string form.
    """
    if (isinstance(raw, (tuple, list)) and len(raw) >= 3
            and raw[0] == TOKEN_TAG
            and _is_hash(raw[1]) and _is_hash(raw[2])):
        return f'{TOKEN_TAG}/{bytes(raw[1]).hex()}/{bytes(raw[2]).hex()}'
    return _natural_str(raw)


def _is_hash(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == HASH_LEN


def _natural_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, (tuple, list)):
        return '/'.join(_natural_str(v) for v in value)
    return str(value)


def decode_spell(payload: bytes) -> Tuple[NormalizedSpell, bytes]:
    """Decode a raw spell payload into ``(spell, proof)``.

    Raises DecodeError for undecodable CBOR, a top level that is not a
    ``[spell, proof]`` pair, or a spell missing required fields.
    """
    try:
        decoded = cbor2.loads(payload)
    except (cbor2.CBORDecodeError, ValueError, TypeError, EOFError) as e:
        raise DecodeError(MALFORMED_PAYLOAD, str(e)) from e

    if not isinstance(decoded, (list, tuple)) or len(decoded) != 2:
        raise DecodeError(MALFORMED_PAYLOAD, 'expected [spell, proof] array')
    spell_value, proof = decoded
    if not isinstance(proof, (bytes, bytearray)):
        raise DecodeError(MALFORMED_PAYLOAD, 'proof is not a byte string')

    return parse_normalized_spell(spell_value), bytes(proof)


def parse_normalized_spell(value: Any) -> NormalizedSpell:
    """Validate a decoded spell map and build a NormalizedSpell."""
    if not isinstance(value, dict):
        raise DecodeError(INVALID_SPELL, 'spell is not a map')

    version = value.get('version')
    if not isinstance(version, int) or isinstance(version, bool):
        raise DecodeError(INVALID_SPELL, 'missing or non-integer version')

    tx = value.get('tx')
    if not isinstance(tx, dict) or not isinstance(tx.get('outs'), (list, tuple)):
        raise DecodeError(INVALID_SPELL, 'missing tx.outs')

    app_inputs = value.get('app_public_inputs')
    if not isinstance(app_inputs, dict):
        raise DecodeError(INVALID_SPELL, 'missing app_public_inputs')

    ins = tx.get('ins')
    return NormalizedSpell(
        version=version,
        outs=[_parse_output_charms(charms) for charms in tx['outs']],
        app_public_inputs={AppKey(canonical_app_key(raw), raw): data
                           for raw, data in app_inputs.items()},
        ins=list(ins) if ins is not None else None,
        wire=value,
    )


def _parse_output_charms(charms: Any) -> Dict[int, Any]:
    if charms is None:
        return {}
    if not isinstance(charms, dict):
        raise DecodeError(INVALID_SPELL, 'output charms is not a map')
    result: Dict[int, Any] = {}
    for key, charm in charms.items():
        if isinstance(key, bool):
            raise DecodeError(INVALID_SPELL, f'bad app index {key!r}')
        if isinstance(key, str) and key.isdigit():
            key = int(key)
        if not isinstance(key, int) or key < 0:
            raise DecodeError(INVALID_SPELL, f'bad app index {key!r}')
        result[key] = charm
    return result


def encode_spell(spell: NormalizedSpell, proof: bytes) -> bytes:
    """CBOR-encode ``[spell, proof]`` as it appears on chain."""
    return cbor2.dumps([spell.to_wire(spell.ins), proof])
