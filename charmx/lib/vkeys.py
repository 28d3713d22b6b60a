"""
Spell verification keys.

The identifiers below are the values each spell version commits to in
its public input.  The curve points themselves are loaded from a
snarkjs-style JSON document keyed by version:

    {
      "4": {
        "vk_alpha_1": ["x", "y", "1"],
        "vk_beta_2":  [["x0", "x1"], ["y0", "y1"], ["1", "0"]],
        "vk_gamma_2": [...],
        "vk_delta_2": [...],
        "IC": [["x", "y", "1"], ["x", "y", "1"]]
      },
      ...
    }

An optional ``"identifier"`` entry overrides the built-in identifier.
"""

import json
from typing import Any, Dict, Mapping

from charmx.lib.verify import VerificationKey, VerifierContext, g1_point, g2_point

SPELL_VK_IDS: Dict[int, str] = {
    0: '0x00e9398ac819e6dd281f81db3ada3fe5159c3cc40222b5ddb0e7584ed2327c5d',
    1: '0x009f38f590ebca4c08c1e97b4064f39e4cd336eea4069669c5f5170a38a1ff97',
    2: '0x00bd312b6026dbe4a2c16da1e8118d4fea31587a4b572b63155252d2daf69280',
    3: '0x0034872b5af38c95fe82fada696b09a448f7ab0928273b7ac8c58ba29db774b9',
    4: '0x00c707a155bf8dc18dc41db2994c214e93e906a3e97b4581db4345b3edd837c5',
}


def is_valid_vk_identifier(identifier: Any) -> bool:
    """Check for a 0x-prefixed 32-byte hex string."""
    if not isinstance(identifier, str) or not identifier.startswith('0x'):
        return False
    hex_part = identifier[2:]
    if len(hex_part) != 64:
        return False
    try:
        bytes.fromhex(hex_part)
    except ValueError:
        return False
    return True


def _g1(coords) -> tuple:
    return g1_point(*(int(c) for c in coords[:3]))


def _g2(coords) -> tuple:
    x, y = coords[0], coords[1]
    z = coords[2] if len(coords) > 2 else (1, 0)
    return g2_point([int(c) for c in x], [int(c) for c in y],
                    [int(c) for c in z])


def key_from_snarkjs(version: int, doc: Mapping[str, Any]) -> VerificationKey:
    """Build a VerificationKey from one snarkjs verification_key entry."""
    identifier = doc.get('identifier', SPELL_VK_IDS.get(version))
    if not is_valid_vk_identifier(identifier):
        raise ValueError(f'no valid identifier for version {version}')
    return VerificationKey(
        identifier,
        _g1(doc['vk_alpha_1']),
        _g2(doc['vk_beta_2']),
        _g2(doc['vk_gamma_2']),
        _g2(doc['vk_delta_2']),
        tuple(_g1(p) for p in doc['IC']),
    )


def keys_from_json(doc: Mapping[str, Any]) -> Dict[int, VerificationKey]:
    return {int(version): key_from_snarkjs(int(version), entry)
            for version, entry in doc.items()}


def load_verification_keys(path: str) -> Dict[int, VerificationKey]:
    """Load the verification-key table from a JSON file."""
    with open(path, 'r', encoding='utf-8') as f:
        return keys_from_json(json.load(f))


def load_context(path: str = None) -> VerifierContext:
    """A VerifierContext from *path*, or an empty one if no path is set."""
    if not path:
        return VerifierContext({})
    return VerifierContext(load_verification_keys(path))
