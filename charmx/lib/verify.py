"""
Groth16 proof verification for Charms spells

Proofs are verified over the BN254 (alt_bn128) curve with py_ecc's
optimized backend.  A proof is laid out as eight consecutive 32-byte
big-endian field elements:

    pi_a.x  pi_a.y  pi_b.x0  pi_b.x1  pi_b.y0  pi_b.y1  pi_c.x  pi_c.y

Each point gets the projective coordinate 1.  The single public input is
SHA-256 over the CBOR encoding of ``[vk_identifier, assembled_spell]``,
read as a big-endian integer.

An empty proof marks a structural-only spell and always verifies.
"""

from collections import namedtuple
from typing import Dict, Iterable, List, Sequence, Tuple

import cbor2
from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_on_curve,
    multiply,
    neg,
    pairing,
)

from charmx.lib.errors import UnsupportedVersion, VerificationError
from charmx.lib.hash import sha256

FIELD_ELEMENT_LEN = 32
PROOF_ELEMENTS = 8
MIN_PROOF_LEN = FIELD_ELEMENT_LEN * PROOF_ELEMENTS

UNSUPPORTED_VERSION = 'unsupported-version'
PROOF_TOO_SHORT = 'proof-too-short'
MALFORMED_POINT = 'malformed-point'


class VerificationKey(namedtuple('VerificationKey',
                                 'identifier alpha1 beta2 gamma2 delta2 ic')):
    """A Groth16 verification key for one spell version.

    ``identifier`` is the hex string the spell commits to in its public
    input; the points are py_ecc projective tuples.  ``ic`` holds one
    point per public input plus the constant term.
    """

    @property
    def n_public(self) -> int:
        return len(self.ic) - 1


class VerifierContext:
    """The verification-key table and curve parameters.

    Built once and passed into every verification call; it holds no
    mutable state.
    """

    curve_order = curve_order
    field_modulus = field_modulus

    def __init__(self, keys: Dict[int, VerificationKey]):
        for version, key in keys.items():
            if key.n_public != 1:
                raise ValueError(f'verification key for version {version} '
                                 f'expects {key.n_public} public inputs, not 1')
        self.keys = dict(keys)

    @property
    def supported_versions(self) -> List[int]:
        return sorted(self.keys)

    def key_for(self, version: int) -> VerificationKey:
        try:
            return self.keys[version]
        except KeyError:
            raise UnsupportedVersion(UNSUPPORTED_VERSION,
                                     f'no verification key for version {version}') from None


# ------------------------------------------------------------------
# Points
# ------------------------------------------------------------------

def _check_field(*coords: int):
    for c in coords:
        if not 0 <= c < field_modulus:
            raise VerificationError(MALFORMED_POINT, 'coordinate outside base field')


def g1_point(x: int, y: int, z: int = 1):
    """Build a G1 point, raising VerificationError if it is off the curve."""
    _check_field(x, y, z)
    pt = (FQ(x), FQ(y), FQ(z))
    if not is_on_curve(pt, b):
        raise VerificationError(MALFORMED_POINT, 'G1 point not on curve')
    return pt


def g2_point(x: Sequence[int], y: Sequence[int], z: Sequence[int] = (1, 0)):
    """Build a G2 point from ``[c0, c1]`` coefficient pairs."""
    _check_field(*x, *y, *z)
    pt = (FQ2(list(x)), FQ2(list(y)), FQ2(list(z)))
    if not is_on_curve(pt, b2):
        raise VerificationError(MALFORMED_POINT, 'G2 point not on curve')
    return pt


def parse_proof(proof: bytes) -> Tuple[tuple, tuple, tuple]:
    """Split a binary proof into ``(pi_a, pi_b, pi_c)``.

    Raises VerificationError if the proof is too short or any point is
    malformed.  Bytes past the eighth field element are ignored.
    """
    if len(proof) < MIN_PROOF_LEN:
        raise VerificationError(PROOF_TOO_SHORT,
                                f'{len(proof)} bytes, need {MIN_PROOF_LEN}')
    e = [int.from_bytes(proof[i:i + FIELD_ELEMENT_LEN], 'big')
         for i in range(0, MIN_PROOF_LEN, FIELD_ELEMENT_LEN)]
    pi_a = g1_point(e[0], e[1])
    pi_b = g2_point((e[2], e[3]), (e[4], e[5]))
    pi_c = g1_point(e[6], e[7])
    return pi_a, pi_b, pi_c


# ------------------------------------------------------------------
# Verification
# ------------------------------------------------------------------

def public_input(identifier: str, assembled) -> int:
    """The spell's public input scalar."""
    encoded = cbor2.dumps([identifier, assembled.to_wire()])
    return int.from_bytes(sha256(encoded), 'big')


def groth16_check(vk: VerificationKey, inputs: Iterable[int], proof_points) -> bool:
    """Standard Groth16 check.

    e(A, B) == e(alpha, beta) * e(L, gamma) * e(C, delta), evaluated as a
    single product of Miller loops with one final exponentiation.
    """
    pi_a, pi_b, pi_c = proof_points
    acc = vk.ic[0]
    for scalar, ic in zip(inputs, vk.ic[1:]):
        acc = add(acc, multiply(ic, scalar % curve_order))
    product = (pairing(pi_b, neg(pi_a), final_exponentiate=False)
               * pairing(vk.beta2, vk.alpha1, final_exponentiate=False)
               * pairing(vk.gamma2, acc, final_exponentiate=False)
               * pairing(vk.delta2, pi_c, final_exponentiate=False))
    return final_exponentiate(product) == FQ12.one()


def verify_proof(proof: bytes, assembled, context: VerifierContext) -> bool:
    """Verify the proof of an assembled spell.

    Returns True for an empty proof.  Raises UnsupportedVersion if the
    version has no key and VerificationError for a malformed proof; a
    failed pairing returns False.
    """
    if not proof:
        return True
    vk = context.key_for(assembled.version)
    points = parse_proof(proof)
    scalar = public_input(vk.identifier, assembled)
    return groth16_check(vk, [scalar], points)
