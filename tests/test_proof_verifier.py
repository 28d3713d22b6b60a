"""
Groth16 Proof Verification Tests

Proofs are built against the synthetic key in ``proof_builders``, whose
trapdoor is known, so valid and tampered proofs for any public input
can be made directly from scalars.
"""

import json

import pytest
from py_ecc.optimized_bn128 import G1, G2, field_modulus, multiply, normalize

from charmx.lib.assemble import assemble_spell
from charmx.lib.errors import UnsupportedVersion, VerificationError
from charmx.lib.spell import decode_spell
from charmx.lib.verify import (
    MALFORMED_POINT,
    MIN_PROOF_LEN,
    PROOF_TOO_SHORT,
    UNSUPPORTED_VERSION,
    VerifierContext,
    parse_proof,
    public_input,
    verify_proof,
)
from charmx.lib.vkeys import (
    SPELL_VK_IDS,
    is_valid_vk_identifier,
    keys_from_json,
    load_context,
    load_verification_keys,
)

from charm_builders import spell_payload, witness_spell_tx
from proof_builders import C_SECRET, fe, g1_bytes, prove, snarkjs_doc, synthetic_key


def _assembled(version=4, outs=None):
    tx = witness_spell_tx(spell_payload(version=version, outs=outs))
    spell, _ = decode_spell(spell_payload(version=version, outs=outs))
    return assemble_spell(spell, tx, len(tx.inputs) - 1)


@pytest.fixture(scope='module')
def vk():
    return synthetic_key()


@pytest.fixture(scope='module')
def context(vk):
    return VerifierContext({4: vk})


# ============================================================================
# Groth16
# ============================================================================

class TestGroth16:

    def test_valid_proof(self, vk, context):
        assembled = _assembled()
        assert verify_proof(prove(vk, assembled), assembled, context) is True

    def test_proof_for_other_spell_fails(self, vk, context):
        proof = prove(vk, _assembled(outs=[{0: 1000}]))
        other = _assembled(outs=[{0: 999}])
        assert verify_proof(proof, other, context) is False

    def test_tampered_c_fails(self, vk, context):
        assembled = _assembled()
        proof = prove(vk, assembled)
        tampered = proof[:192] + g1_bytes(multiply(G1, C_SECRET + 1))
        assert verify_proof(tampered, assembled, context) is False

    def test_trailing_bytes_ignored(self, vk, context):
        assembled = _assembled()
        proof = prove(vk, assembled) + b'\x00' * 16
        assert verify_proof(proof, assembled, context) is True


class TestPublicInput:

    def test_depends_on_identifier(self, vk):
        assembled = _assembled()
        assert (public_input(SPELL_VK_IDS[3], assembled)
                != public_input(SPELL_VK_IDS[4], assembled))

    def test_depends_on_inherited_inputs(self):
        a = _assembled()
        b = _assembled()
        b.ins = b.ins + ['ff' * 32 + ':9']
        assert public_input(SPELL_VK_IDS[4], a) != public_input(SPELL_VK_IDS[4], b)

    def test_is_256_bit(self):
        assert 0 <= public_input(SPELL_VK_IDS[4], _assembled()) < 2 ** 256

    def test_ignores_verified_flag(self):
        a = _assembled()
        before = public_input(SPELL_VK_IDS[4], a)
        a.verified = True
        assert public_input(SPELL_VK_IDS[4], a) == before


# ============================================================================
# Failure modes
# ============================================================================

class TestVerifyProofErrors:

    def test_empty_proof_verifies(self, context):
        assert verify_proof(b'', _assembled(), context) is True

    def test_empty_proof_unknown_version(self):
        assert verify_proof(b'', _assembled(version=9), VerifierContext({})) is True

    def test_unsupported_version(self, context):
        with pytest.raises(UnsupportedVersion) as exc:
            verify_proof(b'\x01' * MIN_PROOF_LEN, _assembled(version=3), context)
        assert exc.value.reason == UNSUPPORTED_VERSION

    def test_too_short(self, context):
        with pytest.raises(VerificationError) as exc:
            verify_proof(b'\x01' * (MIN_PROOF_LEN - 1), _assembled(), context)
        assert exc.value.reason == PROOF_TOO_SHORT

    def test_point_not_on_curve(self, context):
        proof = fe(1) + fe(1) + bytes(MIN_PROOF_LEN - 64)
        with pytest.raises(VerificationError) as exc:
            verify_proof(proof, _assembled(), context)
        assert exc.value.reason == MALFORMED_POINT

    def test_coordinate_outside_field(self):
        proof = fe(field_modulus) + bytes(MIN_PROOF_LEN - 32)
        with pytest.raises(VerificationError) as exc:
            parse_proof(proof)
        assert exc.value.reason == MALFORMED_POINT

    def test_parse_valid_points(self, vk):
        pi_a, pi_b, pi_c = parse_proof(prove(vk, _assembled()))
        assert normalize(pi_b) == normalize(G2)
        assert normalize(pi_c) == normalize(multiply(G1, C_SECRET))


# ============================================================================
# Keys
# ============================================================================

class TestVerificationKeys:

    def test_identifiers_valid(self):
        assert sorted(SPELL_VK_IDS) == [0, 1, 2, 3, 4]
        assert all(is_valid_vk_identifier(i) for i in SPELL_VK_IDS.values())

    @pytest.mark.parametrize('identifier', [
        None, '00' * 32, '0x' + '00' * 31, '0x' + 'zz' * 32,
    ])
    def test_invalid_identifiers(self, identifier):
        assert not is_valid_vk_identifier(identifier)

    def test_snarkjs_key_uses_builtin_identifier(self, vk):
        assert vk.identifier == SPELL_VK_IDS[4]
        assert vk.n_public == 1

    def test_identifier_override(self):
        doc = dict(snarkjs_doc(), identifier='0x' + 'ab' * 32)
        key = keys_from_json({'7': doc})[7]
        assert key.identifier == '0x' + 'ab' * 32

    def test_unknown_version_without_identifier(self):
        with pytest.raises(ValueError):
            keys_from_json({'7': snarkjs_doc()})

    def test_bad_point_in_key(self):
        doc = snarkjs_doc()
        doc['vk_alpha_1'] = ['1', '1', '1']
        with pytest.raises(VerificationError):
            keys_from_json({'4': doc})

    def test_context_rejects_wrong_input_count(self, vk):
        with pytest.raises(ValueError):
            VerifierContext({4: vk._replace(ic=vk.ic[:1])})

    def test_context_versions(self, context):
        assert context.supported_versions == [4]
        assert load_context(None).supported_versions == []

    def test_load_from_file(self, tmp_path):
        path = tmp_path / 'vkeys.json'
        path.write_text(json.dumps({'4': snarkjs_doc()}))
        keys = load_verification_keys(str(path))
        assert list(keys) == [4]
        assert load_context(str(path)).supported_versions == [4]
