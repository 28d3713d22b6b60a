"""
Address Encoding Tests

Known vectors from BIP173 and BIP350 plus Base58Check sanity checks.
"""

import pytest

from charmx.lib.address import (
    NETWORKS,
    base58check_encode,
    get_network,
    script_to_address,
    segwit_encode,
    try_script_to_address,
)

from charm_builders import P2TR_ADDRESS, P2TR_SCRIPT, P2WPKH_ADDRESS, P2WPKH_SCRIPT

GENESIS_P2PKH = bytes.fromhex('76a91462e907b15cbf27d5425399ebf6f0fb50ebb88f1888ac')
P2WSH_SCRIPT = bytes.fromhex(
    '00201863143c14c5166804bd19203356da136c985678cd4d27a1b8c6329604903262')


class TestBase58:

    def test_burn_address(self):
        assert base58check_encode(bytes(21)) == '1111111111111111111114oLvT2'

    def test_genesis_p2pkh(self):
        assert script_to_address(GENESIS_P2PKH) == '1A1zP1eP5QGefi2DMPTfTL5SLmv7DivfNa'

    def test_testnet_p2pkh_prefix(self):
        assert script_to_address(GENESIS_P2PKH, 'testnet4')[0] in 'mn'

    def test_p2sh_prefix(self):
        script = bytes([0xa9, 0x14]) + bytes(range(20)) + bytes([0x87])
        assert script_to_address(script).startswith('3')
        assert script_to_address(script, 'signet').startswith('2')


class TestSegwit:

    def test_p2wpkh(self):
        assert script_to_address(P2WPKH_SCRIPT) == P2WPKH_ADDRESS

    def test_p2wpkh_testnet(self):
        assert (script_to_address(P2WPKH_SCRIPT, 'testnet')
                == 'tb1qw508d6qejxtdg4y5r3zarvary0c5xw7kxpjzsx')

    def test_p2wsh(self):
        assert (script_to_address(P2WSH_SCRIPT)
                == 'bc1qrp33g0q5c5txsp9arysrx4k6zdkfs4nce4xj0gdcccefvpysxf3qccfmv3')

    def test_p2tr(self):
        assert script_to_address(P2TR_SCRIPT) == P2TR_ADDRESS

    def test_regtest_hrp(self):
        assert script_to_address(P2TR_SCRIPT, 'regtest').startswith('bcrt1p')

    def test_v0_bad_program_length(self):
        script = bytes([0x00, 0x10]) + bytes(16)
        assert script_to_address(script) == ''

    def test_witness_version_selects_checksum(self):
        prog = bytes(32)
        v0, v1 = segwit_encode('bc', 0, prog), segwit_encode('bc', 1, prog)
        assert v0.startswith('bc1q')
        assert v1.startswith('bc1p')
        # Same data part apart from the version character
        assert v0[4:-6] == v1[4:-6]
        assert v0[-6:] != v1[-6:]


class TestNoAddress:

    @pytest.mark.parametrize('script', [
        b'',
        b'\x6a\x04abcd',
        b'\x51',
        bytes([0x21]) + b'\x02' * 33 + b'\xac',
    ])
    def test_no_address_form(self, script):
        assert try_script_to_address(script) == ''

    def test_unknown_network(self):
        with pytest.raises(ValueError):
            get_network('litecoin')
        assert try_script_to_address(P2TR_SCRIPT, 'litecoin') == ''

    def test_networks(self):
        assert set(NETWORKS) == {'mainnet', 'testnet4', 'testnet', 'signet', 'regtest'}
