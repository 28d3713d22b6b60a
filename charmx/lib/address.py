"""
Output script to address conversion.

Supports P2PKH and P2SH (Base58Check) and native SegWit outputs:
P2WPKH and P2WSH (bech32, BIP173) and P2TR and later witness versions
(bech32m, BIP350).
"""

from collections import namedtuple
from typing import Dict, List, Optional

from charmx.lib.hash import double_sha256
from charmx.lib.script import is_p2pkh, is_p2sh, witness_program

Network = namedtuple('Network', 'name hrp p2pkh_verbyte p2sh_verbyte')

NETWORKS: Dict[str, Network] = {
    'mainnet': Network('mainnet', 'bc', 0x00, 0x05),
    'testnet4': Network('testnet4', 'tb', 0x6f, 0xc4),
    'testnet': Network('testnet', 'tb', 0x6f, 0xc4),
    'signet': Network('signet', 'tb', 0x6f, 0xc4),
    'regtest': Network('regtest', 'bcrt', 0x6f, 0xc4),
}


def get_network(name: str) -> Network:
    try:
        return NETWORKS[name]
    except KeyError:
        raise ValueError(f'unknown network {name!r}') from None


# ------------------------------------------------------------------
# Base58Check
# ------------------------------------------------------------------

B58_CHARS = '123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz'


def base58_encode(data: bytes) -> str:
    n = int.from_bytes(data, 'big')
    chars = []
    while n:
        n, r = divmod(n, 58)
        chars.append(B58_CHARS[r])
    leading = len(data) - len(data.lstrip(b'\x00'))
    return '1' * leading + ''.join(reversed(chars))


def base58check_encode(payload: bytes) -> str:
    return base58_encode(payload + double_sha256(payload)[:4])


# ------------------------------------------------------------------
# Bech32 / Bech32m
# ------------------------------------------------------------------

BECH32_CHARSET = 'qpzry9x8gf2tvdw0s3jn54khce6mua7l'
BECH32_GEN = (0x3b6a57b2, 0x26508e6d, 0x1ea119fa, 0x3d4233dd, 0x2a1462b3)
BECH32_CONST = 1
BECH32M_CONST = 0x2bc830a3


def _bech32_polymod(values: List[int]) -> int:
    chk = 1
    for v in values:
        top = chk >> 25
        chk = (chk & 0x1ffffff) << 5 ^ v
        for i in range(5):
            chk ^= BECH32_GEN[i] if ((top >> i) & 1) else 0
    return chk


def _bech32_hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _convertbits(data: bytes, frombits: int, tobits: int) -> List[int]:
    acc, bits, ret = 0, 0, []
    maxv = (1 << tobits) - 1
    for value in data:
        acc = ((acc << frombits) | value) & ((1 << (frombits + tobits - 1)) - 1)
        bits += frombits
        while bits >= tobits:
            bits -= tobits
            ret.append((acc >> bits) & maxv)
    if bits:
        ret.append((acc << (tobits - bits)) & maxv)
    return ret


def segwit_encode(hrp: str, witver: int, witprog: bytes) -> str:
    """Encode a witness program; v0 uses bech32, v1+ bech32m."""
    data = [witver] + _convertbits(witprog, 8, 5)
    const = BECH32_CONST if witver == 0 else BECH32M_CONST
    polymod = _bech32_polymod(_bech32_hrp_expand(hrp) + data + [0] * 6) ^ const
    checksum = [(polymod >> (5 * (5 - i))) & 31 for i in range(6)]
    return hrp + '1' + ''.join(BECH32_CHARSET[d] for d in data + checksum)


# ------------------------------------------------------------------
# Scripts
# ------------------------------------------------------------------

def script_to_address(script: bytes, network: str = 'mainnet') -> str:
    """The address paying to *script*, or '' if it has no address form."""
    net = get_network(network)
    if is_p2pkh(script):
        return base58check_encode(bytes([net.p2pkh_verbyte]) + script[3:23])
    if is_p2sh(script):
        return base58check_encode(bytes([net.p2sh_verbyte]) + script[2:22])
    program = witness_program(script)
    if program is None:
        return ''
    witver, witprog = program
    if witver == 0 and len(witprog) not in (20, 32):
        return ''
    return segwit_encode(net.hrp, witver, witprog)


def try_script_to_address(script: Optional[bytes], network: str = 'mainnet') -> str:
    if not script:
        return ''
    try:
        return script_to_address(script, network)
    except ValueError:
        return ''
