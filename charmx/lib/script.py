"""Script-related classes and functions."""

from typing import Optional, Tuple


class OpCodes:
    OP_0 = 0x00
    OP_PUSHDATA1 = 0x4c
    OP_PUSHDATA2 = 0x4d
    OP_PUSHDATA4 = 0x4e
    OP_1 = 0x51
    OP_16 = 0x60
    OP_ENDIF = 0x68
    OP_RETURN = 0x6a
    OP_DUP = 0x76
    OP_EQUAL = 0x87
    OP_EQUALVERIFY = 0x88
    OP_HASH160 = 0xa9
    OP_CHECKSIG = 0xac


def is_op_return(script: bytes) -> bool:
    return bool(script) and script[0] == OpCodes.OP_RETURN


def is_p2pkh(script: bytes) -> bool:
    return (len(script) == 25
            and script[0] == OpCodes.OP_DUP
            and script[1] == OpCodes.OP_HASH160
            and script[2] == 20
            and script[23] == OpCodes.OP_EQUALVERIFY
            and script[24] == OpCodes.OP_CHECKSIG)


def is_p2sh(script: bytes) -> bool:
    return (len(script) == 23
            and script[0] == OpCodes.OP_HASH160
            and script[1] == 20
            and script[22] == OpCodes.OP_EQUAL)


def witness_program(script: bytes) -> Optional[Tuple[int, bytes]]:
    """Return (version, program) for a native SegWit output script.

    A witness output is OP_0 or OP_1..OP_16 followed by a single push of
    2 to 40 bytes.
    """
    if len(script) < 4 or len(script) > 42:
        return None
    op = script[0]
    if op == OpCodes.OP_0:
        version = 0
    elif OpCodes.OP_1 <= op <= OpCodes.OP_16:
        version = op - OpCodes.OP_1 + 1
    else:
        return None
    if script[1] + 2 != len(script):
        return None
    return version, script[2:]
