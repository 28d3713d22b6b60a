"""
Spell extraction pipeline

raw tx -> parse -> locate -> decode -> assemble -> verify -> project

Every call is independent: nothing is cached between transactions.
Parsing, decoding and assembly failures stop the pipeline with no
records; verification problems only mark the records unverified.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from charmx.lib import util
from charmx.lib.assemble import assemble_spell, spell_input_index_for
from charmx.lib.charms import CharmRecord, charms_for_wallet, output_address_resolver, project_charms
from charmx.lib.errors import (
    AssemblyError, CharmsError, DecodeError, TxFormatError,
    UnsupportedVersion, VerificationError,
)
from charmx.lib.spell import decode_spell, find_spell
from charmx.lib.tx import parse_tx, tx_id
from charmx.lib.verify import VerifierContext, verify_proof
from charmx.lib.vkeys import load_context


class ExtractionStatus:
    FOUND = 'found'
    NO_PAYLOAD = 'no_payload'
    TX_FORMAT_ERROR = 'tx_format_error'
    DECODE_ERROR = 'decode_error'
    ASSEMBLY_ERROR = 'assembly_error'


@dataclass
class ExtractionResult:
    status: str
    txid: Optional[str] = None
    charms: List[CharmRecord] = field(default_factory=list)
    version: Optional[int] = None
    verified: bool = False
    error: Optional[CharmsError] = None
    verification_error: Optional[CharmsError] = None

    @property
    def success(self) -> bool:
        """True for a decoded spell and for a transaction with no spell."""
        return self.status in (ExtractionStatus.FOUND, ExtractionStatus.NO_PAYLOAD)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'txid': self.txid,
            'version': self.version,
            'verified': self.verified,
            'charms': [charm.to_dict() for charm in self.charms],
            'error': self.error.reason if self.error else None,
            'verification_error': (self.verification_error.reason
                                   if self.verification_error else None),
        }


class SpellPipeline:
    """Decodes and verifies the spell carried by a raw transaction."""

    def __init__(self, context: VerifierContext, env=None):
        self.logger = util.class_logger(__name__, self.__class__.__name__)
        self.context = context
        self.network = getattr(env, 'network', 'mainnet') if env else 'mainnet'

    @classmethod
    def from_env(cls, env) -> 'SpellPipeline':
        return cls(load_context(env.vkeys_file), env)

    def extract(self, raw_tx: Union[bytes, str],
                network: Optional[str] = None) -> ExtractionResult:
        """Run the whole pipeline on one transaction.

        *raw_tx* may be bytes or a hex string.
        """
        try:
            raw = bytes.fromhex(raw_tx) if isinstance(raw_tx, str) else bytes(raw_tx)
        except ValueError:
            return ExtractionResult(ExtractionStatus.TX_FORMAT_ERROR,
                                    error=TxFormatError('invalid-hex'))
        try:
            tx = parse_tx(raw)
        except TxFormatError as e:
            self.logger.debug(f'unparseable transaction: {e.reason} {e.detail}')
            return ExtractionResult(ExtractionStatus.TX_FORMAT_ERROR, error=e)
        txid = tx_id(tx)

        location = find_spell(tx)
        if location is None:
            self.logger.debug(f'{txid}: no spell')
            return ExtractionResult(ExtractionStatus.NO_PAYLOAD, txid)
        where = (f'input {location.input_index} witness' if location.in_witness
                 else f'output {location.output_index} OP_RETURN')
        self.logger.debug(f'{txid}: {len(location.payload)} spell bytes in {where}')

        try:
            spell, proof = decode_spell(location.payload)
        except DecodeError as e:
            self.logger.info(f'{txid}: spell decode failed: {e.reason} {e.detail}')
            return ExtractionResult(ExtractionStatus.DECODE_ERROR, txid, error=e)

        try:
            excluded = spell_input_index_for(spell.version, location, tx)
            assembled = assemble_spell(spell, tx, excluded)
        except AssemblyError as e:
            self.logger.info(f'{txid}: spell assembly failed: {e.reason}')
            return ExtractionResult(ExtractionStatus.ASSEMBLY_ERROR, txid,
                                    version=spell.version, error=e)

        verification_error = None
        try:
            assembled.verified = verify_proof(proof, assembled, self.context)
        except (UnsupportedVersion, VerificationError) as e:
            self.logger.warning(f'{txid}: proof not verifiable: {e.reason} {e.detail}')
            verification_error = e
            assembled.verified = False

        resolver = output_address_resolver(tx, network or self.network)
        charms = project_charms(assembled, txid, resolver)
        self.logger.info(f'{txid}: spell v{spell.version}, {len(charms)} charm(s), '
                         f'verified={assembled.verified}')
        return ExtractionResult(
            ExtractionStatus.FOUND, txid, charms,
            version=spell.version,
            verified=assembled.verified,
            verification_error=verification_error,
        )

    async def extract_async(self, raw_tx: Union[bytes, str],
                            network: Optional[str] = None) -> ExtractionResult:
        """Run ``extract`` in a worker thread; the pairing check is CPU-bound."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.extract, raw_tx, network)

    def extract_for_wallet(self, raw_tx: Union[bytes, str],
                           outpoints: Iterable[str],
                           network: Optional[str] = None) -> List[CharmRecord]:
        """Charms of *raw_tx* sitting on the wallet's outpoints."""
        result = self.extract(raw_tx, network)
        if result.status != ExtractionStatus.FOUND:
            return []
        return charms_for_wallet(result.charms, set(outpoints))
