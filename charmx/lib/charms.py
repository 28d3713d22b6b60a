"""
Charm records: the per-output, per-app view of an assembled spell.

This is the one place that interprets app identifiers, app data and
charm values for display.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from charmx.lib.address import try_script_to_address
from charmx.lib.script import is_op_return
from charmx.lib.spell import canonical_app_key
from charmx.lib.tx import Tx

logger = logging.getLogger(__name__)


class AppType:
    NFT = 'nft'
    TOKEN = 'token'
    UNKNOWN = 'unknown'


# Charm fields wallets and explorers know how to display
KNOWN_CHARM_FIELDS = (
    'ticker', 'remaining', 'name', 'description', 'url',
    'image', 'image_hash', 'decimals', 'ref',
)

# App data entries that are prover bookkeeping, not app state
BOOKKEEPING_FIELDS = ('Bitcoin',)

# Record keys a charm field may not overwrite
PROTECTED_KEYS = ('utxo', 'appId', 'verified')


@dataclass
class CharmRecord:
    txid: str
    index: int
    address: str
    app_id: str
    app_type: str
    app_data: Dict[str, Any]
    verified: bool
    value: Optional[Any] = None
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def outpoint(self) -> str:
        return f'{self.txid}:{self.index}'

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into the record shape wallets consume.

        Structured charm fields sit at the top level next to the core
        keys and may replace them, except ``utxo``, ``appId`` and
        ``verified``.
        """
        record: Dict[str, Any] = {
            'utxo': {'txid': self.txid, 'index': self.index},
            'address': self.address,
            'appId': self.app_id,
            'appType': self.app_type,
            'appData': self.app_data,
        }
        if self.value is not None:
            record['value'] = self.value
        for key, value in self.fields.items():
            if key not in PROTECTED_KEYS:
                record[key] = value
        record['verified'] = self.verified
        return record


def classify_app(app_id: str) -> str:
    """App type from the identifier's tag prefix."""
    if not isinstance(app_id, str):
        return AppType.UNKNOWN
    if app_id.startswith('n/'):
        return AppType.NFT
    if app_id.startswith('t/'):
        return AppType.TOKEN
    return AppType.UNKNOWN


def merge_fields(charm: Any) -> Tuple[Optional[Any], Dict[str, Any]]:
    """Split a charm value into ``(value, fields)``.

    A bare amount becomes ``value``, as does the scalar ``value`` entry
    of a structured charm.  The other entries of a structured charm
    become fields: known ones first, then the rest in their original
    order.
    """
    if not isinstance(charm, dict):
        return charm, {}
    value = charm.get('value')
    if isinstance(value, dict):
        value = None
    fields = {k: charm[k] for k in KNOWN_CHARM_FIELDS if k in charm}
    for key, item in charm.items():
        if key in fields or (key == 'value' and value is not None):
            continue
        fields[str(key)] = item
    return value, fields


def app_data_for(data: Any) -> Dict[str, Any]:
    """The app's public data without bookkeeping entries."""
    if not isinstance(data, dict):
        return {}
    return {str(k): v for k, v in data.items() if k not in BOOKKEEPING_FIELDS}


def output_address_resolver(tx: Tx, network: str) -> Callable[[int], str]:
    """Resolver from output index to address for *tx*.

    Charms bound to an OP_RETURN output take the address of the first
    output that has one.  This mirrors what explorers display and is a
    best-effort convention, not a protocol rule.
    """
    def resolve(index: int) -> str:
        if not 0 <= index < len(tx.outputs):
            return ''
        script = tx.outputs[index].pk_script
        if not is_op_return(script):
            return try_script_to_address(script, network)
        for idx, txout in enumerate(tx.outputs):
            if idx == index or is_op_return(txout.pk_script):
                continue
            address = try_script_to_address(txout.pk_script, network)
            if address:
                return address
        return ''

    return resolve


def _resolve_address(resolve_address: Callable[[int], str], index: int) -> str:
    try:
        return resolve_address(index) or ''
    except Exception as e:
        logger.debug(f'address resolution failed for output {index}: {e}')
        return ''


def project_charms(assembled, txid: str,
                   resolve_address: Callable[[int], str]) -> List[CharmRecord]:
    """Flatten an assembled spell into charm records.

    App indices refer to the position of the app in
    ``app_public_inputs``; indices past the end are skipped.
    """
    apps = list(assembled.app_public_inputs.items())
    records: List[CharmRecord] = []

    for out_idx, charms in enumerate(assembled.outs):
        if not charms:
            continue
        address = _resolve_address(resolve_address, out_idx)
        for app_index, charm in charms.items():
            if app_index >= len(apps):
                logger.debug(f'output {out_idx}: app index {app_index} '
                             f'out of range ({len(apps)} apps)')
                continue
            key, data = apps[app_index]
            app_id = key.canonical or canonical_app_key(key.raw)
            value, fields = merge_fields(charm)
            records.append(CharmRecord(
                txid=txid,
                index=out_idx,
                address=address,
                app_id=app_id,
                app_type=classify_app(app_id),
                app_data=app_data_for(data),
                verified=assembled.verified,
                value=value,
                fields=fields,
            ))

    return records


def charms_for_wallet(records: List[CharmRecord], outpoints) -> List[CharmRecord]:
    """Keep the records whose ``txid:index`` belongs to the wallet."""
    return [r for r in records if r.outpoint in outpoints]
