"""
Reconcile a decoded spell with the transaction that carries it.

A spell never lists its own inputs: it inherits them from the enclosing
transaction, minus the input that commits to the spell itself.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from charmx.lib.errors import AssemblyError
from charmx.lib.spell import NormalizedSpell, SpellLocation
from charmx.lib.tx import Tx

INHERITED_INPUTS_VIOLATION = 'inherited-inputs-violation'
OUTPUTS_MISMATCH = 'outputs-mismatch'
INVALID_VERSION = 'invalid-version'


@dataclass
class AssembledSpell:
    spell: NormalizedSpell
    ins: List[str]
    verified: bool = False

    @property
    def version(self) -> int:
        return self.spell.version

    @property
    def outs(self):
        return self.spell.outs

    @property
    def app_public_inputs(self):
        return self.spell.app_public_inputs

    def to_wire(self) -> Dict:
        """The assembled spell in its CBOR-ready form (without ``verified``)."""
        return self.spell.to_wire(self.ins)


def _carrying_input(location: SpellLocation, tx: Tx) -> Optional[int]:
    return location.input_index


# Which input commits to the spell, by spell version.  Every version seen
# so far uses the witness-carrying input; OP_RETURN spells exclude none.
SPELL_INPUT_RULES: Dict[int, Callable[[SpellLocation, Tx], Optional[int]]] = {
    0: _carrying_input,
    1: _carrying_input,
    2: _carrying_input,
    3: _carrying_input,
    4: _carrying_input,
}


def spell_input_index_for(version: int, location: SpellLocation,
                          tx: Tx) -> Optional[int]:
    """Index of the input excluded from the spell's inherited inputs."""
    rule = SPELL_INPUT_RULES.get(version, _carrying_input)
    return rule(location, tx)


def assemble_spell(spell: NormalizedSpell, tx: Tx,
                   spell_input_index: Optional[int]) -> AssembledSpell:
    """Check structural invariants and attach the inherited inputs.

    Raises AssemblyError on the first violated invariant.
    """
    if spell.ins is not None:
        raise AssemblyError(INHERITED_INPUTS_VIOLATION,
                            'spell must inherit inputs from the enchanted tx')
    if len(spell.outs) > len(tx.outputs):
        raise AssemblyError(OUTPUTS_MISMATCH,
                            f'spell has {len(spell.outs)} outs, '
                            f'tx has {len(tx.outputs)}')
    if spell.version < 0:
        raise AssemblyError(INVALID_VERSION, f'version {spell.version}')

    ins = [txin.outpoint for idx, txin in enumerate(tx.inputs)
           if idx != spell_input_index]
    return AssembledSpell(spell, ins)
