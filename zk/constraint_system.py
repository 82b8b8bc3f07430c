"""
Minimal constraint system for the franchise relation.

A relation is synthesized into advice cells, gates over those cells and copy
constraints binding cells to rows of the public instance column. Gate checks
are re-evaluated from the assigned values, so a corrupted assignment is
caught even when every public value matches.

MockProver plays the role of a development prover: it synthesizes a relation
against concrete public values and reports every unsatisfied constraint.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple

from .errors import SynthesisError
from .field import PRIME, field_add, field_mul, field_sub, is_field_element
from .gadgets import ConditionalSelect, CondSwap, TwoToOneHash
from .poseidon import default_hasher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cell:
    """Reference to one advice cell"""
    index: int
    label: str


@dataclass(frozen=True)
class HashGate:
    """out == hash(a, b)"""
    label: str
    a: Cell
    b: Cell
    out: Cell

    def check(self, values: List[Optional[int]], hasher: TwoToOneHash) -> Optional[str]:
        a, b, out = values[self.a.index], values[self.b.index], values[self.out.index]
        if hasher.hash(a, b) != out:
            return f"hash({self.a.label}, {self.b.label}) != {self.out.label}"
        return None


@dataclass(frozen=True)
class CondSwapGate:
    """bit is boolean, left = a + bit*(b - a), right = b + bit*(a - b)"""
    label: str
    a: Cell
    b: Cell
    bit: Cell
    left: Cell
    right: Cell

    def check(self, values: List[Optional[int]], hasher: TwoToOneHash) -> Optional[str]:
        a, b = values[self.a.index], values[self.b.index]
        bit = values[self.bit.index]
        left, right = values[self.left.index], values[self.right.index]

        if field_mul(bit, field_sub(1, bit)) != 0:
            return f"{self.bit.label} is not boolean"
        if left != field_add(a, field_mul(bit, field_sub(b, a))):
            return f"{self.left.label} is not the selected left operand"
        if right != field_add(b, field_mul(bit, field_sub(a, b))):
            return f"{self.right.label} is not the selected right operand"
        return None


@dataclass(frozen=True)
class InstanceCopy:
    """Advice cell equals instance[row]"""
    cell: Cell
    row: int


@dataclass(frozen=True)
class VerifyFailure:
    """One unsatisfied constraint"""
    kind: str
    label: str
    detail: str

    def __str__(self) -> str:
        return f"{self.kind} '{self.label}': {self.detail}"


class ConstraintSystem:
    """Advice assignment, gate list and instance copy constraints"""

    def __init__(self, num_instance_rows: int, hasher: Optional[TwoToOneHash] = None,
                 selector: Optional[ConditionalSelect] = None):
        self.num_instance_rows = num_instance_rows
        self.hasher = hasher or default_hasher()
        self.selector = selector or CondSwap()
        self.advice: List[Optional[int]] = []
        self.gates: List[Any] = []
        self.copies: List[InstanceCopy] = []

    def assign(self, label: str, value: Optional[int]) -> Cell:
        """Allocate an advice cell; None leaves it unassigned"""
        if value is not None:
            value %= PRIME
        self.advice.append(value)
        return Cell(len(self.advice) - 1, label)

    def value(self, cell: Cell) -> Optional[int]:
        return self.advice[cell.index]

    def hash(self, label: str, a: Cell, b: Cell) -> Cell:
        va, vb = self.value(a), self.value(b)
        out_value = None
        if va is not None and vb is not None:
            out_value = self.hasher.hash(va, vb)

        out = self.assign(f"{label} out", out_value)
        self.gates.append(HashGate(label, a, b, out))
        return out

    def cond_swap(self, label: str, a: Cell, b: Cell, bit: Optional[bool]) -> Tuple[Cell, Cell]:
        va, vb = self.value(a), self.value(b)
        bit_cell = self.assign(f"{label} bit", None if bit is None else int(bit))

        left_value = right_value = None
        if va is not None and vb is not None and bit is not None:
            left_value, right_value = self.selector.select(bit, va, vb)

        left = self.assign(f"{label} left", left_value)
        right = self.assign(f"{label} right", right_value)
        self.gates.append(CondSwapGate(label, a, b, bit_cell, left, right))
        return left, right

    def constrain_instance(self, cell: Cell, row: int):
        if row < 0 or row >= self.num_instance_rows:
            raise ValueError(
                f"Instance row {row} out of range [0, {self.num_instance_rows})")
        self.copies.append(InstanceCopy(cell, row))

    def unassigned(self) -> List[int]:
        """Indices of advice cells without a value"""
        return [i for i, value in enumerate(self.advice) if value is None]

    def structure(self) -> List[Tuple]:
        """Assignment-independent description of the layout"""
        shape: List[Tuple] = [("advice", len(self.advice)), ("instance", self.num_instance_rows)]
        for gate in self.gates:
            if isinstance(gate, HashGate):
                shape.append(("hash", gate.a.index, gate.b.index, gate.out.index))
            else:
                shape.append(("cond_swap", gate.a.index, gate.b.index, gate.bit.index,
                              gate.left.index, gate.right.index))
        for copy in self.copies:
            shape.append(("copy", copy.cell.index, copy.row))
        return shape

    def failures(self, instance: Sequence[int]) -> List[VerifyFailure]:
        """Every gate and copy constraint not satisfied by advice + instance"""
        if len(instance) != self.num_instance_rows:
            raise ValueError(
                f"Expected {self.num_instance_rows} instance values, got {len(instance)}")

        found = []
        for gate in self.gates:
            detail = gate.check(self.advice, self.hasher)
            if detail is not None:
                found.append(VerifyFailure("gate", gate.label, detail))

        for copy in self.copies:
            expected = instance[copy.row]
            if not is_field_element(expected):
                found.append(VerifyFailure(
                    "instance", copy.cell.label,
                    f"public value #{copy.row} is not a field element"))
            elif self.value(copy.cell) != expected:
                found.append(VerifyFailure(
                    "instance", copy.cell.label,
                    f"cell does not equal public value #{copy.row}"))

        return found


class MockProver:
    """Synthesize a relation against public values and check every constraint"""

    def __init__(self, cs: ConstraintSystem, instance: Sequence[int]):
        self.cs = cs
        self.instance = list(instance)

    @classmethod
    def run(cls, relation, instance: Sequence[int], hasher: Optional[TwoToOneHash] = None,
            selector: Optional[ConditionalSelect] = None) -> 'MockProver':
        cs = ConstraintSystem(relation.NUM_PUBLIC_VALUES, hasher, selector)
        relation.synthesize(cs)

        missing = cs.unassigned()
        if missing:
            raise SynthesisError(
                f"{len(missing)} advice cells unassigned; relation has no witness")

        return cls(cs, instance)

    def verify(self) -> List[VerifyFailure]:
        failures = self.cs.failures(self.instance)
        for failure in failures:
            logger.debug(f"Constraint not satisfied: {failure}")
        return failures

    def is_satisfied(self) -> bool:
        return not self.verify()
