"""
Opaque primitives consumed by the census tree and the relation.

Anything with a ``hash(a, b)`` method can stand in for the compression
function, and anything with a ``select(bit, a, b)`` method for the ordering
primitive, so the relation logic does not depend on a particular field or
hash instantiation.
"""

from typing import Protocol, Tuple, runtime_checkable


@runtime_checkable
class TwoToOneHash(Protocol):
    """Collision-resistant compression Fp x Fp -> Fp"""

    def hash(self, a: int, b: int) -> int:
        ...


@runtime_checkable
class ConditionalSelect(Protocol):
    """Order two values according to a bit"""

    def select(self, bit: bool, a: int, b: int) -> Tuple[int, int]:
        ...


class CondSwap:
    """select(bit, a, b) is (a, b) for bit 0 and (b, a) for bit 1"""

    def select(self, bit: bool, a: int, b: int) -> Tuple[int, int]:
        if bit:
            return b, a
        return a, b

    def __call__(self, bit: bool, a: int, b: int) -> Tuple[int, int]:
        return self.select(bit, a, b)
