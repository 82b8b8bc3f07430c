"""
Membership-and-nullifier relation ("franchise").

                       +----------+
                       |          |
PUB_censusRoot+------->+          |(bits)<----+PRI_directionBits
                       |  Merkle  |
                       |  path    |            +----------+
PRI_siblings+--------->+  check   |(leaf)<-----+ Poseidon +<-----+--+PRI_secretKey
                       |          |            +----------+      |
                       +----------+                              |
                                     +----------+                |
                      +----+         |          +<---------------+
PUB_nullifier+------->+ == +<--------+ Poseidon |<-----------+processId[0]
                      +----+         |          +<-----------+processId[1]
                                     +----------+
PUB_voteHash+-------> == voteHash

Public values, in order: census root, nullifier, vote hash.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, List, Optional, Sequence, Tuple

from .constraint_system import ConstraintSystem, MockProver
from .errors import MalformedPathError, SynthesisError
from .field import check_field_element
from .gadgets import ConditionalSelect, CondSwap, TwoToOneHash
from .poseidon import default_hasher

logger = logging.getLogger(__name__)


def _check_bit(value, position: int) -> bool:
    if isinstance(value, bool):
        return value
    if value in (0, 1):
        return bool(value)
    raise ValueError(f"Direction bit #{position} must be boolean, got {value!r}")


@dataclass
class FranchiseRelation:
    """Relation instance for a census tree with ``levels`` path steps.

    Every assignment field may be None, which gives the witness-free shape
    used to derive the relation structure. ``siblings`` and
    ``direction_bits`` must hold exactly ``levels`` entries.
    """
    levels: int
    secret_key: Optional[int] = None
    siblings: Optional[Tuple[int, ...]] = None
    direction_bits: Optional[Tuple[bool, ...]] = None
    process_id: Optional[Tuple[int, int]] = None
    vote_hash: Optional[int] = None

    NUM_PUBLIC_VALUES: ClassVar[int] = 3
    ROOT_ROW: ClassVar[int] = 0
    NULLIFIER_ROW: ClassVar[int] = 1
    VOTE_HASH_ROW: ClassVar[int] = 2

    def __post_init__(self):
        if not isinstance(self.levels, int) or isinstance(self.levels, bool) or self.levels < 0:
            raise ValueError(f"Relation levels must be a non-negative int, got {self.levels!r}")

        if self.secret_key is not None:
            check_field_element(self.secret_key, "Secret key")

        if self.vote_hash is not None:
            check_field_element(self.vote_hash, "Vote hash")

        if self.process_id is not None:
            self.process_id = tuple(self.process_id)
            if len(self.process_id) != 2:
                raise ValueError(
                    f"Process id must have 2 elements, got {len(self.process_id)}")
            for part in self.process_id:
                check_field_element(part, "Process id element")

        if self.siblings is not None:
            self.siblings = tuple(self.siblings)
            if len(self.siblings) != self.levels:
                raise MalformedPathError(
                    f"Expected {self.levels} siblings, got {len(self.siblings)}")
            for sibling in self.siblings:
                check_field_element(sibling, "Sibling")

        if self.direction_bits is not None:
            self.direction_bits = tuple(
                _check_bit(bit, n) for n, bit in enumerate(self.direction_bits))
            if len(self.direction_bits) != self.levels:
                raise MalformedPathError(
                    f"Expected {self.levels} direction bits, got {len(self.direction_bits)}")

    @classmethod
    def for_tree_depth(cls, depth: int, **assignment) -> 'FranchiseRelation':
        """Relation matching the paths of a census tree of ``depth``"""
        if depth < 1:
            raise ValueError(f"Census tree depth must be >= 1, got {depth}")
        return cls(depth - 1, **assignment)

    def without_witnesses(self) -> 'FranchiseRelation':
        return FranchiseRelation(self.levels)

    @property
    def has_witness(self) -> bool:
        return None not in (
            self.secret_key, self.siblings, self.direction_bits,
            self.process_id, self.vote_hash,
        )

    def _sibling(self, n: int) -> Optional[int]:
        return None if self.siblings is None else self.siblings[n]

    def _bit(self, n: int) -> Optional[bool]:
        return None if self.direction_bits is None else self.direction_bits[n]

    def merkle_root(self, cs: ConstraintSystem, leaf):
        """Walk the path from ``leaf`` upwards; returns the root cell"""
        root = leaf
        for n in range(self.levels):
            sibling = cs.assign(f"mt[{n}] sibling", self._sibling(n))
            left, right = cs.cond_swap(f"mt[{n}] swap", root, sibling, self._bit(n))
            root = cs.hash(f"mt[{n}] hash", left, right)
        return root

    def synthesize(self, cs: ConstraintSystem):
        process_id = self.process_id or (None, None)

        process_id_0 = cs.assign("process_id[0]", process_id[0])
        process_id_1 = cs.assign("process_id[1]", process_id[1])
        secret_key = cs.assign("secret key", self.secret_key)
        vote_hash = cs.assign("vote hash", self.vote_hash)

        public_key = cs.hash("hash secret key", secret_key, secret_key)
        process_id_hash = cs.hash("hash process_id", process_id_0, process_id_1)
        nullifier = cs.hash("nullifier", secret_key, process_id_hash)

        root = self.merkle_root(cs, public_key)

        cs.constrain_instance(root, self.ROOT_ROW)
        cs.constrain_instance(nullifier, self.NULLIFIER_ROW)
        cs.constrain_instance(vote_hash, self.VOTE_HASH_ROW)

    def public_values(self, hasher: Optional[TwoToOneHash] = None,
                      selector: Optional[ConditionalSelect] = None) -> List[int]:
        """Natively derive [root, nullifier, vote_hash] from the assignment"""
        if not self.has_witness:
            raise SynthesisError("Cannot derive public values without a witness")

        hasher = hasher or default_hasher()
        selector = selector or CondSwap()

        public_key = hasher.hash(self.secret_key, self.secret_key)
        process_id_hash = hasher.hash(self.process_id[0], self.process_id[1])
        nullifier = hasher.hash(self.secret_key, process_id_hash)

        root = public_key
        for sibling, bit in zip(self.siblings, self.direction_bits):
            left, right = selector.select(bit, root, sibling)
            root = hasher.hash(left, right)

        return [root, nullifier, self.vote_hash]

    def is_satisfied_by(self, public_values: Sequence[int],
                        hasher: Optional[TwoToOneHash] = None) -> bool:
        return MockProver.run(self, public_values, hasher).is_satisfied()
