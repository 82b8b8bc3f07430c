"""
Witness builder: turns a voter's secrets and census path into a relation
assignment plus the public nullifier. Pure functions, no state.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from .errors import MalformedPathError
from .field import check_field_element
from .franchise import FranchiseRelation
from .gadgets import TwoToOneHash
from .poseidon import default_hasher

logger = logging.getLogger(__name__)


def derive_census_leaf(secret_key: int, hasher: Optional[TwoToOneHash] = None) -> int:
    """Public key registered in the census: hash(sk, sk)"""
    hasher = hasher or default_hasher()
    check_field_element(secret_key, "Secret key")
    return hasher.hash(secret_key, secret_key)


def process_id_hash(process_id: Sequence[int], hasher: Optional[TwoToOneHash] = None) -> int:
    hasher = hasher or default_hasher()
    if len(process_id) != 2:
        raise ValueError(f"Process id must have 2 elements, got {len(process_id)}")
    return hasher.hash(process_id[0], process_id[1])


def derive_nullifier(secret_key: int, process_id: Sequence[int],
                     hasher: Optional[TwoToOneHash] = None) -> int:
    """hash(sk, hash(p0, p1)); unique per voter and process"""
    hasher = hasher or default_hasher()
    return hasher.hash(secret_key, process_id_hash(process_id, hasher))


def generate_relation_inputs(secret_key: int, process_id: Sequence[int], vote_hash: int,
                             path: Sequence[Tuple[int, bool]], levels: Optional[int] = None,
                             hasher: Optional[TwoToOneHash] = None) -> Tuple[FranchiseRelation, int]:
    """Build the relation assignment and the public nullifier.

    ``path`` is a census authentication path, one ``(sibling, is_left)`` pair
    per level. The relation's direction bit is the negated ``is_left`` flag:
    bit 0 keeps the running node as the left hash operand.
    """
    if levels is None:
        levels = len(path)

    if len(path) != levels:
        raise MalformedPathError(
            f"Authentication path has {len(path)} steps, relation expects {levels}")

    nullifier = derive_nullifier(secret_key, process_id, hasher)

    siblings = tuple(sibling for sibling, _ in path)
    direction_bits = tuple(not is_left for _, is_left in path)

    relation = FranchiseRelation(
        levels=levels,
        secret_key=secret_key,
        siblings=siblings,
        direction_bits=direction_bits,
        process_id=tuple(process_id),
        vote_hash=vote_hash,
    )

    return relation, nullifier


def generate_test_data(levels: int, hasher: Optional[TwoToOneHash] = None) -> Tuple[FranchiseRelation, List[int]]:
    """Worked example: sk 8, process id (6, 7), vote hash 1.

    The path uses sibling ``n`` at level ``n`` with the running node on the
    left at even levels. Returns the relation and [root, nullifier, vote_hash].
    """
    from census.census_tree import CensusTree, PathStep

    hasher = hasher or default_hasher()
    secret_key = 8
    process_id = (6, 7)
    vote_hash = 1
    public_key = derive_census_leaf(secret_key, hasher)

    root = public_key
    path = []
    for n in range(levels):
        is_left = n % 2 == 0
        sibling = n
        if is_left:
            root = hasher.hash(root, sibling)
        else:
            root = hasher.hash(sibling, root)
        path.append(PathStep(sibling, is_left))

    assert CensusTree.check_witness(public_key, path, root, hasher)

    relation, nullifier = generate_relation_inputs(
        secret_key, process_id, vote_hash, path, levels, hasher)

    return relation, [root, nullifier, vote_hash]
