"""
Zero-Knowledge Module for Anonymous Census Voting
Membership-and-nullifier relation over a Poseidon census tree
"""

from .field import PRIME, random_field_element
from .poseidon import PoseidonHash, default_hasher, poseidon_hash
from .gadgets import TwoToOneHash, ConditionalSelect, CondSwap
from .constraint_system import ConstraintSystem, MockProver, VerifyFailure
from .franchise import FranchiseRelation
from .witness import (
    derive_census_leaf,
    process_id_hash,
    derive_nullifier,
    generate_relation_inputs,
    generate_test_data,
)
from .proving import (
    # Core classes
    FranchiseProofSystem,
    ProvingSystem,
    TranscriptProvingSystem,
    VerifyingKey,
    ProofArtifact,
    NullifierRegistry,
    create_backend,
)
from .errors import (
    # Exceptions
    ZKError,
    MalformedPathError,
    SynthesisError,
    ProofGenerationError,
    VerificationError,
)

__version__ = "1.0.0"

__all__ = [
    # Field and primitives
    'PRIME',
    'random_field_element',
    'PoseidonHash',
    'default_hasher',
    'poseidon_hash',
    'TwoToOneHash',
    'ConditionalSelect',
    'CondSwap',

    # Relation
    'ConstraintSystem',
    'MockProver',
    'VerifyFailure',
    'FranchiseRelation',

    # Witness builder
    'derive_census_leaf',
    'process_id_hash',
    'derive_nullifier',
    'generate_relation_inputs',
    'generate_test_data',

    # Proving
    'FranchiseProofSystem',
    'ProvingSystem',
    'TranscriptProvingSystem',
    'VerifyingKey',
    'ProofArtifact',
    'NullifierRegistry',
    'create_backend',

    # Exceptions
    'ZKError',
    'MalformedPathError',
    'SynthesisError',
    'ProofGenerationError',
    'VerificationError',
]
