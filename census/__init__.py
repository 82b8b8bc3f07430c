"""
Census Module for the Franchise Voting Proofs
Merkle tree of registered voter public keys
"""

from .census_tree import (
    CensusTree,
    PathStep,
    AuthenticationPath,

    # Exceptions
    CensusError,
    CensusCapacityError,
    CensusNotCalculatedError,
    CensusFinalizedError,
)

__all__ = [
    'CensusTree',
    'PathStep',
    'AuthenticationPath',

    'CensusError',
    'CensusCapacityError',
    'CensusNotCalculatedError',
    'CensusFinalizedError',
]
