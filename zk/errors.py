"""Exceptions raised by the relation, witness builder and proving layer"""


class ZKError(Exception):
    """Base exception for ZK operations"""
    pass


class MalformedPathError(ZKError, ValueError):
    """Authentication path does not match the relation depth"""
    pass


class SynthesisError(ZKError):
    """Relation was synthesized for proving without a full assignment"""
    pass


class ProofGenerationError(ZKError):
    """Proof generation failed"""
    pass


class VerificationError(ZKError):
    """Proof artifact cannot be checked by this verifier"""
    pass
