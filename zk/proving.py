"""
Proving layer for the franchise relation.

ProvingSystem is the narrow interface to a proof backend: derive a verifying
key for a relation depth, prove a satisfying assignment against the three
public values, verify a proof against the same values. FranchiseProofSystem
wraps a backend with proof artifacts, batching and off-relation nullifier
replay detection.
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from cryptography.hazmat.primitives import constant_time, hashes

from config.config import ZKConfig

from .constraint_system import ConstraintSystem, MockProver
from .errors import ProofGenerationError, SynthesisError, VerificationError
from .field import is_field_element
from .franchise import FranchiseRelation
from .gadgets import TwoToOneHash
from .poseidon import default_hasher

logger = logging.getLogger(__name__)


def _blake2b(*chunks: bytes) -> bytes:
    digest = hashes.Hash(hashes.BLAKE2b(64))
    for chunk in chunks:
        digest.update(chunk)
    return digest.finalize()


def _encode_field(value: int) -> bytes:
    return value.to_bytes(32, 'little')


# ============================================================================
# BACKEND INTERFACE
# ============================================================================


@dataclass(frozen=True)
class VerifyingKey:
    """Fingerprint of the relation structure for one depth"""
    levels: int
    backend: str
    digest: bytes

    @property
    def digest_hex(self) -> str:
        return self.digest.hex()


class ProvingSystem(ABC):
    """Proof backend consumed by FranchiseProofSystem"""

    name = "abstract"

    @abstractmethod
    def setup(self, levels: int) -> VerifyingKey:
        ...

    @abstractmethod
    def prove(self, relation: FranchiseRelation, public_values: Sequence[int]) -> bytes:
        ...

    @abstractmethod
    def verify(self, vk: VerifyingKey, public_values: Sequence[int], proof: bytes) -> bool:
        ...


class TranscriptProvingSystem(ProvingSystem):
    """Development backend.

    Proving checks every constraint with the MockProver and then commits to
    the verifying key and the public values with a BLAKE2b transcript. The
    proof binds relation structure and public values only: it is neither
    zero-knowledge nor sound against a prover who skips the constraint check.
    """

    name = "transcript"
    DOMAIN = b"franchise/transcript/v1"

    def __init__(self, hasher: Optional[TwoToOneHash] = None):
        self.hasher = hasher or default_hasher()
        self._keys: Dict[int, VerifyingKey] = {}
        self._keys_lock = threading.Lock()

    def setup(self, levels: int) -> VerifyingKey:
        with self._keys_lock:
            if levels in self._keys:
                return self._keys[levels]

            cs = ConstraintSystem(FranchiseRelation.NUM_PUBLIC_VALUES, self.hasher)
            FranchiseRelation(levels).synthesize(cs)
            structure = repr(cs.structure()).encode()

            vk = VerifyingKey(
                levels=levels,
                backend=self.name,
                digest=_blake2b(self.DOMAIN, b"vk", structure),
            )
            self._keys[levels] = vk
            logger.info(
                f"Derived verifying key for {levels} levels: {vk.digest_hex[:16]}...")
            return vk

    def _transcript(self, vk: VerifyingKey, public_values: Sequence[int]) -> bytes:
        return _blake2b(
            self.DOMAIN, b"proof", vk.digest,
            *(_encode_field(value) for value in public_values))

    def prove(self, relation: FranchiseRelation, public_values: Sequence[int]) -> bytes:
        if len(public_values) != FranchiseRelation.NUM_PUBLIC_VALUES:
            raise ProofGenerationError(
                f"Expected {FranchiseRelation.NUM_PUBLIC_VALUES} public values, got {len(public_values)}")
        if not all(is_field_element(value) for value in public_values):
            raise ProofGenerationError("Public values must be field elements")

        vk = self.setup(relation.levels)

        try:
            prover = MockProver.run(relation, public_values, self.hasher)
        except SynthesisError as e:
            raise ProofGenerationError(f"Relation synthesis failed: {e}") from e

        failures = prover.verify()
        if failures:
            logger.warning(
                f"Assignment does not satisfy the relation: {len(failures)} failures, first: {failures[0]}")
            raise ProofGenerationError(
                f"Assignment does not satisfy the relation ({failures[0]})")

        return self._transcript(vk, public_values)

    def verify(self, vk: VerifyingKey, public_values: Sequence[int], proof: bytes) -> bool:
        if vk.backend != self.name:
            return False
        if len(public_values) != FranchiseRelation.NUM_PUBLIC_VALUES:
            return False
        if not all(is_field_element(value) for value in public_values):
            return False

        expected = self._transcript(vk, public_values)
        return constant_time.bytes_eq(expected, bytes(proof))


BACKENDS: Dict[str, Callable[[], ProvingSystem]] = {
    TranscriptProvingSystem.name: TranscriptProvingSystem,
}


def create_backend(name: str) -> ProvingSystem:
    try:
        return BACKENDS[name]()
    except KeyError:
        raise ValueError(
            f"Unknown proving backend {name!r}; available: {sorted(BACKENDS)}") from None


# ============================================================================
# ARTIFACTS AND REPLAY PROTECTION
# ============================================================================


@dataclass
class ProofArtifact:
    """Container for proof and metadata"""
    proof: bytes
    public_values: List[int]
    levels: int
    backend: str
    generation_time: float
    verifying_key_digest: str
    timestamp: float = field(default_factory=time.time)
    expires_at: float = field(
        default_factory=lambda: time.time() + 3600)  # 1 hour

    @property
    def root(self) -> int:
        return self.public_values[FranchiseRelation.ROOT_ROW]

    @property
    def nullifier(self) -> int:
        return self.public_values[FranchiseRelation.NULLIFIER_ROW]

    @property
    def vote_hash(self) -> int:
        return self.public_values[FranchiseRelation.VOTE_HASH_ROW]

    def is_expired(self) -> bool:
        return time.time() > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            'proof': self.proof.hex(),
            'public_values': [hex(value) for value in self.public_values],
            'levels': self.levels,
            'backend': self.backend,
            'generation_time': self.generation_time,
            'verifying_key_digest': self.verifying_key_digest,
            'timestamp': self.timestamp,
            'expires_at': self.expires_at,
        }


class NullifierRegistry:
    """Spent nullifiers seen by a verifier; rejects a second vote per process"""

    def __init__(self, ttl_seconds: Optional[float] = None,
                 cleanup_interval: float = 3600):
        self.ttl_seconds = ttl_seconds
        self.cleanup_interval = cleanup_interval
        self._spent: Dict[int, float] = {}  # nullifier -> timestamp
        self._lock = threading.Lock()
        self._last_cleanup = time.time()

    def __contains__(self, nullifier: int) -> bool:
        return self.is_spent(nullifier)

    def __len__(self) -> int:
        with self._lock:
            return len(self._spent)

    def is_spent(self, nullifier: int) -> bool:
        with self._lock:
            return nullifier in self._spent

    def mark_spent(self, nullifier: int) -> bool:
        """Record a nullifier; False if it was already spent"""
        with self._lock:
            if nullifier in self._spent:
                return False
            self._spent[nullifier] = time.time()
            return True

    def cleanup(self, now: Optional[float] = None) -> int:
        """Remove expired nullifiers when a TTL is configured"""
        if self.ttl_seconds is None:
            return 0

        now = time.time() if now is None else now
        with self._lock:
            if now - self._last_cleanup < self.cleanup_interval:
                return 0

            expired = [
                nullifier for nullifier, spent_at in self._spent.items()
                if now - spent_at > self.ttl_seconds
            ]
            for nullifier in expired:
                del self._spent[nullifier]
            self._last_cleanup = now

        if expired:
            logger.info(f"Cleaned up {len(expired)} expired nullifiers")
        return len(expired)


class BatchLimiter:
    """Rate limiting for batch operations"""

    def __init__(self, max_batch_size: int = 100, max_concurrent: int = 10):
        self.max_batch_size = max_batch_size
        self.max_concurrent = max_concurrent

    async def process_with_limit(self, items: Sequence[Any],
                                 processor: Callable[[Any], Awaitable[Any]]) -> List[Any]:
        """Process items batch by batch, at most max_concurrent at a time"""
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def limited(item):
            async with semaphore:
                return await processor(item)

        results = []
        for i in range(0, len(items), self.max_batch_size):
            batch = items[i:i + self.max_batch_size]
            results.extend(await asyncio.gather(*(limited(item) for item in batch)))

        return results


# ============================================================================
# PROOF SYSTEM FACADE
# ============================================================================


class FranchiseProofSystem:
    """Proves and verifies franchise relations, tracking spent nullifiers"""

    def __init__(self, config: Optional[ZKConfig] = None,
                 backend: Optional[ProvingSystem] = None):
        self.config = config or ZKConfig()
        self.backend = backend or create_backend(self.config.backend)
        self.nullifiers = NullifierRegistry(self.config.nullifier_ttl_seconds)
        self.batch_limiter = BatchLimiter(
            max_batch_size=self.config.max_batch_size,
            max_concurrent=self.config.max_concurrent_proofs
        )
        self.executor = ThreadPoolExecutor(
            max_workers=self.config.parallel_workers)
        self._initialized = False

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    async def initialize(self):
        """Derive the verifying key for the configured census depth"""
        if self._initialized:
            return

        logger.info(
            f"Initializing franchise proof system ({self.backend.name} backend, "
            f"census depth {self.config.census_depth})")
        await self._run(self.backend.setup, self.config.levels)
        self._initialized = True

    async def prove(self, relation: FranchiseRelation, public_values: Sequence[int]) -> ProofArtifact:
        """Generate a proof; raises ProofGenerationError if the relation fails"""
        if not self._initialized:
            await self.initialize()

        start_time = time.time()
        vk = await self._run(self.backend.setup, relation.levels)
        proof = await self._run(self.backend.prove, relation, list(public_values))
        generation_time = time.time() - start_time

        logger.info(
            f"Generated franchise proof for {relation.levels} levels in {generation_time:.3f}s")

        return ProofArtifact(
            proof=proof,
            public_values=list(public_values),
            levels=relation.levels,
            backend=self.backend.name,
            generation_time=generation_time,
            verifying_key_digest=vk.digest_hex,
            expires_at=time.time() + self.config.proof_ttl_seconds,
        )

    async def verify(self, artifact: ProofArtifact, record_nullifier: bool = True) -> bool:
        """Verify an artifact, rejecting expired proofs and spent nullifiers"""
        if artifact.backend != self.backend.name:
            raise VerificationError(
                f"Artifact produced by {artifact.backend!r}, verifier runs {self.backend.name!r}")

        start_time = time.time()

        if artifact.is_expired():
            logger.warning(f"Proof expired at {artifact.expires_at}")
            return False

        if len(artifact.public_values) != FranchiseRelation.NUM_PUBLIC_VALUES:
            logger.warning(
                f"Proof carries {len(artifact.public_values)} public values")
            return False

        self.nullifiers.cleanup()
        if artifact.nullifier in self.nullifiers:
            logger.warning(f"Nullifier replay detected: {hex(artifact.nullifier)[:18]}...")
            return False

        vk = await self._run(self.backend.setup, artifact.levels)
        if vk.digest_hex != artifact.verifying_key_digest:
            logger.warning("Proof was generated for a different relation structure")
            return False

        is_valid = await self._run(
            self.backend.verify, vk, artifact.public_values, artifact.proof)

        if is_valid and record_nullifier:
            if not self.nullifiers.mark_spent(artifact.nullifier):
                logger.warning(f"Nullifier replay detected: {hex(artifact.nullifier)[:18]}...")
                return False

        verification_time = time.time() - start_time
        logger.info(
            f"Verified franchise proof in {verification_time:.3f}s: {'valid' if is_valid else 'invalid'}")

        return is_valid

    async def prove_batch(self, items: Sequence[Tuple[FranchiseRelation, Sequence[int]]]) -> List[ProofArtifact]:
        """Prove independent relations concurrently"""
        if not self._initialized:
            await self.initialize()

        logger.info(f"Proving batch of {len(items)} relations")

        async def prove_item(item):
            relation, public_values = item
            return await self.prove(relation, public_values)

        return await self.batch_limiter.process_with_limit(list(items), prove_item)

    async def verify_batch(self, artifacts: Sequence[ProofArtifact]) -> List[bool]:
        """Verify in order, so a repeated nullifier fails on its second use"""
        results = []
        for artifact in artifacts:
            results.append(await self.verify(artifact))
        return results

    def close(self):
        self.executor.shutdown(wait=True)
