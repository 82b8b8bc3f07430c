import asyncio
import time

import pytest

from config.config import ZKConfig
from zk import (
    FranchiseProofSystem,
    NullifierRegistry,
    ProofGenerationError,
    TranscriptProvingSystem,
    VerificationError,
    create_backend,
    generate_test_data,
)
from zk.proving import BatchLimiter, ProofArtifact


@pytest.fixture
def backend():
    return TranscriptProvingSystem()


@pytest.fixture
def proof_system():
    system = FranchiseProofSystem(ZKConfig(census_depth=4, parallel_workers=2))
    yield system
    system.close()


class TestTranscriptBackend:

    def test_setup_is_cached_per_depth(self, backend):
        assert backend.setup(3) is backend.setup(3)
        assert backend.setup(3).digest != backend.setup(4).digest

    def test_prove_and_verify(self, backend):
        relation, public = generate_test_data(3)
        proof = backend.prove(relation, public)
        vk = backend.setup(3)

        assert len(proof) == 64
        assert backend.verify(vk, public, proof)

    def test_verify_rejects_tampered_public_values(self, backend):
        relation, public = generate_test_data(3)
        proof = backend.prove(relation, public)
        vk = backend.setup(3)

        for n in range(3):
            public[n] += 1
            assert not backend.verify(vk, public, proof)
            public[n] -= 1
        assert backend.verify(vk, public, proof)

    def test_verify_rejects_other_depth(self, backend):
        relation, public = generate_test_data(3)
        proof = backend.prove(relation, public)
        assert not backend.verify(backend.setup(4), public, proof)

    def test_verify_rejects_wrong_length(self, backend):
        relation, public = generate_test_data(3)
        proof = backend.prove(relation, public)
        assert not backend.verify(backend.setup(3), public[:2], proof)

    def test_unsatisfied_relation_cannot_be_proved(self, backend):
        relation, public = generate_test_data(3)
        public[1] += 1
        with pytest.raises(ProofGenerationError):
            backend.prove(relation, public)

    def test_missing_witness_cannot_be_proved(self, backend):
        relation, public = generate_test_data(2)
        with pytest.raises(ProofGenerationError):
            backend.prove(relation.without_witnesses(), public)

    def test_public_value_count_checked(self, backend):
        relation, public = generate_test_data(2)
        with pytest.raises(ProofGenerationError):
            backend.prove(relation, public + [0])

    def test_create_backend(self):
        assert isinstance(create_backend("transcript"), TranscriptProvingSystem)
        with pytest.raises(ValueError):
            create_backend("groth16")


class TestNullifierRegistry:

    def test_mark_spent_once(self):
        registry = NullifierRegistry()
        assert registry.mark_spent(5)
        assert not registry.mark_spent(5)
        assert 5 in registry
        assert len(registry) == 1

    def test_no_ttl_never_expires(self):
        registry = NullifierRegistry()
        registry.mark_spent(5)
        assert registry.cleanup(now=time.time() + 10 ** 9) == 0
        assert 5 in registry

    def test_ttl_expiry(self):
        registry = NullifierRegistry(ttl_seconds=10, cleanup_interval=0)
        registry.mark_spent(5)
        assert registry.cleanup(now=time.time() + 20) == 1
        assert 5 not in registry


class TestFranchiseProofSystem:

    def test_prove_verify_round_trip(self, proof_system):
        relation, public = generate_test_data(3)

        async def scenario():
            artifact = await proof_system.prove(relation, public)
            return artifact, await proof_system.verify(artifact)

        artifact, is_valid = asyncio.run(scenario())
        assert is_valid
        assert artifact.root == public[0]
        assert artifact.nullifier == public[1]
        assert artifact.vote_hash == public[2]
        assert artifact.nullifier in proof_system.nullifiers

    def test_replayed_nullifier_rejected(self, proof_system):
        relation, public = generate_test_data(3)

        async def scenario():
            artifact = await proof_system.prove(relation, public)
            return await proof_system.verify_batch([artifact, artifact])

        assert asyncio.run(scenario()) == [True, False]

    def test_verify_without_recording(self, proof_system):
        relation, public = generate_test_data(2)

        async def scenario():
            artifact = await proof_system.prove(relation, public)
            first = await proof_system.verify(artifact, record_nullifier=False)
            second = await proof_system.verify(artifact)
            return first, second

        assert asyncio.run(scenario()) == (True, True)

    def test_expired_artifact_rejected(self, proof_system):
        relation, public = generate_test_data(2)

        async def scenario():
            artifact = await proof_system.prove(relation, public)
            artifact.expires_at = time.time() - 1
            return await proof_system.verify(artifact)

        assert asyncio.run(scenario()) is False

    def test_tampered_artifact_rejected(self, proof_system):
        relation, public = generate_test_data(2)

        async def scenario():
            artifact = await proof_system.prove(relation, public)
            artifact.public_values[2] += 1
            return await proof_system.verify(artifact)

        assert asyncio.run(scenario()) is False

    def test_foreign_backend_artifact(self, proof_system):
        artifact = ProofArtifact(
            proof=b"", public_values=[1, 2, 3], levels=3, backend="groth16",
            generation_time=0.0, verifying_key_digest="")
        with pytest.raises(VerificationError):
            asyncio.run(proof_system.verify(artifact))

    def test_unsatisfied_relation_raises(self, proof_system):
        relation, public = generate_test_data(2)
        public[0] += 1
        with pytest.raises(ProofGenerationError):
            asyncio.run(proof_system.prove(relation, public))

    def test_prove_batch(self, proof_system):
        items = [generate_test_data(levels) for levels in (1, 2, 3)]

        async def scenario():
            artifacts = await proof_system.prove_batch(items)
            return artifacts, await proof_system.verify_batch(artifacts)

        artifacts, results = asyncio.run(scenario())
        assert [a.levels for a in artifacts] == [1, 2, 3]
        # Same voter and process at every depth: only the first vote counts
        assert results == [True, False, False]

    def test_artifact_to_dict(self, proof_system):
        relation, public = generate_test_data(1)
        artifact = asyncio.run(proof_system.prove(relation, public))
        data = artifact.to_dict()
        assert data['proof'] == artifact.proof.hex()
        assert data['public_values'] == [hex(v) for v in public]
        assert data['backend'] == "transcript"


def test_batch_limiter_preserves_order():
    limiter = BatchLimiter(max_batch_size=2, max_concurrent=2)

    async def double(x):
        await asyncio.sleep(0)
        return 2 * x

    assert asyncio.run(limiter.process_with_limit([1, 2, 3, 4, 5], double)) == [2, 4, 6, 8, 10]
