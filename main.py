import argparse
import asyncio
import logging
import secrets
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from census import CensusTree
from config.config import SystemConfig, load_config
from utils.utils import (
    PerformanceMonitor,
    create_performance_report,
    save_results,
    setup_logging,
)
from zk import (
    FranchiseProofSystem,
    FranchiseRelation,
    MockProver,
    ProofArtifact,
    ProofGenerationError,
    derive_census_leaf,
    generate_relation_inputs,
    generate_test_data,
    poseidon_hash,
    random_field_element,
)

logger = logging.getLogger(__name__)


class ElectionOrchestrator:
    """Census authority plus ballot box for one voting process"""

    def __init__(self, config: SystemConfig, process_id: Tuple[int, int]):
        self.config = config
        self.process_id = process_id
        self.census = CensusTree(config.zk_config.census_depth)
        self.proof_system = FranchiseProofSystem(config.zk_config)
        self.performance_monitor = PerformanceMonitor()
        self.accepted: List[ProofArtifact] = []
        self.rejected: List[ProofArtifact] = []

        logger.info(
            f"Initialized election orchestrator for process {hex(process_id[0])[:10]}...")

    def register_voter(self, secret_key: int) -> int:
        """Insert the voter's public key into the census; returns the leaf index"""
        with self.performance_monitor.start_operation("register_voter"):
            return self.census.insert(derive_census_leaf(secret_key))

    def close_registration(self):
        if self.census.is_calculated:
            return
        with self.performance_monitor.start_operation("census_calc"):
            self.census.calc()
        logger.info(f"Census root published: {hex(self.census.root())}")

    async def cast_vote(self, secret_key: int, index: int, vote_hash: int) -> ProofArtifact:
        """Build the witness from the census path and prove the vote"""
        with self.performance_monitor.start_operation("prove_vote"):
            path = self.census.witness(index)
            relation, nullifier = generate_relation_inputs(
                secret_key, self.process_id, vote_hash, path,
                levels=self.config.zk_config.levels)
            public_values = [self.census.root(), nullifier, vote_hash]
            return await self.proof_system.prove(relation, public_values)

    async def submit(self, artifact: ProofArtifact) -> bool:
        """Accept a ballot iff it proves membership in this census and its nullifier is fresh"""
        with self.performance_monitor.start_operation("verify_vote"):
            if len(artifact.public_values) != FranchiseRelation.NUM_PUBLIC_VALUES:
                logger.warning(
                    f"Ballot carries {len(artifact.public_values)} public values")
                self.rejected.append(artifact)
                return False

            if artifact.root != self.census.root():
                logger.warning("Ballot proves membership in a different census")
                self.rejected.append(artifact)
                return False

            is_valid = await self.proof_system.verify(artifact)

        (self.accepted if is_valid else self.rejected).append(artifact)
        return is_valid

    def close(self):
        self.proof_system.close()


async def run_demo(config: SystemConfig, num_voters: int = 8,
                   output: Optional[Path] = None) -> bool:
    print("=" * 80)
    print("FRANCHISE - ANONYMOUS CENSUS VOTING DEMONSTRATION")
    print("   Poseidon census tree + membership-and-nullifier relation")
    print("=" * 80)

    capacity = 2 ** (config.zk_config.census_depth - 1)
    if num_voters > capacity:
        print(f"\n{num_voters} voters exceed census capacity {capacity}")
        return False

    process_id = (random_field_element(), random_field_element())
    orchestrator = ElectionOrchestrator(config, process_id)

    try:
        print(f"\nRegistering {num_voters} voters "
              f"(census depth {config.zk_config.census_depth}, capacity {capacity})...")
        voters = []
        for _ in range(num_voters):
            secret_key = random_field_element()
            voters.append((secret_key, orchestrator.register_voter(secret_key)))
        orchestrator.close_registration()
        print(f"   Census root: {hex(orchestrator.census.root())}")

        print("\nCasting ballots...")
        start_time = time.time()
        for secret_key, index in voters:
            candidate = secrets.randbelow(3)
            vote_hash = poseidon_hash(candidate, random_field_element())
            artifact = await orchestrator.cast_vote(secret_key, index, vote_hash)
            await orchestrator.submit(artifact)
        voting_time = time.time() - start_time

        print("\nAttempting a double vote with voter 0...")
        secret_key, index = voters[0]
        second = await orchestrator.cast_vote(secret_key, index, poseidon_hash(1, 1))
        double_vote_rejected = not await orchestrator.submit(second)

        print("\n" + "=" * 40)
        print("ELECTION RESULTS")
        print("=" * 40)
        print(f"   Accepted ballots: {len(orchestrator.accepted)}")
        print(f"   Rejected ballots: {len(orchestrator.rejected)}")
        print(f"   Double vote rejected: {double_vote_rejected}")
        print(f"   Voting time: {voting_time:.3f}s")

        results: Dict[str, Any] = {
            'census_depth': config.zk_config.census_depth,
            'census_root': orchestrator.census.root(),
            'process_id': list(process_id),
            'accepted': orchestrator.accepted,
            'rejected_count': len(orchestrator.rejected),
            'double_vote_rejected': double_vote_rejected,
            'performance_metrics': orchestrator.performance_monitor.get_summary(),
        }

        report_path = output or config.results_dir / "franchise_demo_report.json"
        save_results(results, report_path)

        perf_report = create_performance_report(orchestrator.performance_monitor)
        perf_path = Path(report_path).parent / "performance_report.txt"
        with open(perf_path, "w") as f:
            f.write(perf_report)

        print(f"\nFull results saved to: {report_path}")
        print(f"Performance report: {perf_path}")

        return len(orchestrator.accepted) == num_voters and double_vote_rejected

    finally:
        orchestrator.close()


def run_census(depth: int) -> bool:
    """Fill a census with sequential leaves, print it and check every path"""
    tree = CensusTree.from_leaves(depth, range(2 ** (depth - 1)))
    print(tree.render())
    print(f"\nRoot: {hex(tree.root())}")

    all_valid = all(
        CensusTree.check_witness(tree.get(i), tree.witness(i), tree.root())
        for i in range(tree.capacity)
    )
    print(f"All {tree.capacity} authentication paths valid: {all_valid}")
    return all_valid


def run_worked_example(levels: int = 3) -> bool:
    """Worked example: the relation accepts, and rejects every tampered public value"""
    relation, public = generate_test_data(levels)

    accepted = MockProver.run(relation, public).is_satisfied()
    print(f"Relation with {levels} levels satisfied: {accepted}")

    names = ["root", "nullifier", "vote hash"]
    all_rejected = True
    for n in range(FranchiseRelation.NUM_PUBLIC_VALUES):
        public[n] += 1
        rejected = not MockProver.run(relation, public).is_satisfied()
        print(f"   tampered {names[n]} rejected: {rejected}")
        all_rejected &= rejected
        public[n] -= 1

    restored = MockProver.run(relation, public).is_satisfied()
    print(f"Restored public values satisfied: {restored}")
    return accepted and all_rejected and restored


def main():
    parser = argparse.ArgumentParser(
        description='Anonymous census voting proofs')
    parser.add_argument('--mode', choices=['demo', 'census', 'verify'], default='demo')
    parser.add_argument('--voters', type=int, default=8,
                        help='Number of voters (demo mode)')
    parser.add_argument('--depth', type=int, default=None,
                        help='Census tree depth (overrides config)')
    parser.add_argument('--config', type=str,
                        default='config.yaml', help='Config file path')
    parser.add_argument('--output', type=str, default=None,
                        help='Results file (demo mode)')
    parser.add_argument('--log-level', type=str, default=None)

    args = parser.parse_args()

    config = load_config(Path(args.config))
    if args.depth is not None:
        config.zk_config.census_depth = args.depth
        config.zk_config.__post_init__()

    setup_logging(args.log_level or config.log_level, log_dir=config.log_dir)

    try:
        if args.mode == 'demo':
            output = Path(args.output) if args.output else None
            success = asyncio.run(run_demo(config, args.voters, output))
        elif args.mode == 'census':
            success = run_census(config.zk_config.census_depth)
        else:
            success = run_worked_example()
    except (ValueError, ProofGenerationError) as e:
        logger.error(f"{args.mode} failed: {e}", exc_info=True)
        success = False

    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
