import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class ZKConfig:
    backend: str = "transcript"
    census_depth: int = 10  # 2^9 = 512 voters, 9 path steps
    max_batch_size: int = 100
    max_concurrent_proofs: int = 10
    parallel_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    proof_ttl_seconds: int = 3600
    # None keeps spent nullifiers for the lifetime of the verifier
    nullifier_ttl_seconds: Optional[int] = None

    def __post_init__(self):
        # YAML may hand over strings
        self.backend = str(self.backend)
        self.census_depth = int(self.census_depth)
        self.max_batch_size = int(self.max_batch_size)
        self.max_concurrent_proofs = int(self.max_concurrent_proofs)
        self.parallel_workers = int(self.parallel_workers)
        self.proof_ttl_seconds = int(self.proof_ttl_seconds)
        if self.nullifier_ttl_seconds is not None:
            self.nullifier_ttl_seconds = int(self.nullifier_ttl_seconds)

        if self.census_depth < 1:
            raise ValueError(
                f"census_depth must be >= 1, got {self.census_depth}")
        if self.max_batch_size < 1 or self.max_concurrent_proofs < 1:
            raise ValueError("Batch size and concurrency limits must be positive")
        if self.parallel_workers < 1:
            raise ValueError("parallel_workers must be positive")

    @property
    def levels(self) -> int:
        """Path steps proved by the relation for this census depth"""
        return self.census_depth - 1


@dataclass
class SystemConfig:
    zk_config: ZKConfig = field(default_factory=ZKConfig)

    log_dir: Path = field(default_factory=lambda: Path("logs"))
    results_dir: Path = field(default_factory=lambda: Path("results"))
    enable_benchmarking: bool = True
    enable_debug_mode: bool = False

    def __post_init__(self):
        self.log_dir = Path(self.log_dir)
        self.results_dir = Path(self.results_dir)

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.enable_debug_mode else "INFO"


def load_config(config_path: Optional[Path] = None) -> SystemConfig:
    """Load configuration from file or return default"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    if not config_path.exists():
        return SystemConfig()

    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Could not load config file {config_path}: {e}")
        logger.warning("Using default configuration")
        return SystemConfig()

    defaults = ZKConfig()
    zk_data = config_data.get('zk_proofs', {}) or {}
    zk_config = ZKConfig(
        backend=zk_data.get('backend', defaults.backend),
        census_depth=zk_data.get('census_depth', defaults.census_depth),
        max_batch_size=zk_data.get('max_batch_size', defaults.max_batch_size),
        max_concurrent_proofs=zk_data.get(
            'max_concurrent_proofs', defaults.max_concurrent_proofs),
        parallel_workers=zk_data.get(
            'parallel_workers', defaults.parallel_workers),
        proof_ttl_seconds=zk_data.get(
            'proof_ttl_seconds', defaults.proof_ttl_seconds),
        nullifier_ttl_seconds=zk_data.get(
            'nullifier_ttl_seconds', defaults.nullifier_ttl_seconds)
    )

    return SystemConfig(
        zk_config=zk_config,
        log_dir=Path(config_data.get('log_dir', 'logs')),
        results_dir=Path(config_data.get('results_dir', 'results')),
        enable_benchmarking=config_data.get('enable_benchmarking', True),
        enable_debug_mode=config_data.get('enable_debug_mode', False)
    )


def save_config(config: SystemConfig, config_path: Optional[Path] = None):
    """Save configuration to YAML file"""
    if config_path is None:
        config_path = Path("config.yaml")
    config_path = Path(config_path)

    config_data = {
        'zk_proofs': {
            'backend': config.zk_config.backend,
            'census_depth': config.zk_config.census_depth,
            'max_batch_size': config.zk_config.max_batch_size,
            'max_concurrent_proofs': config.zk_config.max_concurrent_proofs,
            'parallel_workers': config.zk_config.parallel_workers,
            'proof_ttl_seconds': config.zk_config.proof_ttl_seconds,
            'nullifier_ttl_seconds': config.zk_config.nullifier_ttl_seconds
        },
        'log_dir': str(config.log_dir),
        'results_dir': str(config.results_dir),
        'enable_benchmarking': config.enable_benchmarking,
        'enable_debug_mode': config.enable_debug_mode
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config_data, f, default_flow_style=False)

    logger.info(f"Configuration saved to {config_path}")
