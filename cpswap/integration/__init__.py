"""
Integration layer: asset collaborators, configuration, snapshots
"""

from .assets import AssetTransfer, LedgerAsset
from .config import PoolConfig, build_pool, load_config
from .snapshot import PoolSnapshot, canonical_snapshot_bytes, pool_from_snapshot, snapshot_from_pool

__all__ = [
    "AssetTransfer",
    "LedgerAsset",
    "PoolConfig",
    "build_pool",
    "load_config",
    "PoolSnapshot",
    "canonical_snapshot_bytes",
    "pool_from_snapshot",
    "snapshot_from_pool",
]
