"""
Pool configuration.

Precedence (lowest to highest): dataclass defaults, a YAML file, environment
variables. The YAML file is a flat mapping whose keys are `PoolConfig` field
names, e.g.

    asset_a: "0xaaaa"
    asset_b: "0xbbbb"
    address: "pool"
    check_invariants: true
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from ..core.pool import DEFAULT_POOL_ADDRESS, Clock, Pool, wall_clock
from ..state.balances import AssetId
from .assets import AssetTransfer

logger = logging.getLogger(__name__)

ENV_POOL_ADDRESS = "CPSWAP_POOL_ADDRESS"
ENV_CHECK_INVARIANTS = "CPSWAP_CHECK_INVARIANTS"


@dataclass(frozen=True)
class PoolConfig:
    asset_a: AssetId = ""
    asset_b: AssetId = ""
    # The pool's own account on both asset ledgers.
    address: str = DEFAULT_POOL_ADDRESS
    # Run the invariant checkers after each deposit/withdraw/swap (fail-closed).
    check_invariants: bool = True

    def __post_init__(self) -> None:
        for name in ("asset_a", "asset_b", "address"):
            v = getattr(self, name)
            if not isinstance(v, str):
                raise TypeError(f"{name} must be a string")
        if not isinstance(self.check_invariants, bool):
            raise TypeError("check_invariants must be a bool")
        if not self.address:
            raise ValueError("address must be non-empty")
        if self.asset_a and self.asset_a == self.asset_b:
            raise ValueError(f"asset_a and asset_b must differ: {self.asset_a!r}")


_FIELD_NAMES = frozenset(f.name for f in fields(PoolConfig))


def _bool_env(name: str, *, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return bool(default)
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def config_from_mapping(obj: Mapping[str, Any], *, base: Optional[PoolConfig] = None) -> PoolConfig:
    if not isinstance(obj, Mapping):
        raise TypeError("pool config must be a mapping")
    unknown = sorted(set(obj) - _FIELD_NAMES)
    if unknown:
        raise ValueError(f"unknown pool config keys: {unknown}")
    return replace(base or PoolConfig(), **dict(obj))


def apply_env_overrides(config: PoolConfig) -> PoolConfig:
    address = os.environ.get(ENV_POOL_ADDRESS, "").strip() or config.address
    check = _bool_env(ENV_CHECK_INVARIANTS, default=config.check_invariants)
    return replace(config, address=address, check_invariants=check)


def load_config(path: Optional[Path] = None) -> PoolConfig:
    """
    Load a `PoolConfig` from an optional YAML file, then apply env overrides.

    An empty YAML document yields the defaults.
    """
    config = PoolConfig()
    if path is not None:
        path = Path(path)
        try:
            obj = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ValueError(f"invalid pool config YAML in {path}: {exc}") from exc
        if obj is not None:
            config = config_from_mapping(obj, base=config)
        logger.debug("loaded pool config from %s", path)
    return apply_env_overrides(config)


def build_pool(
    config: PoolConfig,
    assets: Mapping[AssetId, AssetTransfer],
    *,
    clock: Clock = wall_clock,
) -> Pool:
    """Construct a `Pool` for `config.asset_a`/`config.asset_b` from an asset registry."""
    missing = [a for a in (config.asset_a, config.asset_b) if a not in assets]
    if missing:
        raise ValueError(f"no asset collaborator registered for: {missing}")
    return Pool(
        assets[config.asset_a],
        assets[config.asset_b],
        address=config.address,
        clock=clock,
        check_invariants=config.check_invariants,
    )
