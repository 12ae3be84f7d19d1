"""
Pool state snapshot encoding.

Goals:
- Deterministic JSON serialization for hashing / persistence.
- Round-trippable into a `Pool` given the asset collaborators.
- Explicit versioning.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from ..core.pool import Pool
from ..state.balances import AssetId
from .assets import AssetTransfer


POOL_SNAPSHOT_VERSION = 1

_SHARE_ENTRY_KEYS = frozenset({"provider", "shares"})


def _commitment_prefix(version: int) -> bytes:
    # NUL-terminated so the prefix cannot run into the JSON body.
    return b"cpswap:pool_snapshot:v%d\x00" % version


def _check_scalar(value: Any, *, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise TypeError(f"{name} must be an int or str, got {type(value).__name__}")


def canonical_snapshot_bytes(data: Mapping[str, Any]) -> bytes:
    """
    Canonical encoding of snapshot data.

    Scalar fields must be int or str; `shares` must be a list of
    `{provider, shares}` objects. Output is ASCII JSON with sorted keys and no
    whitespace, so equal snapshots always hash equally.
    """
    for key, value in data.items():
        if not isinstance(key, str):
            raise TypeError("snapshot keys must be str")
        if key != "shares":
            _check_scalar(value, name=key)
            continue
        if not isinstance(value, list):
            raise TypeError("shares must be a list")
        for i, entry in enumerate(value):
            if not isinstance(entry, Mapping) or set(entry) != _SHARE_ENTRY_KEYS:
                raise TypeError(f"shares[{i}] must be an object with keys provider, shares")
            _check_scalar(entry["provider"], name=f"shares[{i}].provider")
            _check_scalar(entry["shares"], name=f"shares[{i}].shares")
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("ascii")


def _require_str(value: Any, *, name: str, max_len: int = 4096) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a string")
    if not value:
        raise ValueError(f"{name} must be non-empty")
    if len(value) > max_len:
        raise ValueError(f"{name} too large")
    return value


def _require_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{name} must be an int")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")
    return int(value)


@dataclass(frozen=True)
class PoolSnapshot:
    """
    Deterministic, versioned snapshot of a `Pool`.

    The commitment is *not* included inside `data` to avoid self-reference.
    """

    version: int
    data: Dict[str, Any]

    def canonical_bytes(self) -> bytes:
        return canonical_snapshot_bytes(self.data)

    def commitment_bytes(self) -> bytes:
        return hashlib.sha256(_commitment_prefix(self.version) + self.canonical_bytes()).digest()

    def commitment_hex(self) -> str:
        return "0x" + self.commitment_bytes().hex()


def snapshot_from_pool(pool: Pool, *, version: int = POOL_SNAPSHOT_VERSION) -> PoolSnapshot:
    if not isinstance(version, int) or isinstance(version, bool) or version <= 0:
        raise ValueError("version must be a positive int")

    reserve_a, reserve_b = pool.get_reserves()
    share_entries = [
        {"provider": provider, "shares": int(amount)}
        for provider, amount in pool.share_balances().items()
    ]
    share_entries.sort(key=lambda e: e["provider"])

    data = {
        "version": version,
        "asset_a": pool.asset_a,
        "asset_b": pool.asset_b,
        "address": pool.address,
        "reserve_a": int(reserve_a),
        "reserve_b": int(reserve_b),
        "total_shares": int(pool.total_shares),
        "shares": share_entries,
    }
    return PoolSnapshot(version=version, data=data)


def pool_from_snapshot(
    data: Mapping[str, Any],
    assets: Mapping[AssetId, AssetTransfer],
    **pool_kwargs: Any,
) -> Pool:
    """
    Restore a `Pool` from snapshot data.

    Raises:
        TypeError / ValueError: On malformed data
        PoolInvariantError: If the restored ledgers are inconsistent
    """
    if not isinstance(data, Mapping):
        raise TypeError("snapshot must be a mapping")
    version = data.get("version")
    if version != POOL_SNAPSHOT_VERSION:
        raise ValueError(f"unsupported pool snapshot version: {version!r}")

    asset_a = _require_str(data.get("asset_a"), name="asset_a")
    asset_b = _require_str(data.get("asset_b"), name="asset_b")
    address = _require_str(data.get("address"), name="address")
    reserve_a = _require_int(data.get("reserve_a"), name="reserve_a")
    reserve_b = _require_int(data.get("reserve_b"), name="reserve_b")
    total_shares = _require_int(data.get("total_shares"), name="total_shares")

    entries = data.get("shares")
    if not isinstance(entries, list):
        raise TypeError("shares must be a list")
    balances: Dict[str, int] = {}
    for i, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise TypeError(f"shares[{i}] must be an object")
        provider = _require_str(entry.get("provider"), name=f"shares[{i}].provider")
        if provider in balances:
            raise ValueError(f"duplicate provider in shares: {provider!r}")
        balances[provider] = _require_int(entry.get("shares"), name=f"shares[{i}].shares")

    if sum(balances.values()) != total_shares:
        raise ValueError(f"total_shares {total_shares} != sum of share balances {sum(balances.values())}")

    for asset_id in (asset_a, asset_b):
        if asset_id not in assets:
            raise ValueError(f"no asset collaborator registered for: {asset_id!r}")

    return Pool.from_state(
        assets[asset_a],
        assets[asset_b],
        reserve_a=reserve_a,
        reserve_b=reserve_b,
        share_balances=balances,
        address=address,
        **pool_kwargs,
    )
