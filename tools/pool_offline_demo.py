#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import replace
from pathlib import Path

from cpswap import PRICE_SCALE
from cpswap.integration import LedgerAsset, build_pool, load_config, snapshot_from_pool


def _now() -> int:
    return int(time.time())


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed an in-memory pool, swap once, withdraw, and print the results.")
    parser.add_argument("--config", type=Path, default=None, help="optional pool config YAML")
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--amount-a", type=int, default=1000)
    parser.add_argument("--amount-b", type=int, default=2000)
    parser.add_argument("--swap-in", type=int, default=100)
    args = parser.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    config = load_config(args.config)
    asset_a = config.asset_a or "0x" + "11" * 32
    asset_b = config.asset_b or "0x" + "22" * 32
    if not config.asset_a or not config.asset_b:
        config = replace(config, asset_a=asset_a, asset_b=asset_b)

    token_a = LedgerAsset(asset_a)
    token_b = LedgerAsset(asset_b)
    pool = build_pool(config, {asset_a: token_a, asset_b: token_b})

    alice = "alice"
    token_a.mint(alice, 10_000)
    token_b.mint(alice, 10_000)

    deadline = _now() + 3600
    dep = pool.deposit(alice, args.amount_a, args.amount_b, 0, 0, alice, deadline)
    print(f"[offline-demo] deposit: used=({dep.amount_a}, {dep.amount_b}) shares={dep.shares_minted}")
    print(f"[offline-demo] price a->b: {pool.get_price(asset_a, asset_b)} / {PRICE_SCALE}")

    res = pool.swap(alice, args.swap_in, 1, asset_a, asset_b, alice, deadline)
    print(f"[offline-demo] swap: in={res.amount_in} out={res.amount_out} reserves={pool.get_reserves()}")

    wd = pool.withdraw(alice, pool.share_balance(alice), 0, 0, alice, deadline)
    print(f"[offline-demo] withdraw: out=({wd.amount_a}, {wd.amount_b}) reserves={pool.get_reserves()}")

    snap = snapshot_from_pool(pool)
    print(f"[offline-demo] snapshot: {json.dumps(snap.data, sort_keys=True)}")
    print(f"[offline-demo] commitment: {snap.commitment_hex()}")
    print(f"[offline-demo] holdings: a={token_a.holders()} b={token_b.holders()}")
    print("[offline-demo] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
