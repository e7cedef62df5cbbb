# Copyright (c) 2023 Nordic Semiconductor ASA
# SPDX-License-Identifier: Apache-2.0

"""
Minimal perfect hash over integer keys, built with the hash-and-displace method.

Keys are first distributed into buckets with hash(key, 0). Buckets are then placed in order of
decreasing size: for each bucket the smallest displacement d >= 1 is searched such that
hash(key, d) % n maps every key of the bucket to a distinct free slot. A lookup therefore costs
two hash evaluations and one key comparison.

The hash function is a splitmix64 finalizer. The generated Rust code implements the same
function, so tables built here can be evaluated there.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Mapping, Optional, Tuple, TypeVar

import numpy as np

from .errors import CodeGenError

MASK64 = (1 << 64) - 1

# splitmix64 constants
GAMMA = 0x9E3779B97F4A7C15
MIX1 = 0xBF58476D1CE4E5B9
MIX2 = 0x94D049BB133111EB

# Displacements tried per vectorised step while placing a bucket.
_BATCH = 64

V = TypeVar("V")


def hash_key(key: int, seed: int) -> int:
    """64 bit hash of key with the given seed."""
    z = (key ^ (seed * GAMMA)) & MASK64
    z = ((z ^ (z >> 30)) * MIX1) & MASK64
    z = ((z ^ (z >> 27)) * MIX2) & MASK64
    return z ^ (z >> 31)


def _hash_array(keys: np.ndarray, seeds: np.ndarray) -> np.ndarray:
    """Vectorised hash_key, broadcasting keys against seeds. Arithmetic wraps modulo 2**64."""
    seeds = np.atleast_1d(np.asarray(seeds, dtype=np.uint64))
    z = keys ^ (seeds * np.uint64(GAMMA))
    z = (z ^ (z >> np.uint64(30))) * np.uint64(MIX1)
    z = (z ^ (z >> np.uint64(27))) * np.uint64(MIX2)
    return z ^ (z >> np.uint64(31))


@dataclass(frozen=True)
class PerfectHashMap(Generic[V]):
    """Immutable map from integer keys to values, backed by a minimal perfect hash."""

    # Displacement of each bucket.
    displacements: Tuple[int, ...]

    # Key stored in each slot.
    keys: Tuple[int, ...]

    # Value stored in each slot.
    values: Tuple[V, ...]

    def slot(self, key: int) -> int:
        """Slot that key maps to. Only meaningful for keys that are in the map."""
        bucket = hash_key(key, 0) % len(self.displacements)
        return hash_key(key, self.displacements[bucket]) % len(self.keys)

    def get(self, key: int, default: Optional[V] = None) -> Optional[V]:
        if not self.keys:
            return default

        i = self.slot(key)
        return self.values[i] if self.keys[i] == key else default

    def __len__(self) -> int:
        return len(self.keys)


def build(items: Mapping[int, V], max_displacement: int = 1 << 16) -> PerfectHashMap[V]:
    """
    Build a minimal perfect hash map. The result only depends on the set of items.

    :param items: Map from key (0 <= key < 2**64) to value.
    :param max_displacement: Largest displacement to try for a bucket.

    :raises CodeGenError: If a bucket cannot be placed.
    :return: Perfect hash map containing the items.
    """
    if not items:
        return PerfectHashMap(displacements=(), keys=(), values=())

    sorted_keys = sorted(items)
    if sorted_keys[0] < 0 or sorted_keys[-1] > MASK64:
        raise CodeGenError("Perfect hash keys must be unsigned 64 bit integers")

    keys = np.array(sorted_keys, dtype=np.uint64)
    n = len(keys)
    num_buckets = n

    bucket_of = _hash_array(keys, np.uint64(0)) % np.uint64(num_buckets)
    buckets: List[np.ndarray] = [
        np.nonzero(bucket_of == np.uint64(b))[0] for b in range(num_buckets)
    ]

    # Place large buckets first, ties broken by bucket index.
    bucket_order = sorted(range(num_buckets), key=lambda b: (-len(buckets[b]), b))

    displacements = [0] * num_buckets
    slot_key_index = np.full(n, -1, dtype=np.int64)
    taken = np.zeros(n, dtype=bool)

    for b in bucket_order:
        members = buckets[b]
        if members.size == 0:
            break

        d = _find_displacement(keys[members], taken, n, max_displacement)
        if d is None:
            raise CodeGenError(
                f"Unable to build perfect hash: no displacement found for bucket {b} "
                f"with {members.size} key(s)"
            )

        slots = (_hash_array(keys[members], np.uint64(d)) % np.uint64(n)).astype(np.int64)
        taken[slots] = True
        slot_key_index[slots] = members
        displacements[b] = d

    return PerfectHashMap(
        displacements=tuple(displacements),
        keys=tuple(sorted_keys[i] for i in slot_key_index),
        values=tuple(items[sorted_keys[i]] for i in slot_key_index),
    )


def _find_displacement(
    bucket_keys: np.ndarray, taken: np.ndarray, n: int, max_displacement: int
) -> Optional[int]:
    """Smallest displacement that maps the bucket keys to distinct free slots."""
    for start in range(1, max_displacement + 1, _BATCH):
        seeds = np.arange(
            start, min(start + _BATCH, max_displacement + 1), dtype=np.uint64
        )
        # Shape (number of keys, number of seeds)
        slots = (_hash_array(bucket_keys[:, None], seeds[None, :]) % np.uint64(n)).astype(
            np.int64
        )

        free = ~taken[slots].any(axis=0)
        sorted_slots = np.sort(slots, axis=0)
        distinct = (np.diff(sorted_slots, axis=0) != 0).all(axis=0)

        ok = np.nonzero(free & distinct)[0]
        if ok.size:
            return int(seeds[ok[0]])

    return None
