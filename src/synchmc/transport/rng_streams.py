"""
Per-worker random streams for the parallel parts of photon emission.

Stream 0 is the caller's generator, used as is. Streams 1..n-1 are fresh
torch.Generator objects seeded from draws on the primary stream, in index order.

Work is split into contiguous partitions and partition k always runs on stream k,
so a run is reproducible for a fixed worker count no matter how threads are
scheduled. Changing the worker count changes the partitioning and therefore the draws.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Sequence, TypeVar

import torch

T = TypeVar("T")

_SEED_HIGH = 2 ** 62


def draw_seed(generator: torch.Generator) -> int:
    return int(torch.randint(0, _SEED_HIGH, (1,), generator=generator, dtype=torch.int64).item())


class RNGStreamManager:
    """Owns one random stream per worker for the duration of a `with` block."""

    def __init__(self, primary: torch.Generator, n_workers: int = 1) -> None:
        if int(n_workers) <= 0:
            raise ValueError("n_workers must be > 0")
        self.primary = primary
        self.n_workers = int(n_workers)
        self._streams: List[torch.Generator] = []

    def __enter__(self) -> "RNGStreamManager":
        self._streams = [self.primary]
        for _ in range(1, self.n_workers):
            g = torch.Generator(device=self.primary.device)
            g.manual_seed(draw_seed(self.primary))
            self._streams.append(g)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def release(self) -> None:
        """Drop the worker streams; the primary stays with the caller."""
        self._streams = []

    @property
    def streams(self) -> Sequence[torch.Generator]:
        if not self._streams:
            raise RuntimeError("RNGStreamManager streams are only available inside its context")
        return tuple(self._streams)

    def stream(self, k: int) -> torch.Generator:
        return self.streams[k]

    def partition(self, n_items: int) -> list[tuple[int, int]]:
        """Split range(n_items) into n_workers contiguous (start, stop) ranges.

        Earlier partitions take the remainder, so sizes differ by at most one.
        Empty partitions are kept so that partition k always pairs with stream k.
        """
        n_items = int(n_items)
        if n_items < 0:
            raise ValueError("n_items must be >= 0")
        base, rem = divmod(n_items, self.n_workers)
        bounds = []
        start = 0
        for k in range(self.n_workers):
            stop = start + base + (1 if k < rem else 0)
            bounds.append((start, stop))
            start = stop
        return bounds

    def map_partitions(self, fn: Callable[[torch.Generator, int, int], T], n_items: int) -> list[T]:
        """Run fn(stream_k, start_k, stop_k) for every partition, results in partition order."""
        bounds = self.partition(n_items)
        streams = self.streams
        if self.n_workers == 1:
            return [fn(streams[0], bounds[0][0], bounds[0][1])]

        with ThreadPoolExecutor(max_workers=self.n_workers) as pool:
            futures = [pool.submit(fn, streams[k], start, stop) for k, (start, stop) in enumerate(bounds)]
            return [f.result() for f in futures]
