from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, TextIO

import torch

from ..utils.errors import PoolAllocationError


PHOTON_TYPE_CODES = {
    "injected": ord("i"),
    "synchrotron": ord("s"),
    "compton": ord("c"),
}

# name -> (trailing shape, dtype)
PHOTON_FIELDS: Dict[str, tuple[tuple[int, ...], torch.dtype]] = {
    "p": ((4,), torch.float64),
    "comv_p": ((4,), torch.float64),
    "r": ((3,), torch.float64),
    "s": ((4,), torch.float64),
    "num_scatt": ((), torch.int64),
    "nearest_block_index": ((), torch.int64),
    "type": ((), torch.uint8),
    "weight": ((), torch.float64),
}

GROWTH_MODES = ("shortfall", "append")


def _null_records(n: int, device: torch.device) -> Dict[str, torch.Tensor]:
    bufs = {
        k: torch.zeros((n, *shape), device=device, dtype=dtype)
        for k, (shape, dtype) in PHOTON_FIELDS.items()
    }
    bufs["nearest_block_index"].fill_(-1)
    return bufs


@dataclass
class PhotonPool:
    """Structure-of-arrays photon population.

    A slot is null (free for reuse) exactly when its weight is 0.
    """

    bufs: Dict[str, torch.Tensor]

    @staticmethod
    def allocate(n: int, device: str | torch.device = "cpu") -> "PhotonPool":
        """Pool of n null slots."""
        if int(n) < 0:
            raise ValueError("n must be >= 0")
        return PhotonPool(bufs=_null_records(int(n), torch.device(device)))

    @staticmethod
    def from_records(device: str | torch.device | None = None, **records: torch.Tensor) -> "PhotonPool":
        """Pool built from existing per-photon records, one keyword per photon field.

        Every field must be present with a shared leading length and its trailing
        shape; values are cast to the field dtype.
        """
        missing = [k for k in PHOTON_FIELDS if k not in records]
        unknown = [k for k in records if k not in PHOTON_FIELDS]
        if missing or unknown:
            raise ValueError(f"Photon records mismatch: missing={missing}, unknown={unknown}")

        n = None
        bufs = {}
        for k, (shape, dtype) in PHOTON_FIELDS.items():
            t = torch.as_tensor(records[k])
            if device is not None:
                t = t.to(device=device)
            if t.ndim != 1 + len(shape) or tuple(t.shape[1:]) != shape:
                raise ValueError(f"{k} must have shape (N, {', '.join(map(str, shape))}), got {tuple(t.shape)}")
            if n is None:
                n = int(t.shape[0])
            elif int(t.shape[0]) != n:
                raise ValueError(f"{k} has {int(t.shape[0])} records, expected {n}")
            bufs[k] = t.to(dtype=dtype).clone()
        return PhotonPool(bufs=bufs)

    @property
    def size(self) -> int:
        return int(self.bufs["weight"].shape[0])

    @property
    def device(self) -> torch.device:
        return self.bufs["weight"].device

    def __len__(self) -> int:
        return self.size

    def view(self) -> Dict[str, torch.Tensor]:
        return dict(self.bufs)

    def null_mask(self) -> torch.Tensor:
        return self.bufs["weight"] == 0

    def count_null(self) -> int:
        return int(self.null_mask().sum().item())

    def free_slots(self) -> torch.Tensor:
        """Indices of null slots, last slot first."""
        return torch.nonzero(self.null_mask(), as_tuple=False).flatten().flip(0)

    def grow(self, n: int) -> None:
        """Append n null slots; existing records are copied unchanged."""
        n = int(n)
        if n < 0:
            raise ValueError("n must be >= 0")
        if n == 0:
            return
        try:
            extra = _null_records(n, self.device)
            grown = {k: torch.cat([self.bufs[k], extra[k]], dim=0) for k in PHOTON_FIELDS}
        except (RuntimeError, MemoryError) as e:
            raise PoolAllocationError(
                f"Error reserving space for {self.size + n} photons (have {self.size}, need {n} more): {e}"
            ) from e
        self.bufs = grown

    def write(self, slots: torch.Tensor, values: Mapping[str, torch.Tensor]) -> None:
        """Scatter per-photon values into the given slots."""
        slots = slots.to(device=self.device, dtype=torch.int64)
        for k, v in values.items():
            if k not in self.bufs:
                raise KeyError(f"Unknown photon field {k!r}")
            self.bufs[k][slots] = v.to(device=self.device, dtype=self.bufs[k].dtype)


@dataclass
class SlotReservation:
    """Slots set aside for new photons, consumed last-in-first-out."""

    slots: List[int] = field(default_factory=list)
    grown_by: int = 0
    null_before: int = 0

    def __len__(self) -> int:
        return len(self.slots)

    def pop(self) -> int:
        return self.slots.pop()

    def take(self, n: int) -> List[int]:
        """Next n slots in consumption order."""
        n = int(n)
        if n < 0 or n > len(self.slots):
            raise ValueError(f"cannot take {n} slots from a reservation of {len(self.slots)}")
        return [self.pop() for _ in range(n)]


def reserve_slots(
    pool: PhotonPool,
    total: int,
    *,
    growth: str = "shortfall",
    diagnostics: TextIO | None = None,
    log_slot_indices: bool = False,
) -> SlotReservation:
    """Find or create room for `total` new photons in the pool.

    growth:
    - "shortfall": grow by exactly the number of missing null slots; the new slots and
      every pre-existing null slot are reserved.
    - "append": grow by `total`; only the new slots are reserved and pre-existing null
      slots are left alone.

    When enough null slots exist the pool is not grown and the nulls closest to the
    tail are reserved.
    """
    if growth not in GROWTH_MODES:
        raise ValueError(f"Unknown growth={growth!r}, expected one of {GROWTH_MODES}")
    total = int(total)
    if total < 0:
        raise ValueError("total must be >= 0")

    free = pool.free_slots()
    null_before = int(free.numel())
    if total == 0:
        return SlotReservation(slots=[], grown_by=0, null_before=null_before)

    if total <= null_before:
        chosen = free[:total].tolist()
        if log_slot_indices and diagnostics is not None:
            for i in chosen:
                print(f"NULL PHOTON INDEX {i}", file=diagnostics)
        return SlotReservation(slots=chosen, grown_by=0, null_before=null_before)

    old_size = pool.size
    grow_by = total - null_before if growth == "shortfall" else total
    if diagnostics is not None:
        print(f"Allocating {old_size + grow_by} space", file=diagnostics)
    pool.grow(grow_by)

    new_slots = list(range(old_size + grow_by - 1, old_size - 1, -1))
    if log_slot_indices and diagnostics is not None:
        for i in new_slots:
            print(f"NULL PHOTON INDEX {i}", file=diagnostics)

    if growth == "shortfall":
        chosen = new_slots + free.tolist()
    else:
        chosen = new_slots
    return SlotReservation(slots=chosen, grown_by=grow_by, null_before=null_before)
