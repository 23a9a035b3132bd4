from __future__ import annotations

import io

import pytest
import torch

from synchmc.transport import photon_pool
from synchmc.transport.photon_pool import (
    PHOTON_FIELDS,
    PHOTON_TYPE_CODES,
    PhotonPool,
    SlotReservation,
    reserve_slots,
)
from synchmc.utils.errors import EmissionError, PoolAllocationError


def _occupy(pool: PhotonPool, slots, seed: int = 0) -> None:
    """Fill slots with arbitrary non-null photons."""
    g = torch.Generator(device="cpu")
    g.manual_seed(seed)
    idx = torch.as_tensor(list(slots), dtype=torch.int64)
    k = int(idx.numel())
    pool.write(
        idx,
        {
            "p": torch.rand((k, 4), generator=g, dtype=torch.float64),
            "comv_p": torch.rand((k, 4), generator=g, dtype=torch.float64),
            "r": torch.rand((k, 3), generator=g, dtype=torch.float64),
            "s": torch.rand((k, 4), generator=g, dtype=torch.float64),
            "num_scatt": torch.randint(0, 5, (k,), generator=g),
            "nearest_block_index": torch.randint(0, 100, (k,), generator=g),
            "type": torch.full((k,), PHOTON_TYPE_CODES["injected"], dtype=torch.uint8),
            "weight": 1.0 + torch.rand((k,), generator=g, dtype=torch.float64),
        },
    )


def _pool_with_nulls(size: int, null_slots) -> PhotonPool:
    pool = PhotonPool.allocate(size)
    _occupy(pool, [i for i in range(size) if i not in set(null_slots)])
    return pool


class TestPhotonPool:
    """Test the structure-of-arrays photon pool."""

    def test_allocate_null_slots(self):
        """Test a new pool holds only null slots with the documented defaults."""
        pool = PhotonPool.allocate(5)
        assert pool.size == 5
        assert len(pool) == 5
        assert pool.count_null() == 5
        for name, (shape, dtype) in PHOTON_FIELDS.items():
            assert pool.bufs[name].shape == (5, *shape)
            assert pool.bufs[name].dtype == dtype
        assert torch.all(pool.bufs["nearest_block_index"] == -1)

    def test_allocate_empty_pool(self):
        """Test a zero-sized pool is valid."""
        pool = PhotonPool.allocate(0)
        assert pool.size == 0
        assert pool.free_slots().numel() == 0

    def test_allocate_negative_rejected(self):
        with pytest.raises(ValueError):
            PhotonPool.allocate(-1)

    def test_free_slots_tail_first(self):
        """Test free slots are listed from the highest index down."""
        pool = _pool_with_nulls(10, [1, 4, 7, 8])
        assert pool.free_slots().tolist() == [8, 7, 4, 1]

    def test_grow_preserves_records(self):
        """Test growth copies existing records bit for bit and appends null slots."""
        pool = _pool_with_nulls(6, [2])
        before = {k: v.clone() for k, v in pool.bufs.items()}
        pool.grow(3)

        assert pool.size == 9
        for k, v in before.items():
            assert torch.equal(pool.bufs[k][:6], v)
        assert torch.all(pool.bufs["weight"][6:] == 0)
        assert torch.all(pool.bufs["nearest_block_index"][6:] == -1)
        assert pool.count_null() == 4

    def test_grow_failure_leaves_pool_intact(self, monkeypatch):
        """Test an allocation failure raises PoolAllocationError and keeps the old buffers."""
        pool = _pool_with_nulls(4, [])
        before = {k: v.clone() for k, v in pool.bufs.items()}

        def _boom(n, device):
            raise RuntimeError("out of memory")

        monkeypatch.setattr(photon_pool, "_null_records", _boom)
        with pytest.raises(PoolAllocationError) as exc:
            pool.grow(10)
        assert isinstance(exc.value, EmissionError)
        assert isinstance(exc.value, MemoryError)
        assert pool.size == 4
        for k, v in before.items():
            assert torch.equal(pool.bufs[k], v)

    def test_write_unknown_field_rejected(self):
        pool = PhotonPool.allocate(2)
        with pytest.raises(KeyError):
            pool.write(torch.tensor([0]), {"energy": torch.tensor([1.0])})

    def test_zero_weight_write_frees_slots(self):
        """Test a slot written with weight 0 becomes free again."""
        pool = _pool_with_nulls(5, [])
        pool.write(torch.tensor([1, 3]), {"weight": torch.zeros(2, dtype=torch.float64)})
        assert pool.free_slots().tolist() == [3, 1]

    def test_from_records(self):
        """Test a pool built from existing records keeps them and finds their null slots."""
        n = 4
        weight = torch.tensor([1.5, 0.0, 2.0, 0.0], dtype=torch.float64)
        pool = PhotonPool.from_records(
            p=torch.ones((n, 4)),
            comv_p=torch.ones((n, 4)),
            r=torch.zeros((n, 3)),
            s=torch.tensor([[1.0, 0.0, 0.0, 0.0]] * n),
            num_scatt=[0, 2, 1, 0],
            nearest_block_index=[3, -1, 5, -1],
            type=[PHOTON_TYPE_CODES["compton"]] * n,
            weight=weight,
        )
        assert pool.size == n
        for name, (shape, dtype) in PHOTON_FIELDS.items():
            assert pool.bufs[name].shape == (n, *shape)
            assert pool.bufs[name].dtype == dtype
        assert pool.count_null() == 2
        assert pool.free_slots().tolist() == [3, 1]
        assert torch.equal(pool.bufs["weight"], weight)
        assert pool.bufs["weight"] is not weight

        res = reserve_slots(pool, 3)
        assert res.grown_by == 1
        assert pool.size == 5
        assert torch.equal(pool.bufs["weight"][:n], weight)

    def test_from_records_copies_input(self):
        """Test later writes to the pool leave the caller's tensors alone."""
        recs = {k: torch.zeros((2, *shape), dtype=dtype) for k, (shape, dtype) in PHOTON_FIELDS.items()}
        pool = PhotonPool.from_records(**recs)
        pool.write(torch.tensor([0]), {"weight": torch.tensor([4.0], dtype=torch.float64)})
        assert torch.all(recs["weight"] == 0)

    def test_from_records_missing_field(self):
        recs = {k: torch.zeros((2, *shape)) for k, (shape, _) in PHOTON_FIELDS.items() if k != "s"}
        with pytest.raises(ValueError, match="missing"):
            PhotonPool.from_records(**recs)

    def test_from_records_unknown_field(self):
        recs = {k: torch.zeros((2, *shape)) for k, (shape, _) in PHOTON_FIELDS.items()}
        recs["energy"] = torch.zeros(2)
        with pytest.raises(ValueError, match="energy"):
            PhotonPool.from_records(**recs)

    def test_from_records_bad_shape(self):
        recs = {k: torch.zeros((2, *shape)) for k, (shape, _) in PHOTON_FIELDS.items()}
        recs["r"] = torch.zeros((2, 4))
        with pytest.raises(ValueError, match="r must have shape"):
            PhotonPool.from_records(**recs)

    def test_from_records_length_mismatch(self):
        recs = {k: torch.zeros((2, *shape)) for k, (shape, _) in PHOTON_FIELDS.items()}
        recs["weight"] = torch.zeros(3)
        with pytest.raises(ValueError, match="records"):
            PhotonPool.from_records(**recs)


class TestSlotReservation:
    """Test last-in-first-out consumption of reserved slots."""

    def test_take_is_lifo(self):
        res = SlotReservation(slots=[9, 8, 3, 1])
        assert res.take(2) == [1, 3]
        assert res.pop() == 8
        assert len(res) == 1

    def test_take_matches_repeated_pop(self):
        """Test take(n) hands out slots in the same order as n pops."""
        a = SlotReservation(slots=[5, 2, 7, 0, 4])
        b = SlotReservation(slots=[5, 2, 7, 0, 4])
        assert a.take(3) == [b.pop() for _ in range(3)]
        assert a.slots == b.slots == [5, 2]

    def test_take_zero(self):
        res = SlotReservation(slots=[4])
        assert res.take(0) == []
        assert len(res) == 1

    def test_take_too_many_rejected(self):
        with pytest.raises(ValueError):
            SlotReservation(slots=[1, 2]).take(3)


class TestReserveSlots:
    """Test finding or creating room for new photons."""

    def test_zero_request_reserves_nothing(self):
        """Test requesting no photons neither grows nor reserves."""
        pool = _pool_with_nulls(5, [2])
        res = reserve_slots(pool, 0)
        assert len(res) == 0
        assert res.grown_by == 0
        assert res.null_before == 1
        assert pool.size == 5

    def test_recycles_tail_nulls_first(self):
        """Test existing null slots are reused, highest index first, without growth."""
        pool = _pool_with_nulls(10, [1, 4, 7, 8])
        res = reserve_slots(pool, 2)
        assert pool.size == 10
        assert res.grown_by == 0
        assert res.null_before == 4
        assert sorted(res.slots) == [7, 8]
        # consumption order is last-in-first-out over the reservation
        assert res.take(2) == [7, 8]

    def test_exact_null_count_no_growth(self):
        pool = _pool_with_nulls(10, [1, 4, 7, 8])
        res = reserve_slots(pool, 4)
        assert pool.size == 10
        assert sorted(res.slots) == [1, 4, 7, 8]

    def test_shortfall_growth(self):
        """Test 50 photons with 10 null slots grows the pool by exactly 40."""
        nulls = list(range(0, 20, 2))
        pool = _pool_with_nulls(30, nulls)
        res = reserve_slots(pool, 50, growth="shortfall")

        assert res.grown_by == 40
        assert res.null_before == 10
        assert pool.size == 70
        assert len(res) == 50
        assert set(res.slots) == set(range(30, 70)) | set(nulls)

    def test_append_growth(self):
        """Test append mode grows by the full request and leaves old nulls alone."""
        nulls = list(range(0, 20, 2))
        pool = _pool_with_nulls(30, nulls)
        res = reserve_slots(pool, 50, growth="append")

        assert res.grown_by == 50
        assert pool.size == 80
        assert sorted(res.slots) == list(range(30, 80))

    def test_growth_from_empty_pool(self):
        pool = PhotonPool.allocate(0)
        res = reserve_slots(pool, 3)
        assert pool.size == 3
        assert sorted(res.slots) == [0, 1, 2]

    def test_unknown_growth_mode_rejected(self):
        with pytest.raises(ValueError):
            reserve_slots(PhotonPool.allocate(1), 2, growth="double")

    def test_negative_total_rejected(self):
        with pytest.raises(ValueError):
            reserve_slots(PhotonPool.allocate(1), -1)

    def test_diagnostics(self):
        """Test allocation and slot messages go to the diagnostics sink."""
        pool = _pool_with_nulls(3, [0])
        sink = io.StringIO()
        reserve_slots(pool, 2, diagnostics=sink, log_slot_indices=True)
        out = sink.getvalue()
        assert "Allocating 4 space" in out
        assert "NULL PHOTON INDEX 3" in out
