"""
Thermal synchrotron photon emission for one light-crossing shell of a hydro snapshot.

Flow
- shell bounds from the transport and injection frames
- eligible cells: radius and polar angle inside the shell window
- per-cell Poisson photon counts with an adaptively rescaled photon weight
- slots in the photon pool, recycled or grown, reserved before any photon is written
- per photon: comoving frequency (rejection sampling) and direction, random emission
  azimuth, boost to the lab frame, write into the next reserved slot

Cells are split into contiguous partitions, one random stream each. Slot ranges are
handed out per cell by a prefix sum over the counts, so partitions fill disjoint slots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, TextIO

import numpy as np
import torch

from ..config.emission_config import SUPPORTED_HYDRO_MODELS, EmissionConfig
from ..grid.snapshot import FlashGrid
from ..physics.kinematics import lorentz_boost
from ..physics.synchrotron import shell_radius_limits
from ..source.photon_count import PhotonCountEstimator, cell_parameters
from ..source.sampling import SampleStats, sample_comoving_angles, sample_frequencies
from ..transport.photon_pool import PHOTON_TYPE_CODES, PhotonPool, reserve_slots
from ..transport.rng_streams import RNGStreamManager
from ..utils.constants import PLANCK_CONSTANT, SPEED_OF_LIGHT_C
from ..utils.errors import EmissionError, UnsupportedHydroModelError

BoostFn = Callable[[np.ndarray, np.ndarray], np.ndarray]


@dataclass
class EmissionResult:
    n_emitted: int
    num_photons: int            # pool size after emission
    num_null_photons: int       # null slots counted before the new photons were placed
    weight: float
    r_min: float
    r_max: float
    n_cells: int
    grown_by: int = 0
    envelope_violations: int = 0


class SynchrotronEmitter:
    """Emits thermal synchrotron photons from a hydro snapshot into a photon pool."""

    def __init__(
        self,
        config: EmissionConfig | None = None,
        *,
        boost: BoostFn = lorentz_boost,
        diagnostics: TextIO | None = None,
    ) -> None:
        self.config = config or EmissionConfig()
        self.boost = boost
        self.diagnostics = diagnostics
        self.estimator = PhotonCountEstimator(self.config, diagnostics=diagnostics)

    def _log(self, msg: str) -> None:
        if self.diagnostics is not None:
            print(msg, file=self.diagnostics)

    def emit(
        self,
        pool: PhotonPool,
        grid: FlashGrid,
        *,
        r_inj: float,
        ph_weight: float,
        maximum_photons: int,
        fps: float,
        theta_min: float,
        theta_max: float,
        frame_scatt: int,
        frame_inj: int,
        epsilon_b: float,
        generator: torch.Generator,
        hydro_model: str | None = None,
    ) -> EmissionResult:
        cfg = self.config
        model = hydro_model if hydro_model is not None else cfg.hydro_model
        if model not in SUPPORTED_HYDRO_MODELS:
            raise UnsupportedHydroModelError(
                f"Emitting photons with thermal synchrotron isn't available for hydro model {model!r}; "
                f"supported models: {SUPPORTED_HYDRO_MODELS}"
            )

        r_min, r_max = shell_radius_limits(frame_scatt, frame_inj, fps, r_inj)
        cells = grid.shell_indices(r_min, r_max, theta_min, theta_max)
        self._log(
            f"Synchrotron shell r in [{r_min:e}, {r_max:e}), theta in [{theta_min:e}, {theta_max:e}): "
            f"{cells.shape[0]} cells"
        )

        with RNGStreamManager(generator, cfg.n_workers) as streams:
            estimate = self.estimator.estimate(
                grid,
                cells,
                ph_weight=ph_weight,
                maximum_photons=maximum_photons,
                fps=fps,
                epsilon_b=epsilon_b,
                streams=streams,
            )

            null_before = pool.count_null()
            self._log(f"Emitting {estimate.total} synchrotron photons between {r_min:e} and {r_max:e} in this frame")

            # slots are reserved (and the pool grown) before any filling starts
            reservation = reserve_slots(
                pool,
                estimate.total,
                growth=cfg.growth,
                diagnostics=self.diagnostics,
                log_slot_indices=cfg.log_slot_indices,
            )
            if len(reservation) != estimate.total:
                raise EmissionError(
                    f"Reserved {len(reservation)} pool slots for {estimate.total} photons"
                )
            slot_order = np.asarray(reservation.take(estimate.total), dtype=np.int64)
            fill_counts = estimate.counts.numpy()
            offsets = np.concatenate([[0], np.cumsum(fill_counts)]).astype(np.int64)

            def _fill(g: torch.Generator, start: int, stop: int) -> SampleStats:
                stats = SampleStats()
                for j in range(start, stop):
                    k = int(fill_counts[j])
                    if k == 0:
                        continue
                    self._fill_cell(
                        pool,
                        grid,
                        int(cells[j]),
                        slot_order[offsets[j]:offsets[j] + k],
                        weight=estimate.weight,
                        epsilon_b=epsilon_b,
                        generator=g,
                        stats=stats,
                    )
                return stats

            stats = SampleStats()
            for part in streams.map_partitions(_fill, int(cells.shape[0])):
                stats.merge(part)

        if stats.envelope_violations:
            self._log(
                f"Rejection envelope exceeded in {stats.envelope_violations} of {stats.trials} trials; "
                "sampled frequencies are biased"
            )

        return EmissionResult(
            n_emitted=int(estimate.total),
            num_photons=pool.size,
            num_null_photons=null_before,
            weight=estimate.weight,
            r_min=r_min,
            r_max=r_max,
            n_cells=int(cells.shape[0]),
            grown_by=reservation.grown_by,
            envelope_violations=stats.envelope_violations,
        )

    def _fill_cell(
        self,
        pool: PhotonPool,
        grid: FlashGrid,
        cell: int,
        slots: np.ndarray,
        *,
        weight: float,
        epsilon_b: float,
        generator: torch.Generator,
        stats: SampleStats,
    ) -> None:
        cfg = self.config
        k = int(slots.shape[0])
        params = cell_parameters(grid.dens[cell], grid.temp[cell], epsilon_b)

        nu = sample_frequencies(
            k,
            params,
            generator,
            envelope_mode=cfg.envelope,
            freq_min_factor=cfg.freq_min_factor,
            freq_max_factor=cfg.freq_max_factor,
            batch_size=cfg.sampler_batch_size,
            stats=stats,
        )
        com_phi, com_theta = sample_comoving_angles(k, generator)
        position_phi = 2.0 * np.pi * torch.rand((k,), generator=generator, dtype=torch.float64).numpy()

        e = PLANCK_CONSTANT * nu / SPEED_OF_LIGHT_C
        p_comv = np.stack(
            [
                e,
                e * np.sin(com_theta) * np.cos(com_phi),
                e * np.sin(com_theta) * np.sin(com_phi),
                e * np.cos(com_theta),
            ],
            axis=1,
        )

        vx, vy = grid.vx[cell], grid.vy[cell]
        beta = -np.stack(
            [vx * np.cos(position_phi), vx * np.sin(position_phi), np.full((k,), vy)],
            axis=1,
        )
        p_lab = np.asarray(self.boost(beta, p_comv), dtype=np.float64)

        x, y = grid.x[cell], grid.y[cell]
        # the snapshot's y becomes the photon's third spatial axis
        r = np.stack([x * np.cos(position_phi), x * np.sin(position_phi), np.full((k,), y)], axis=1)

        stokes = torch.zeros((k, 4), dtype=torch.float64)
        stokes[:, 0] = 1.0
        pool.write(
            torch.from_numpy(slots),
            {
                "p": torch.from_numpy(p_lab),
                "comv_p": torch.from_numpy(p_comv),
                "r": torch.from_numpy(r),
                "s": stokes,
                "num_scatt": torch.zeros((k,), dtype=torch.int64),
                "weight": torch.full((k,), float(weight), dtype=torch.float64),
                "nearest_block_index": torch.zeros((k,), dtype=torch.int64),
                "type": torch.full((k,), PHOTON_TYPE_CODES["synchrotron"], dtype=torch.uint8),
            },
        )
        if cfg.log_slot_indices:
            for idx in slots.tolist():
                self._log(f"Placing photon in index {idx}")


def emit_synchrotron_photons(
    pool: PhotonPool,
    grid: FlashGrid,
    *,
    r_inj: float,
    ph_weight: float,
    maximum_photons: int,
    fps: float,
    theta_min: float,
    theta_max: float,
    frame_scatt: int,
    frame_inj: int,
    epsilon_b: float,
    generator: torch.Generator,
    config: EmissionConfig | None = None,
    hydro_model: str | None = None,
    boost: BoostFn = lorentz_boost,
    diagnostics: TextIO | None = None,
) -> EmissionResult:
    """Emit synchrotron photons from the shell swept since the last transport frame.

    The pool is grown or recycled in place; everything else about the call is
    reported in the returned EmissionResult.
    """
    emitter = SynchrotronEmitter(config, boost=boost, diagnostics=diagnostics)
    return emitter.emit(
        pool,
        grid,
        r_inj=r_inj,
        ph_weight=ph_weight,
        maximum_photons=maximum_photons,
        fps=fps,
        theta_min=theta_min,
        theta_max=theta_max,
        frame_scatt=frame_scatt,
        frame_inj=frame_inj,
        epsilon_b=epsilon_b,
        generator=generator,
        hydro_model=hydro_model,
    )
