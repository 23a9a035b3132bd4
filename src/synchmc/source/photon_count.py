from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Sequence, TextIO

import numpy as np
import torch
from scipy.integrate import quad

from ..config.emission_config import EmissionConfig
from ..grid.snapshot import FlashGrid
from ..physics.synchrotron import (
    SynchrotronParams,
    cyclotron_frequency,
    dimensionless_temperature,
    equipartition_field,
    photon_spectrum,
)
from ..transport.rng_streams import RNGStreamManager
from ..utils.constants import PI, PROTON_MASS
from ..utils.errors import WeightRebalanceError

# Largest mean handed to torch.poisson; larger means overflow its int64 sampler.
POISSON_RATE_LIMIT = 2.0 ** 53


@dataclass
class CellIntegral:
    value: float
    abs_error: float
    converged: bool = True
    message: str = ""


@dataclass
class CountEstimate:
    counts: torch.Tensor                # int64 [n_cells], photons per eligible cell
    weight: float                       # converged statistical weight per photon
    total: int
    iterations: int
    integrals: List[CellIntegral] = field(default_factory=list)


def cell_parameters(dens: float, temp: float, epsilon_b: float) -> SynchrotronParams:
    """Integration parameters for one cell (mass density in g/cm^3, temperature in K)."""
    el_dens = float(dens) / PROTON_MASS
    nu_c = cyclotron_frequency(equipartition_field(el_dens, float(temp), float(epsilon_b)))
    return SynchrotronParams(
        nu_c=float(nu_c),
        theta=float(dimensionless_temperature(float(temp))),
        el_dens=el_dens,
    )


def integrate_cell(
    params: SynchrotronParams,
    *,
    rel_tol: float = 1e-2,
    limit: int = 10000,
    freq_min_factor: float = 1e-4,
    freq_max_factor: float = 1e2,
) -> CellIntegral:
    """Photons emitted per unit volume, time and solid angle by one cell.

    Adaptive QAGS quadrature of jnu / (h nu) over the sampling domain. A quadrature
    that stops short of the tolerance is flagged, not raised.
    """
    lo = params.nu_c * freq_min_factor
    hi = params.nu_c * freq_max_factor
    out = quad(
        photon_spectrum,
        lo,
        hi,
        args=tuple(params),
        epsabs=0.0,
        epsrel=float(rel_tol),
        limit=int(limit),
        full_output=1,
    )
    value, abs_error = float(out[0]), float(out[1])
    if len(out) > 3:
        return CellIntegral(value=value, abs_error=abs_error, converged=False, message=str(out[3]))
    return CellIntegral(value=value, abs_error=abs_error)


def expected_counts(
    integrals: np.ndarray,
    x: np.ndarray,
    szx: np.ndarray,
    fps: float,
    weight: float,
) -> np.ndarray:
    """Expected photons per cell: integral * 2 pi x szx^2 / (fps * weight)."""
    return np.asarray(integrals) * 2.0 * PI * np.asarray(x) * np.asarray(szx) ** 2 / (float(fps) * float(weight))


def draw_poisson_counts(rates: np.ndarray, streams: RNGStreamManager) -> torch.Tensor:
    """Poisson draw per cell; partition k of the cells uses stream k. Returns float64.

    Rates above POISSON_RATE_LIMIT are not drawn (torch samples into int64); those
    cells come back as inf.
    """
    rates = np.asarray(rates, dtype=np.float64)
    if rates.size and not (np.all(np.isfinite(rates)) and rates.max() <= POISSON_RATE_LIMIT):
        return torch.from_numpy(np.where(rates <= POISSON_RATE_LIMIT, 0.0, np.inf))
    rates_t = torch.as_tensor(rates)

    def _draw(g: torch.Generator, start: int, stop: int) -> torch.Tensor:
        return torch.poisson(rates_t[start:stop], generator=g)

    parts = streams.map_partitions(_draw, int(rates_t.shape[0]))
    return torch.cat(parts) if parts else rates_t[:0]


class PhotonCountEstimator:
    """Decides how many photons each eligible cell emits and at what weight."""

    def __init__(self, config: EmissionConfig | None = None, diagnostics: TextIO | None = None) -> None:
        self.config = config or EmissionConfig()
        self.diagnostics = diagnostics

    def _log(self, msg: str) -> None:
        if self.diagnostics is not None:
            print(msg, file=self.diagnostics)

    def integrate(
        self,
        grid: FlashGrid,
        cells: Sequence[int],
        *,
        epsilon_b: float,
        streams: RNGStreamManager,
    ) -> List[CellIntegral]:
        cfg = self.config
        cells = np.asarray(cells, dtype=np.int64)

        def _work(_g: torch.Generator, start: int, stop: int) -> List[CellIntegral]:
            res = []
            for i in cells[start:stop]:
                params = cell_parameters(grid.dens[i], grid.temp[i], epsilon_b)
                res.append(
                    integrate_cell(
                        params,
                        rel_tol=cfg.quad_rel_tol,
                        limit=cfg.quad_limit,
                        freq_min_factor=cfg.freq_min_factor,
                        freq_max_factor=cfg.freq_max_factor,
                    )
                )
            return res

        integrals = [c for part in streams.map_partitions(_work, int(cells.shape[0])) for c in part]
        for i, c in zip(cells, integrals):
            if not c.converged:
                self._log(f"Integration for cell {int(i)} did not converge: error {c.abs_error:e} ({c.message})")
        return integrals

    def estimate(
        self,
        grid: FlashGrid,
        cells: Sequence[int],
        *,
        ph_weight: float,
        maximum_photons: int,
        fps: float,
        epsilon_b: float,
        streams: RNGStreamManager,
    ) -> CountEstimate:
        """Poisson photon counts for the eligible cells with an adaptively rescaled weight.

        While the shell total exceeds max_fraction * maximum_photons the weight is
        multiplied by weight_increase_factor; while it is below min_photons it is
        multiplied by weight_decrease_factor. Spectrum integrals do not depend on the
        weight and are computed once.
        """
        cfg = self.config
        if ph_weight <= 0.0:
            raise ValueError("ph_weight must be > 0")
        cells = np.asarray(cells, dtype=np.int64)
        weight = float(ph_weight)

        if cells.shape[0] == 0:
            return CountEstimate(counts=torch.zeros((0,), dtype=torch.int64), weight=weight, total=0, iterations=0)

        integrals = self.integrate(grid, cells, epsilon_b=epsilon_b, streams=streams)
        values = np.array([c.value for c in integrals], dtype=np.float64)
        per_unit_weight = expected_counts(values, grid.x[cells], grid.szx[cells], fps, 1.0)

        max_photons = cfg.max_fraction * float(maximum_photons)
        iterations = 0
        while True:
            iterations += 1
            if iterations > cfg.max_rebalance_iterations:
                raise WeightRebalanceError(
                    f"Photon weight did not settle after {cfg.max_rebalance_iterations} iterations "
                    f"(bounds [{cfg.min_photons}, {max_photons:g}], last weight {weight:e})"
                )

            counts = draw_poisson_counts(per_unit_weight / weight, streams)
            total = float(counts.sum().item())

            if not np.isfinite(total) or total > max_photons:
                weight *= cfg.weight_increase_factor
            elif total < cfg.min_photons:
                weight *= cfg.weight_decrease_factor
            else:
                self._log(f"photons: {int(total)}, adjusted weight: {weight:e}")
                break
            self._log(f"photons: {total:g}, adjusted weight: {weight:e}")

        return CountEstimate(
            counts=counts.to(torch.int64),
            weight=weight,
            total=int(total),
            iterations=iterations,
            integrals=integrals,
        )
