from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import torch

from ..physics.synchrotron import SynchrotronParams, jnu


@dataclass
class SampleStats:
    trials: int = 0
    accepted: int = 0
    envelope_violations: int = 0

    def merge(self, other: "SampleStats") -> None:
        self.trials += other.trials
        self.accepted += other.accepted
        self.envelope_violations += other.envelope_violations


def frequency_domain(
    params: SynchrotronParams,
    freq_min_factor: float = 1e-4,
    freq_max_factor: float = 1e2,
) -> tuple[float, float]:
    return params.nu_c * freq_min_factor, params.nu_c * freq_max_factor


def envelope_height(
    params: SynchrotronParams,
    *,
    mode: str = "scanned",
    freq_min_factor: float = 1e-4,
    freq_max_factor: float = 1e2,
    n_scan: int = 512,
) -> float:
    """Height of the flat envelope used for rejection sampling.

    mode:
    - "empirical": twice the emissivity at nu_c / 10. Not guaranteed to bound jnu.
    - "scanned": the larger of the empirical height and 1.2x the peak of jnu found on
      a log-spaced grid over the sampling domain.
    """
    nu_c, theta, el_dens = params
    height = 2.0 * float(jnu(nu_c / 10.0, nu_c, theta, el_dens))
    if mode == "empirical":
        return height
    if mode != "scanned":
        raise ValueError(f"Unknown envelope mode={mode!r}")

    lo, hi = frequency_domain(params, freq_min_factor, freq_max_factor)
    scan = np.asarray(jnu(np.geomspace(lo, hi, int(n_scan)), nu_c, theta, el_dens))
    finite = scan[np.isfinite(scan)]
    if finite.size:
        height = max(height, 1.2 * float(finite.max()))
    return height


def sample_frequencies(
    n: int,
    params: SynchrotronParams,
    generator: torch.Generator,
    *,
    envelope: float | None = None,
    envelope_mode: str = "scanned",
    freq_min_factor: float = 1e-4,
    freq_max_factor: float = 1e2,
    batch_size: int = 256,
    stats: SampleStats | None = None,
) -> np.ndarray:
    """Draw n comoving photon frequencies (Hz) from the cell's emissivity spectrum.

    Rejection sampling with a uniform proposal over [nu_c*freq_min_factor, nu_c*freq_max_factor]
    and a flat envelope. Trials are evaluated in vectorised batches; there is no cap on the
    number of batches. Trials where jnu exceeds the envelope are counted in `stats`.
    """
    n = int(n)
    if n < 0:
        raise ValueError("n must be >= 0")
    out = np.empty((n,), dtype=np.float64)
    if n == 0:
        return out

    nu_c, theta, el_dens = params
    lo, hi = frequency_domain(params, freq_min_factor, freq_max_factor)
    if envelope is None:
        envelope = envelope_height(
            params, mode=envelope_mode, freq_min_factor=freq_min_factor, freq_max_factor=freq_max_factor
        )
    if not np.isfinite(envelope) or envelope < 0.0:
        raise ValueError(f"Invalid rejection envelope {envelope!r} for nu_c={nu_c:e}, theta={theta:e}")

    local = SampleStats()
    filled = 0
    while filled < n:
        m = max(int(batch_size), n - filled)
        u = torch.rand((m, 2), generator=generator, dtype=torch.float64).numpy()
        nu = lo + (hi - lo) * u[:, 0]
        y = envelope * u[:, 1]
        f = np.asarray(jnu(nu, nu_c, theta, el_dens))

        local.trials += m
        local.envelope_violations += int(np.count_nonzero(f > envelope))

        accepted = nu[y <= f]
        take = min(accepted.shape[0], n - filled)
        out[filled:filled + take] = accepted[:take]
        filled += take

    local.accepted = n
    if stats is not None:
        stats.merge(local)
    return out


def sample_comoving_angles(n: int, generator: torch.Generator) -> tuple[np.ndarray, np.ndarray]:
    """Comoving direction angles: azimuth uniform in [0, 2pi), polar angle uniform in [0, pi)."""
    u = torch.rand((int(n), 2), generator=generator, dtype=torch.float64).numpy()
    return 2.0 * np.pi * u[:, 0], np.pi * u[:, 1]
