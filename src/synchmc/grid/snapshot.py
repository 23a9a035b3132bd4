from __future__ import annotations

from dataclasses import dataclass, fields

import numpy as np


@dataclass(frozen=True)
class FlashGrid:
    """Read-only view of a 2D (cylindrical) hydrodynamic snapshot.

    Every field is a float64 array of shape [N], one entry per cell.
    Lengths and velocities are in cm and units of c; temp in K; dens in g/cm^3.
    The snapshot's second coordinate (y) maps onto the third spatial axis of photons.
    """

    x: np.ndarray
    y: np.ndarray
    szx: np.ndarray
    szy: np.ndarray
    r: np.ndarray
    theta: np.ndarray
    temp: np.ndarray
    dens: np.ndarray
    vx: np.ndarray
    vy: np.ndarray

    def __post_init__(self) -> None:
        n = None
        for f in fields(self):
            arr = np.array(getattr(self, f.name), dtype=np.float64)
            if arr.ndim != 1:
                raise ValueError(f"{f.name} must be 1D, got shape={arr.shape}")
            if n is None:
                n = arr.shape[0]
            elif arr.shape[0] != n:
                raise ValueError(f"{f.name} has {arr.shape[0]} cells, expected {n}")
            arr.setflags(write=False)
            object.__setattr__(self, f.name, arr)

    def __len__(self) -> int:
        return int(self.x.shape[0])

    def shell_mask(self, r_min: float, r_max: float, theta_min: float, theta_max: float) -> np.ndarray:
        """Cells with r in [r_min, r_max) and theta in [theta_min, theta_max)."""
        return (self.r >= r_min) & (self.r < r_max) & (self.theta < theta_max) & (self.theta >= theta_min)

    def shell_indices(self, r_min: float, r_max: float, theta_min: float, theta_max: float) -> np.ndarray:
        return np.flatnonzero(self.shell_mask(r_min, r_max, theta_min, theta_max))


def make_uniform_shell_grid(
    *,
    n_r: int = 4,
    n_theta: int = 4,
    r_range_cm: tuple[float, float] = (1e12, 2e12),
    theta_range: tuple[float, float] = (0.0, 0.5 * np.pi),
    temp_K: float = 1e7,
    dens_g_cm3: float = 1e-10,
    v_r: float = 0.0,
) -> FlashGrid:
    """Build a toy polar grid of uniform gas for tests and demos.

    Cells are placed at the centres of an n_r x n_theta polar mesh; the fluid moves
    radially with speed v_r (units of c).
    """
    if n_r <= 0 or n_theta <= 0:
        raise ValueError("n_r and n_theta must be > 0")
    if not 0.0 <= v_r < 1.0:
        raise ValueError("v_r must be in [0, 1)")

    r_edges = np.linspace(r_range_cm[0], r_range_cm[1], n_r + 1)
    t_edges = np.linspace(theta_range[0], theta_range[1], n_theta + 1)
    r_c = 0.5 * (r_edges[1:] + r_edges[:-1])
    t_c = 0.5 * (t_edges[1:] + t_edges[:-1])
    rr, tt = np.meshgrid(r_c, t_c, indexing="ij")
    rr = rr.reshape(-1)
    tt = tt.reshape(-1)

    dr = float(r_edges[1] - r_edges[0])
    x = rr * np.sin(tt)
    y = rr * np.cos(tt)
    n = rr.shape[0]
    return FlashGrid(
        x=x,
        y=y,
        szx=np.full(n, dr),
        szy=np.full(n, dr),
        r=rr,
        theta=tt,
        temp=np.full(n, float(temp_K)),
        dens=np.full(n, float(dens_g_cm3)),
        vx=v_r * np.sin(tt),
        vy=v_r * np.cos(tt),
    )
