from __future__ import annotations

import numpy as np


def lorentz_boost(beta: np.ndarray, p: np.ndarray) -> np.ndarray:
    """Boost 4-vectors p into the frame moving with velocity beta (units of c).

    beta: [N,3] or [3]; p: [N,4] or [4] with p[..., 0] the time component.
    Returns an array shaped like p. A zero boost returns p unchanged.
    """
    beta = np.asarray(beta, dtype=np.float64)
    p = np.asarray(p, dtype=np.float64)
    single = p.ndim == 1
    beta2d = np.atleast_2d(beta)
    p2d = np.atleast_2d(p)

    b2 = np.sum(beta2d * beta2d, axis=1)
    if np.any(b2 >= 1.0):
        raise ValueError("boost speed must be below the speed of light")

    gamma = 1.0 / np.sqrt(1.0 - b2)
    bp = np.sum(beta2d * p2d[:, 1:], axis=1)

    # (gamma - 1) / beta^2 -> gamma^2 / (gamma + 1) avoids 0/0 for a zero boost
    k = gamma * gamma / (gamma + 1.0)

    out = np.empty_like(p2d)
    out[:, 0] = gamma * (p2d[:, 0] - bp)
    out[:, 1:] = p2d[:, 1:] + ((k * bp - gamma * p2d[:, 0])[:, None]) * beta2d
    return out[0] if single else out
