"""
Thermal synchrotron emissivity and absorption for a magnetised electron gas.

Emissivity follows Wardzinski & Zdziarski (2000) evaluated at a pitch angle of pi/2;
the absorption cross section follows Ghisellini & Svensson (1991).

All functions are pure numpy expressions and accept scalars or arrays. Inputs that
put the shape functions on a singular point (gamma == 1, p_el == 0, theta == 0)
are not trapped and propagate as nan/inf.
"""

from __future__ import annotations

from typing import NamedTuple, Union

import numpy as np
from scipy.special import kve

from ..utils.constants import (
    BOLTZMANN_CONSTANT,
    ELECTRON_CHARGE,
    ELECTRON_MASS,
    ELECTRON_RADIUS,
    FINE_STRUCTURE_CONSTANT,
    PI,
    PLANCK_CONSTANT,
    SPEED_OF_LIGHT_C,
    THOMSON_CROSS_SECTION,
)

ArrayOrFloat = Union[float, np.ndarray]

# Shape functions switch between their low- and high-temperature forms here.
SHAPE_THETA_SPLIT = 0.08

# Below this temperature the electron distribution is treated as Maxwell-Boltzmann.
REFERENCE_TEMPERATURE_K = 1e7

_JNU_PREFACTOR = PI ** 1.5 * ELECTRON_CHARGE ** 2 / (2.0 ** 1.5 * SPEED_OF_LIGHT_C)


class SynchrotronParams(NamedTuple):
    """Per-cell parameters handed to the spectrum integrator and sampler."""

    nu_c: float
    theta: float
    el_dens: float


def _unwrap(x: np.ndarray) -> ArrayOrFloat:
    return x[()] if isinstance(x, np.ndarray) and x.ndim == 0 else x


def cyclotron_frequency(magnetic_field: ArrayOrFloat) -> ArrayOrFloat:
    """Cyclotron frequency in Hz for a field in gauss."""
    return ELECTRON_CHARGE * magnetic_field / (2.0 * PI * ELECTRON_MASS * SPEED_OF_LIGHT_C)


def dimensionless_temperature(temp: ArrayOrFloat) -> ArrayOrFloat:
    """k_B T / (m_e c^2) for a temperature in kelvin."""
    return BOLTZMANN_CONSTANT * temp / (ELECTRON_MASS * SPEED_OF_LIGHT_C ** 2)


def equipartition_field(el_dens: ArrayOrFloat, temp: ArrayOrFloat, epsilon_b: ArrayOrFloat) -> ArrayOrFloat:
    """Magnetic field (gauss) holding a fraction epsilon_b of the thermal energy density.

    B^2 / (8 pi) = epsilon_b * (3/2) n_e k_B T
    """
    return np.sqrt(8.0 * PI * epsilon_b * 1.5 * el_dens * BOLTZMANN_CONSTANT * temp)


def maxwell_juttner_density(el_dens: ArrayOrFloat, theta: ArrayOrFloat, gamma: ArrayOrFloat) -> ArrayOrFloat:
    """Electron number density per unit Lorentz factor for a Maxwell-Juttner gas.

    exp(-gamma/theta) / K_2(1/theta) is evaluated as exp(-(gamma-1)/theta) / kve(2, 1/theta)
    so cold gases do not underflow.
    """
    gamma = np.asarray(gamma, dtype=np.float64)
    theta = np.asarray(theta, dtype=np.float64)
    val = (
        el_dens
        * gamma
        * np.sqrt(gamma * gamma - 1.0)
        * np.exp(-(gamma - 1.0) / theta)
        / (theta * kve(2, 1.0 / theta))
    )
    return _unwrap(val)


def maxwell_boltzmann_density(el_dens: ArrayOrFloat, theta: ArrayOrFloat, gamma: ArrayOrFloat) -> ArrayOrFloat:
    """Electron number density per unit Lorentz factor for a non-relativistic Maxwellian."""
    gamma = np.asarray(gamma, dtype=np.float64)
    temp = np.asarray(theta, dtype=np.float64) * ELECTRON_MASS * SPEED_OF_LIGHT_C ** 2 / BOLTZMANN_CONSTANT
    v = SPEED_OF_LIGHT_C * np.sqrt(1.0 - 1.0 / gamma ** 2)
    kt = BOLTZMANN_CONSTANT * temp
    val = (
        el_dens
        * 4.0
        * PI
        * (ELECTRON_MASS / (2.0 * PI * kt)) ** 1.5
        * (v * SPEED_OF_LIGHT_C ** 2 / gamma ** 3)
        * np.exp(-ELECTRON_MASS * v ** 2 / (2.0 * kt))
    )
    return _unwrap(val)


def peak_lorentz_factor(nu: ArrayOrFloat, nu_c: ArrayOrFloat, theta: ArrayOrFloat) -> ArrayOrFloat:
    """Lorentz factor of the electrons dominating emission at frequency nu (gamma_0)."""
    x = np.asarray(nu, dtype=np.float64) * theta / nu_c
    cold = np.sqrt(1.0 + 2.0 * x * (1.0 + 4.5 * x) ** (-1.0 / 3.0))
    hot = np.sqrt(1.0 + (4.0 * x / 3.0) ** (2.0 / 3.0))
    return _unwrap(np.where(np.asarray(theta) <= SHAPE_THETA_SPLIT, cold, hot))


def _z_base(gamma: np.ndarray) -> np.ndarray:
    return np.sqrt(gamma ** 2 - 1.0) * np.exp(1.0 / gamma) / (1.0 + gamma)


def z_factor(nu: ArrayOrFloat, nu_c: ArrayOrFloat, gamma: ArrayOrFloat) -> ArrayOrFloat:
    gamma = np.asarray(gamma, dtype=np.float64)
    return _unwrap(np.power(_z_base(gamma), 2.0 * np.asarray(nu) * gamma / nu_c))


def z_second_derivative(nu: ArrayOrFloat, nu_c: ArrayOrFloat, gamma: ArrayOrFloat) -> ArrayOrFloat:
    """Curvature of the line shape at the saddle point, pitch angle pi/2."""
    g = np.asarray(gamma, dtype=np.float64)
    num = -2.0 * g ** 3 * (1.0 + g) + 4.0 * g ** 4 * (1.0 + g - g ** 2 - g ** 3) * np.log(_z_base(g))
    return _unwrap(np.asarray(nu) * num / (nu_c * g ** 5 * (1.0 + g)))


def half_width(theta: ArrayOrFloat, gamma: ArrayOrFloat) -> ArrayOrFloat:
    g = np.asarray(gamma, dtype=np.float64)
    theta = np.asarray(theta, dtype=np.float64)
    cold = np.sqrt(2.0 * theta * (g ** 2 - 1.0) / (g * (3.0 * g ** 2 - 1.0)))
    hot = np.sqrt(2.0 * theta / (3.0 * g))
    return _unwrap(np.where(theta <= SHAPE_THETA_SPLIT, cold, hot))


def jnu(nu: ArrayOrFloat, nu_c: ArrayOrFloat, theta: ArrayOrFloat, el_dens: ArrayOrFloat) -> ArrayOrFloat:
    """Thermal synchrotron emissivity (erg s^-1 cm^-3 Hz^-1 sr^-1).

    The electron distribution is Maxwell-Boltzmann below the reference temperature
    (1e7 K expressed as theta) and Maxwell-Juttner at or above it.
    """
    nu = np.asarray(nu, dtype=np.float64)
    theta_ref = dimensionless_temperature(REFERENCE_TEMPERATURE_K)
    gamma = np.asarray(peak_lorentz_factor(nu, nu_c, theta))

    if np.ndim(theta) == 0:
        if theta < theta_ref:
            n_gamma = maxwell_boltzmann_density(el_dens, theta, gamma)
        else:
            n_gamma = maxwell_juttner_density(el_dens, theta, gamma)
    else:
        n_gamma = np.where(
            np.asarray(theta) < theta_ref,
            maxwell_boltzmann_density(el_dens, theta, gamma),
            maxwell_juttner_density(el_dens, theta, gamma),
        )

    val = (
        _JNU_PREFACTOR
        * np.sqrt(nu * nu_c)
        * n_gamma
        * z_factor(nu, nu_c, gamma)
        * half_width(theta, gamma)
        * np.abs(z_second_derivative(nu, nu_c, gamma)) ** -0.5
    )
    return _unwrap(np.asarray(val))


def photon_spectrum(nu: ArrayOrFloat, nu_c: float, theta: float, el_dens: float) -> ArrayOrFloat:
    """Emitted photon number per unit frequency, jnu / (h nu)."""
    return jnu(nu, nu_c, theta, el_dens) / (PLANCK_CONSTANT * np.asarray(nu, dtype=np.float64))


def critical_field() -> float:
    """Quantum critical magnetic field, alpha * sqrt(m_e c^2 / r_e^3), in gauss."""
    return FINE_STRUCTURE_CONSTANT * np.sqrt(ELECTRON_MASS * SPEED_OF_LIGHT_C ** 2 / ELECTRON_RADIUS ** 3)


def _log_term(gamma_el: ArrayOrFloat, p_el: ArrayOrFloat) -> ArrayOrFloat:
    return np.log((gamma_el + 1.0) / p_el)


def absorption_c(nu_ph: ArrayOrFloat, nu_c: ArrayOrFloat, gamma_el: ArrayOrFloat, p_el: ArrayOrFloat) -> ArrayOrFloat:
    return (2.0 * gamma_el ** 2 - 1.0) / (gamma_el * p_el ** 2) + 2.0 * nu_ph * (
        gamma_el / p_el ** 2 - gamma_el * _log_term(gamma_el, p_el)
    ) / nu_c


def absorption_g(gamma_el: ArrayOrFloat, p_el: ArrayOrFloat) -> ArrayOrFloat:
    return np.sqrt(1.0 - 2.0 * p_el ** 2 * (gamma_el * _log_term(gamma_el, p_el) - 1.0))


def absorption_g_prime(gamma_el: ArrayOrFloat, p_el: ArrayOrFloat) -> ArrayOrFloat:
    return (3.0 * gamma_el - (3.0 * gamma_el ** 2 - 1.0) * _log_term(gamma_el, p_el)) / absorption_g(gamma_el, p_el)


def synchrotron_cross_section(
    el_dens: ArrayOrFloat,
    temp: ArrayOrFloat,
    nu_ph: ArrayOrFloat,
    p_el: ArrayOrFloat,
    epsilon_b: ArrayOrFloat,
) -> ArrayOrFloat:
    """Total synchrotron absorption cross section (cm^2) for an electron of momentum p_el (units of m_e c).

    The field is the equipartition estimate for the cell.
    """
    b_cr = critical_field()
    b = equipartition_field(el_dens, temp, epsilon_b)
    nu_c = cyclotron_frequency(b)
    gamma_el = np.sqrt(np.asarray(p_el, dtype=np.float64) ** 2 + 1.0)
    g = absorption_g(gamma_el, p_el)

    val = (
        (3.0 * PI ** 2 / 8.0)
        * (THOMSON_CROSS_SECTION / FINE_STRUCTURE_CONSTANT)
        * (b_cr / b)
        * (nu_c / nu_ph) ** 2
        * np.exp(-2.0 * nu_ph * (gamma_el * _log_term(gamma_el, p_el) - 1.0) / nu_c)
        * (absorption_c(nu_ph, nu_c, gamma_el, p_el) / g - absorption_g_prime(gamma_el, p_el) / g ** 2)
    )
    return _unwrap(np.asarray(val))


def shell_radius_limits(frame_scatt: int, frame_inj: int, fps: float, r_inj: float) -> tuple[float, float]:
    """Radial bounds of the shell swept since the last transport frame.

    r_min = r_inj + c (df - 1) / (2 fps), r_max = r_inj + c (df + 1) / (2 fps), df = frame_scatt - frame_inj.
    """
    df = int(frame_scatt) - int(frame_inj)
    r_min = float(r_inj) + SPEED_OF_LIGHT_C * (df - 1) / (2.0 * float(fps))
    r_max = float(r_inj) + SPEED_OF_LIGHT_C * (df + 1) / (2.0 * float(fps))
    return r_min, r_max
