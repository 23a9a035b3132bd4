from .kinematics import lorentz_boost
from .synchrotron import (
    SynchrotronParams,
    cyclotron_frequency,
    dimensionless_temperature,
    equipartition_field,
    jnu,
    maxwell_boltzmann_density,
    maxwell_juttner_density,
    photon_spectrum,
    shell_radius_limits,
    synchrotron_cross_section,
)
