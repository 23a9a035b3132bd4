"""synchmc: thermal synchrotron photon emission for Monte Carlo radiative transfer."""

from .config import EmissionConfig, load_emission_config
from .emission import EmissionResult, SynchrotronEmitter, emit_synchrotron_photons
from .grid import FlashGrid, make_uniform_shell_grid
from .transport import PhotonPool, RNGStreamManager, reserve_slots
from .utils.errors import (
    EmissionError,
    PoolAllocationError,
    UnsupportedHydroModelError,
    WeightRebalanceError,
)

__version__ = "0.1.0"
