from .synchrotron import (
    EmissionResult,
    SynchrotronEmitter,
    emit_synchrotron_photons,
)
