from .photon_pool import (
    PHOTON_TYPE_CODES,
    PhotonPool,
    SlotReservation,
    reserve_slots,
)
from .rng_streams import RNGStreamManager
