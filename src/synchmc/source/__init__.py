from .photon_count import (
    CellIntegral,
    CountEstimate,
    PhotonCountEstimator,
    cell_parameters,
    draw_poisson_counts,
    expected_counts,
    integrate_cell,
)
from .sampling import (
    SampleStats,
    envelope_height,
    frequency_domain,
    sample_comoving_angles,
    sample_frequencies,
)
