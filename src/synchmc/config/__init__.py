from .emission_config import (
    SUPPORTED_HYDRO_MODELS,
    EmissionConfig,
    default_config_path,
    load_emission_config,
)
