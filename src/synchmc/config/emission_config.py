from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

SUPPORTED_HYDRO_MODELS = ("flash",)
ENVELOPE_MODES = ("scanned", "empirical")

# descriptive keys allowed in YAML files but not part of the config
_META_KEYS = ("name", "description")


@dataclass(frozen=True)
class EmissionConfig:
    """Tunables for synchrotron photon emission."""

    max_fraction: float = 0.1
    min_photons: int = 0
    weight_increase_factor: float = 10.0
    weight_decrease_factor: float = 0.5
    max_rebalance_iterations: int = 1000

    freq_min_factor: float = 1e-4
    freq_max_factor: float = 1e2

    quad_rel_tol: float = 1e-2
    quad_limit: int = 10000

    envelope: str = "scanned"
    sampler_batch_size: int = 256

    growth: str = "shortfall"
    n_workers: int = 1

    hydro_model: str = "flash"
    log_slot_indices: bool = False

    def __post_init__(self) -> None:
        if not 0.0 < self.max_fraction:
            raise ValueError("max_fraction must be > 0")
        if self.min_photons < 0:
            raise ValueError("min_photons must be >= 0")
        if self.weight_increase_factor <= 1.0:
            raise ValueError("weight_increase_factor must be > 1")
        if not 0.0 < self.weight_decrease_factor < 1.0:
            raise ValueError("weight_decrease_factor must be in (0, 1)")
        if self.max_rebalance_iterations <= 0:
            raise ValueError("max_rebalance_iterations must be > 0")
        if not 0.0 < self.freq_min_factor < self.freq_max_factor:
            raise ValueError("freq_min_factor must be > 0 and below freq_max_factor")
        if self.quad_rel_tol <= 0.0 or self.quad_limit <= 0:
            raise ValueError("quad_rel_tol and quad_limit must be > 0")
        if self.envelope not in ENVELOPE_MODES:
            raise ValueError(f"Unknown envelope={self.envelope!r}, expected one of {ENVELOPE_MODES}")
        if self.sampler_batch_size <= 0:
            raise ValueError("sampler_batch_size must be > 0")
        if self.growth not in ("shortfall", "append"):
            raise ValueError(f"Unknown growth={self.growth!r}")
        if self.n_workers <= 0:
            raise ValueError("n_workers must be > 0")

    @classmethod
    def from_dict(cls, cfg: Mapping[str, Any]) -> "EmissionConfig":
        known = {f.name: f for f in fields(cls)}
        unknown = [k for k in cfg if k not in known and k not in _META_KEYS]
        if unknown:
            raise ValueError(f"Unknown emission config keys: {sorted(unknown)}")

        kwargs = {}
        for k, v in cfg.items():
            if k in _META_KEYS:
                continue
            default = known[k].default
            if isinstance(default, bool):
                kwargs[k] = bool(v)
            elif isinstance(default, int):
                kwargs[k] = int(v)
            elif isinstance(default, float):
                kwargs[k] = float(v)
            else:
                kwargs[k] = str(v)
        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> "EmissionConfig":
        return replace(self, **overrides)


def default_config_path() -> Path:
    return Path(__file__).parent / "data" / "default_emission.yaml"


def load_emission_config(path: Optional[str | Path] = None) -> EmissionConfig:
    """Load an emission config from YAML; the packaged defaults when path is None."""
    path = Path(path) if path is not None else default_config_path()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Emission config {path} must be a mapping, got {type(data).__name__}")
    # allow the settings to sit under an `emission:` section of a larger simulation file
    if "emission" in data and isinstance(data["emission"], Mapping):
        data = data["emission"]
    return EmissionConfig.from_dict(data)
