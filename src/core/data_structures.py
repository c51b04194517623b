from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from utils.logging import log_call


@dataclass
class ReplicateRecord:
    """Outcome of one simulated study; ``error`` is set when it was skipped."""

    seed: int
    design_type: str
    sampling_scheme: str
    ratio: float
    n_cases: int = 0
    n_controls: int = 0
    estimate: Optional[float] = None
    lower: Optional[float] = None
    upper: Optional[float] = None
    error: Optional[str] = None

    @log_call
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SimulationSummary:
    """Performance of a design across replicates, against the known truth."""

    truth: float
    n_replicates: int
    n_failed: int
    mean_estimate: float
    median_estimate: float
    log_bias: float
    coverage: float
    mean_log_ci_width: float

    @log_call
    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
