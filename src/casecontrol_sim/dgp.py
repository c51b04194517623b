"""
Data-generating process coefficient tables.

The exposure and outcome mechanisms are fixed design inputs rather than
quantities estimated from data. Each table holds a baseline (odds or
hazard) and a mapping from covariate name to a multiplicative effect, so
sensitivity experiments can swap tables without touching simulation code.

The defaults loosely follow socio-demographic patterns of cigarette
smoking (exposure) and lung cancer incidence (outcome) among U.S. adults.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping

import numpy as np
import pandas as pd

from utils.logging import log_call

from .columns import EXPOSURE, MODEL_COVARIATES
from .exceptions import ConfigurationError

DEFAULT_EXPOSURE_ODDS_RATIOS: Dict[str, float] = {
    "black": 1.0,
    "asian": 1.1,
    "hispanic": 0.8,
    "otherrace": 0.9,
    "age_25_34": 1.1,
    "age_35_44": 1.2,
    "age_45_54": 1.3,
    "age_55_64": 1.4,
    "age_over64": 3.0,
    "male": 3.0,
    "educ_ged": 3.0,
    "educ_hs": 1.2,
    "educ_somecollege": 1.1,
    "educ_associates": 1.0,
    "educ_bachelors": 0.9,
    "educ_advdegree": 0.8,
}

DEFAULT_OUTCOME_RATE_RATIOS: Dict[str, float] = {
    "black": 1.1,
    "asian": 0.9,
    "hispanic": 1.1,
    "otherrace": 1.0,
    "age_25_34": 1.1,
    "age_35_44": 1.2,
    "age_45_54": 1.3,
    "age_55_64": 1.4,
    "age_over64": 3.0,
    "male": 3.0,
    "educ_ged": 3.0,
    "educ_hs": 1.1,
    "educ_somecollege": 1.0,
    "educ_associates": 0.9,
    "educ_bachelors": 0.8,
    "educ_advdegree": 0.7,
}


def _check_effects(effects: Mapping[str, float], label: str) -> None:
    unknown = sorted(set(effects) - set(MODEL_COVARIATES))
    if unknown:
        raise ConfigurationError(
            f"{label} references unknown covariates: {unknown}"
        )
    bad = sorted(k for k, v in effects.items() if not v > 0)
    if bad:
        raise ConfigurationError(
            f"{label} must be positive ratios; invalid for {bad}"
        )


def _log_linear(
    frame: pd.DataFrame,
    log_baseline: float,
    effects: Mapping[str, float]
) -> np.ndarray:
    eta = np.full(len(frame), log_baseline, dtype=float)
    for name, ratio in effects.items():
        eta += np.log(ratio) * frame[name].to_numpy(dtype=float)
    return eta


@dataclass
class ExposureModel:
    """
    Logistic exposure mechanism.

    Parameters
    ----------
    baseline_odds : float
        Odds of exposure for the reference individual (white, female,
        aged 18-24, less than high school).
    odds_ratios : dict
        Covariate name to odds ratio. Covariates left out have no effect.
    """

    baseline_odds: float = 0.4
    odds_ratios: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_EXPOSURE_ODDS_RATIOS)
    )

    @log_call
    def __post_init__(self) -> None:
        if not self.baseline_odds > 0:
            raise ConfigurationError("baseline_odds must be positive")
        _check_effects(self.odds_ratios, "exposure odds_ratios")

    @log_call
    def linear_predictor(self, frame: pd.DataFrame) -> np.ndarray:
        """Log-odds of exposure for every row of ``frame``."""
        return _log_linear(
            frame, np.log(self.baseline_odds), self.odds_ratios
        )

    @classmethod
    @log_call
    def from_config(cls, cfg: Any) -> "ExposureModel":
        return cls(
            baseline_odds=float(cfg.baseline_odds),
            odds_ratios={k: float(v) for k, v in cfg.odds_ratios.items()},
        )


@dataclass
class OutcomeModel:
    """
    Exponential (constant hazard) outcome mechanism.

    Parameters
    ----------
    baseline_hazard : float
        Hazard per day for the unexposed reference individual. The default
        of 1.2e-6 yields roughly 2% cumulative incidence over ten years.
    exposure_rate_ratio : float
        True conditional rate ratio for exposure ``A``.
    rate_ratios : dict
        Covariate name to rate ratio.
    """

    baseline_hazard: float = 1.2e-6
    exposure_rate_ratio: float = 2.0
    rate_ratios: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_OUTCOME_RATE_RATIOS)
    )

    @log_call
    def __post_init__(self) -> None:
        if not self.baseline_hazard > 0:
            raise ConfigurationError("baseline_hazard must be positive")
        if not self.exposure_rate_ratio > 0:
            raise ConfigurationError("exposure_rate_ratio must be positive")
        _check_effects(self.rate_ratios, "outcome rate_ratios")

    @log_call
    def linear_predictor(self, frame: pd.DataFrame) -> np.ndarray:
        """Log-hazard for every row of ``frame``; requires column ``A``."""
        eta = _log_linear(
            frame, np.log(self.baseline_hazard), self.rate_ratios
        )
        exposure = frame[EXPOSURE].to_numpy(dtype=float)
        return eta + np.log(self.exposure_rate_ratio) * exposure

    @classmethod
    @log_call
    def from_config(cls, cfg: Any) -> "OutcomeModel":
        return cls(
            baseline_hazard=float(cfg.baseline_hazard),
            exposure_rate_ratio=float(cfg.exposure_rate_ratio),
            rate_ratios={k: float(v) for k, v in cfg.rate_ratios.items()},
        )
