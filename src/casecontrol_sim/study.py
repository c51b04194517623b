"""
Case-control study simulation against a fixed synthetic population.

:func:`simulate` draws one study under a given control sampling scheme and
case-control design, fits the matching estimator and returns the effect
estimate. It never mutates the population and uses only generators seeded
from its own ``seed`` argument, so repeated or parallel calls are
independent and reproducible.
"""

import logging
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from utils.logging import log_call

from .columns import EXPOSURE, MODEL_COVARIATES, OUTCOME, TIME, WEIGHT
from .designs import assemble_cumulative, build_risk_sets
from .estimation import fit_conditional_logistic, fit_weighted_logistic
from .exceptions import ConfigurationError, DataSufficiencyError
from .sampling import (
    SingleStageClusterSampler,
    get_sampler,
    normalize_scheme,
)

logger = logging.getLogger(__name__)

DESIGN_TYPES = ("cumulative", "density")


@dataclass
class StudyResult:
    """One simulated study: the analysed sample, fit and 95% CI."""

    sample: pd.DataFrame
    model: Any
    estimate: float
    lower: float
    upper: float
    seed: int
    design_type: str
    sampling_scheme: str
    ratio: float
    n_cases: int
    n_controls: int


@log_call
def validate_ratio(ratio: Any, design_type: str) -> float:
    """
    Check a control-to-case ratio.

    Cumulative designs accept any positive real, including ``inf`` for "all
    controls"; density designs need a positive whole number.
    """
    if isinstance(ratio, bool) or not isinstance(ratio, Real):
        raise ConfigurationError(f"ratio must be a number, got {ratio!r}")
    ratio = float(ratio)
    if math.isnan(ratio) or ratio <= 0:
        raise ConfigurationError(f"ratio must be positive, got {ratio}")
    if design_type == "density" and not ratio.is_integer():
        raise ConfigurationError(
            f"density designs need a whole-number ratio, got {ratio}"
        )
    return ratio


@log_call
def control_target(n_cases: int, ratio: float, n_controls: int) -> int:
    """Number of controls requested for ``n_cases`` cases."""
    if math.isinf(ratio):
        return n_controls
    return int(round(n_cases * ratio))


@log_call
def simulate(
    seed: int,
    design_type: str,
    sampling_scheme: str,
    ratio: float,
    population: pd.DataFrame,
    *,
    sampler_options: Optional[Dict[str, Any]] = None,
    robust: bool = True
) -> StudyResult:
    """
    Simulate one case-control study and estimate the exposure effect.

    Phase 1 selects controls with ``default_rng(seed)``; phase 2 assembles
    the design with ``default_rng(seed + 1)``, so changes to the analysis
    do not alter which controls were sampled.

    Parameters
    ----------
    seed : int
        Study seed.
    design_type : {"cumulative", "density"}
        Case-control design.
    sampling_scheme : str
        One of ``srs``, ``sps``, ``clustered_single_stage``,
        ``clustered_two_stage`` or ``stratified`` (aliases ``clustered1``
        and ``clustered2`` are accepted).
    ratio : float
        Controls per case.
    population : pd.DataFrame
        Synthetic population; treated as read-only.
    sampler_options : dict, optional
        Keyword arguments for the sampler, e.g. ``n_clusters``.
    robust : bool, default=True
        Robust (sandwich) rather than model-based standard errors.

    Returns
    -------
    StudyResult
        Sample, fitted model, point estimate and 95% CI bounds.

    Raises
    ------
    ConfigurationError
        Unknown design or scheme, reserved scheme, or invalid ratio.
    DataSufficiencyError
        A group cannot supply the requested number of units.
    ModelFitError
        The estimator failed to converge or has undefined errors.
    """
    if design_type not in DESIGN_TYPES:
        raise ConfigurationError(
            f"Unknown design type '{design_type}'; expected one of "
            f"{list(DESIGN_TYPES)}"
        )
    scheme = normalize_scheme(sampling_scheme)
    ratio = validate_ratio(ratio, design_type)
    sampler = get_sampler(scheme, **(sampler_options or {}))

    required = [OUTCOME, TIME, EXPOSURE] + MODEL_COVARIATES
    missing = [c for c in required if c not in population.columns]
    if missing:
        raise ConfigurationError(f"Population is missing columns {missing}")
    if (
        isinstance(sampler, SingleStageClusterSampler)
        and sampler.mean_cluster_size is None
    ):
        sampler.calibrate(population)

    # Phase 1: control selection
    rng = np.random.default_rng(seed)
    is_case = population[OUTCOME] == 1
    cases = population[is_case].copy()
    cases[WEIGHT] = 1.0
    controls = population[~is_case]
    if len(cases) == 0:
        raise DataSufficiencyError("Population contains no cases")

    target = control_target(len(cases), ratio, len(controls))
    selected, weights = sampler.select(controls, target, rng)
    control_sample = selected.copy()
    control_sample[WEIGHT] = weights

    # Phase 2: design assembly and estimation
    rng = np.random.default_rng(seed + 1)
    if design_type == "cumulative":
        sample = assemble_cumulative(cases, control_sample)
        fit = fit_weighted_logistic(sample, robust=robust)
    else:
        cohort = assemble_cumulative(cases, control_sample)
        sample = build_risk_sets(cohort, int(ratio), rng)
        fit = fit_conditional_logistic(sample, robust=robust)

    logger.debug(
        "seed=%d %s/%s ratio=%s: %d cases, %d controls, estimate %.3f",
        seed, design_type, scheme, ratio, len(cases), len(control_sample),
        fit.estimate
    )
    return StudyResult(
        sample=sample,
        model=fit.model,
        estimate=fit.estimate,
        lower=fit.lower,
        upper=fit.upper,
        seed=seed,
        design_type=design_type,
        sampling_scheme=scheme,
        ratio=ratio,
        n_cases=len(cases),
        n_controls=len(control_sample),
    )
