"""
Effect estimators for simulated case-control samples.

Cumulative samples are analysed with survey-weighted logistic regression
(odds ratio); density-sampled risk sets with weighted conditional logistic
regression stratified on the risk set (incidence density ratio). Both
report a Wald 95% confidence interval on the multiplicative scale.
"""

import warnings
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
from lifelines import CoxPHFitter
from lifelines.exceptions import ConvergenceError, ConvergenceWarning
from statsmodels.tools.sm_exceptions import (
    PerfectSeparationError,
    PerfectSeparationWarning,
)

from utils.logging import log_call

from .columns import EXPOSURE, FAIL, MODEL_COVARIATES, OUTCOME, SET, WEIGHT
from .exceptions import ModelFitError

Z_95 = 1.96

# Every risk-set member shares one event time, so a constant duration turns
# the stratified Cox partial likelihood into the conditional logistic one
_DURATION = "_duration"

# Newton-Raphson warnings lifelines emits when the partial likelihood has no
# finite maximum; its pre-fit low-variance notices are left alone
_NON_CONVERGENCE = r".*(failed to converge|norm\(delta\) is still high)"


@dataclass
class EffectEstimate:
    """Exposure coefficient with its Wald interval."""

    coef: float
    se: float
    estimate: float
    lower: float
    upper: float
    model: Any


def _wald(coef: float, se: float, model: Any) -> EffectEstimate:
    if not (np.isfinite(coef) and np.isfinite(se) and se > 0):
        raise ModelFitError(
            f"Undefined exposure estimate (coef={coef}, se={se})"
        )
    return EffectEstimate(
        coef=float(coef),
        se=float(se),
        estimate=float(np.exp(coef)),
        lower=float(np.exp(coef - Z_95 * se)),
        upper=float(np.exp(coef + Z_95 * se)),
        model=model,
    )


@log_call
def fit_weighted_logistic(
    sample: pd.DataFrame,
    covariates: Sequence[str] = MODEL_COVARIATES,
    weight_column: str = WEIGHT,
    robust: bool = True
) -> EffectEstimate:
    """
    Weighted logistic regression of ``Y`` on exposure and covariates.

    Parameters
    ----------
    sample : pd.DataFrame
        Cases and controls with ``Y``, ``A``, covariates and weights.
    covariates : sequence of str
        Adjustment covariates.
    weight_column : str, default="sampweight"
        Sampling weights, used as variance weights.
    robust : bool, default=True
        Use the sandwich (HC0) covariance, which does not depend on the
        overall scale of the weights. ``False`` gives the model-based one.

    Returns
    -------
    EffectEstimate
        Odds ratio for ``A`` with its 95% Wald interval.
    """
    exog = sm.add_constant(
        sample[[EXPOSURE] + list(covariates)].astype(float),
        has_constant="add",
    )
    endog = sample[OUTCOME].astype(float)
    model = sm.GLM(
        endog,
        exog,
        family=sm.families.Binomial(),
        var_weights=sample[weight_column].to_numpy(dtype=float),
    )
    with warnings.catch_warnings():
        warnings.simplefilter("error", PerfectSeparationWarning)
        try:
            result = model.fit(cov_type="HC0" if robust else "nonrobust")
        except (
            PerfectSeparationError,
            PerfectSeparationWarning,
            np.linalg.LinAlgError,
        ) as exc:
            raise ModelFitError(f"Logistic fit failed: {exc}") from exc

    if not result.converged:
        raise ModelFitError("Logistic fit did not converge")
    return _wald(result.params[EXPOSURE], result.bse[EXPOSURE], result)


@log_call
def fit_conditional_logistic(
    sample: pd.DataFrame,
    covariates: Sequence[str] = MODEL_COVARIATES,
    weight_column: str = WEIGHT,
    strata_column: str = SET,
    robust: bool = True
) -> EffectEstimate:
    """
    Weighted conditional logistic regression on matched risk sets.

    Fitted as a Cox model stratified on the risk set in which every member
    shares the same event time; with one case per set this is exactly the
    conditional logistic likelihood. Covariates that are constant across
    the whole sample carry no information and are left out of the fit.

    Returns
    -------
    EffectEstimate
        Incidence density ratio for ``A`` with its 95% Wald interval.
    """
    columns = [EXPOSURE] + [
        c for c in covariates if sample[c].nunique() > 1
    ]
    data = sample[columns].astype(float)
    data[weight_column] = sample[weight_column].astype(float)
    data[strata_column] = sample[strata_column].astype(int)
    data[FAIL] = sample[FAIL].astype(int)
    data[_DURATION] = 1.0

    fitter = CoxPHFitter()
    with warnings.catch_warnings():
        warnings.filterwarnings(
            "error", message=_NON_CONVERGENCE, category=ConvergenceWarning
        )
        try:
            fitter.fit(
                data,
                duration_col=_DURATION,
                event_col=FAIL,
                weights_col=weight_column,
                strata=[strata_column],
                robust=robust,
            )
        except (
            ConvergenceError,
            ConvergenceWarning,
            np.linalg.LinAlgError,
        ) as exc:
            raise ModelFitError(
                f"Conditional logistic fit failed: {exc}"
            ) from exc

    return _wald(
        fitter.params_[EXPOSURE], fitter.standard_errors_[EXPOSURE], fitter
    )
