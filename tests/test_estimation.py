"""
Tests for the weighted logistic and conditional logistic estimators.
"""

import numpy as np
import pandas as pd
import pytest
import statsmodels.api as sm
from scipy.special import expit
from statsmodels.discrete.conditional_models import ConditionalLogit

from casecontrol_sim import fit_conditional_logistic, fit_weighted_logistic
from casecontrol_sim.columns import MODEL_COVARIATES
from casecontrol_sim.exceptions import ModelFitError

LOG_OR = 0.7


@pytest.fixture(scope="module")
def unmatched_sample():
    """Logistic data with a true exposure odds ratio of exp(0.7)."""
    rng = np.random.default_rng(2024)
    n = 6000
    frame = pd.DataFrame(
        rng.binomial(1, 0.3, size=(n, len(MODEL_COVARIATES))),
        columns=MODEL_COVARIATES,
    )
    frame["A"] = rng.binomial(1, expit(-0.5 + 0.8 * frame["male"]))
    eta = -1.5 + LOG_OR * frame["A"] + 0.4 * frame["male"] \
        + 0.6 * frame["age_over64"]
    frame["Y"] = rng.binomial(1, expit(eta))
    frame["sampweight"] = rng.uniform(1.0, 3.0, n)
    return frame


@pytest.fixture(scope="module")
def matched_sample():
    """500 risk sets of 1 case and 3 controls, conditional OR exp(0.7)."""
    rng = np.random.default_rng(7)
    n_sets, size = 500, 4
    frame = pd.DataFrame(
        0, index=range(n_sets * size), columns=MODEL_COVARIATES
    )
    frame["A"] = rng.binomial(1, 0.4, n_sets * size)
    frame["male"] = rng.binomial(1, 0.5, n_sets * size)
    frame["Set"] = np.repeat(np.arange(1, n_sets + 1), size)

    score = np.exp(LOG_OR * frame["A"] + 0.2 * frame["male"]).to_numpy()
    fail = np.zeros(n_sets * size, dtype=int)
    for s in range(n_sets):
        rows = np.arange(s * size, (s + 1) * size)
        p = score[rows] / score[rows].sum()
        fail[rng.choice(rows, p=p)] = 1
    frame["Fail"] = fail
    frame["sampweight"] = 1.0
    return frame


class TestWeightedLogistic:
    """Test cases for survey-weighted logistic regression."""

    def test_recovers_odds_ratio(self, unmatched_sample):
        fit = fit_weighted_logistic(unmatched_sample)
        assert 1.6 < fit.estimate < 2.5
        assert fit.lower < fit.estimate < fit.upper
        assert fit.estimate == pytest.approx(np.exp(fit.coef))
        assert fit.lower == pytest.approx(np.exp(fit.coef - 1.96 * fit.se))

    def test_robust_interval_ignores_weight_scale(self, unmatched_sample):
        scaled = unmatched_sample.assign(
            sampweight=unmatched_sample["sampweight"] * 250.0
        )
        base = fit_weighted_logistic(unmatched_sample)
        other = fit_weighted_logistic(scaled)
        assert other.estimate == pytest.approx(base.estimate, rel=1e-6)
        assert other.lower == pytest.approx(base.lower, rel=1e-5)
        assert other.upper == pytest.approx(base.upper, rel=1e-5)

    def test_model_based_interval_depends_on_weight_scale(
        self, unmatched_sample
    ):
        scaled = unmatched_sample.assign(
            sampweight=unmatched_sample["sampweight"] * 100.0
        )
        base = fit_weighted_logistic(unmatched_sample, robust=False)
        other = fit_weighted_logistic(scaled, robust=False)
        assert other.se == pytest.approx(base.se / 10.0, rel=1e-4)

    def test_unit_weights_match_unweighted_fit(self, unmatched_sample):
        unit = unmatched_sample.assign(sampweight=1.0)
        fit = fit_weighted_logistic(unit, robust=False)
        exog = sm.add_constant(unit[["A"] + MODEL_COVARIATES].astype(float))
        reference = sm.Logit(unit["Y"], exog).fit(disp=0)
        assert fit.coef == pytest.approx(reference.params["A"], rel=1e-5)
        assert fit.se == pytest.approx(reference.bse["A"], rel=1e-4)

    def test_perfect_separation(self):
        frame = pd.DataFrame({
            "A": [0, 0, 0, 1, 1, 1] * 5,
            "male": [0, 1, 0, 1, 0, 1] * 5,
            "sampweight": 1.0,
        })
        frame["Y"] = frame["A"]
        with pytest.raises(ModelFitError):
            fit_weighted_logistic(frame, covariates=["male"])


class TestConditionalLogistic:
    """Test cases for weighted conditional logistic regression."""

    def test_recovers_conditional_odds_ratio(self, matched_sample):
        fit = fit_conditional_logistic(matched_sample)
        assert 1.4 < fit.estimate < 2.9
        assert fit.lower < fit.estimate < fit.upper

    def test_matches_unweighted_conditional_logit(self, matched_sample):
        fit = fit_conditional_logistic(matched_sample, robust=False)
        reference = ConditionalLogit(
            matched_sample["Fail"],
            matched_sample[["A", "male"]].astype(float),
            groups=matched_sample["Set"],
        ).fit(disp=0)
        assert fit.coef == pytest.approx(reference.params["A"], rel=1e-3)
        assert fit.se == pytest.approx(reference.bse["A"], rel=2e-3)

    def test_constant_covariates_dropped(self, matched_sample):
        fit = fit_conditional_logistic(matched_sample)
        assert list(fit.model.params_.index) == ["A", "male"]

    def test_separated_exposure_raises(self):
        # every case exposed, every matched control unexposed
        n_sets, size = 60, 3
        rng = np.random.default_rng(11)
        frame = pd.DataFrame(
            0, index=range(n_sets * size), columns=MODEL_COVARIATES
        )
        frame["male"] = rng.binomial(1, 0.5, n_sets * size)
        frame["Set"] = np.repeat(np.arange(1, n_sets + 1), size)
        frame["Fail"] = np.tile([1, 0, 0], n_sets)
        frame["A"] = frame["Fail"]
        frame["sampweight"] = 1.0
        with pytest.raises(ModelFitError):
            fit_conditional_logistic(frame)

    def test_weight_scale_does_not_move_estimate(self, matched_sample):
        scaled = matched_sample.assign(sampweight=4.0)
        base = fit_conditional_logistic(matched_sample)
        other = fit_conditional_logistic(scaled)
        assert other.estimate == pytest.approx(base.estimate, rel=1e-5)
