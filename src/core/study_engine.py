import logging
from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd
from omegaconf import DictConfig

from casecontrol_sim import (
    DataSufficiencyError,
    ExposureModel,
    ModelFitError,
    OutcomeModel,
    SeedTriplet,
    TrueEffects,
    normalize_scheme,
    select_survey_year,
    simulate,
    synthesize_population,
)
from .data_structures import ReplicateRecord, SimulationSummary
from utils.logging import log_call

logger = logging.getLogger(__name__)


@dataclass
class SimulationEngine:
    """Monte Carlo driver: one population, many seeded studies."""

    cfg: DictConfig

    @log_call
    def build_population(self, raw_survey: pd.DataFrame) -> pd.DataFrame:
        """Filter the raw extract and synthesize the fixed population."""
        pop_cfg = self.cfg.population
        survey = select_survey_year(
            raw_survey, year=pop_cfg.survey_year, min_age=pop_cfg.min_age
        )
        return synthesize_population(
            survey,
            n_persons=pop_cfg.n_persons,
            seeds=SeedTriplet(
                pop_cfg.seeds.base_sample,
                pop_cfg.seeds.exposure,
                pop_cfg.seeds.outcome,
            ),
            exposure_model=ExposureModel.from_config(self.cfg.dgp.exposure),
            outcome_model=OutcomeModel.from_config(self.cfg.dgp.outcome),
            horizon=pop_cfg.follow_up_days,
        )

    @log_call
    def sampler_options(self) -> Dict[str, Any]:
        """Sampler keyword arguments for the configured scheme."""
        study = self.cfg.study
        scheme = normalize_scheme(study.sampling_scheme)
        if scheme == "clustered_single_stage":
            return {"cluster_column": study.clustered.single_stage_column}
        if scheme == "clustered_two_stage":
            return {
                "cluster_column": study.clustered.two_stage_column,
                "n_clusters": study.clustered.n_clusters,
                "per_cluster": study.clustered.per_cluster,
            }
        if scheme == "stratified":
            return {
                "stratum_column": study.stratified.column,
                "n_strata": study.stratified.n_strata,
            }
        return {}

    @log_call
    def run_replicate(
        self, seed: int, population: pd.DataFrame
    ) -> ReplicateRecord:
        """
        Simulate one study. Data-sufficiency and fit failures are recorded
        rather than raised when ``study.on_error`` is ``skip``.
        """
        study = self.cfg.study
        record = ReplicateRecord(
            seed=seed,
            design_type=study.design_type,
            sampling_scheme=study.sampling_scheme,
            ratio=float(study.ratio),
        )
        try:
            result = simulate(
                seed,
                study.design_type,
                study.sampling_scheme,
                float(study.ratio),
                population,
                sampler_options=self.sampler_options(),
                robust=study.robust_se,
            )
        except (DataSufficiencyError, ModelFitError) as exc:
            if study.on_error == "raise":
                raise
            logger.warning("Replicate seed=%d skipped: %s", seed, exc)
            record.error = f"{type(exc).__name__}: {exc}"
            return record

        record.n_cases = result.n_cases
        record.n_controls = result.n_controls
        record.estimate = result.estimate
        record.lower = result.lower
        record.upper = result.upper
        return record

    @log_call
    def run(self, population: pd.DataFrame) -> pd.DataFrame:
        """Run ``n_replicates`` studies with consecutive seeds."""
        study = self.cfg.study
        seeds = range(study.first_seed, study.first_seed + study.n_replicates)
        logger.info(
            "Running %d %s/%s replicates (ratio=%s)",
            study.n_replicates, study.design_type, study.sampling_scheme,
            study.ratio
        )
        records = [
            self.run_replicate(seed, population).to_dict() for seed in seeds
        ]
        return pd.DataFrame.from_records(records)

    @log_call
    def truth_for_design(self, effects: TrueEffects) -> float:
        """Odds ratio for cumulative designs, rate ratio for density."""
        if self.cfg.study.design_type == "density":
            return effects.rate_ratio
        return effects.odds_ratio

    @log_call
    def summarize(
        self, results: pd.DataFrame, truth: float
    ) -> SimulationSummary:
        """Bias, empirical 95% CI coverage and CI width across replicates."""
        ok = results[results["error"].isna()]
        if ok.empty:
            raise DataSufficiencyError("Every replicate failed")
        estimate = ok["estimate"].astype(float)
        lower = ok["lower"].astype(float)
        upper = ok["upper"].astype(float)
        return SimulationSummary(
            truth=float(truth),
            n_replicates=len(results),
            n_failed=len(results) - len(ok),
            mean_estimate=float(estimate.mean()),
            median_estimate=float(estimate.median()),
            log_bias=float(np.log(estimate).mean() - np.log(truth)),
            coverage=float(((lower <= truth) & (truth <= upper)).mean()),
            mean_log_ci_width=float((np.log(upper) - np.log(lower)).mean()),
        )
