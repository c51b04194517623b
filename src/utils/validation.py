import math

from omegaconf import DictConfig

from casecontrol_sim.columns import MODEL_COVARIATES
from casecontrol_sim.exceptions import ConfigurationError
from casecontrol_sim.sampling import normalize_scheme
from casecontrol_sim.study import DESIGN_TYPES
from utils.logging import log_call


def _check_ratios(table, label: str) -> None:
    for name, value in table.items():
        if name not in MODEL_COVARIATES:
            raise ValueError(f"{label}: unknown covariate '{name}'")
        if not value > 0:
            raise ValueError(f"{label}: ratio for '{name}' must be positive")


@log_call
def validate_config(cfg: DictConfig) -> None:
    """Validation for population, data-generating and study configs."""

    population = cfg.population
    if population.n_persons <= 0:
        raise ValueError("n_persons must be positive")
    if population.min_age < 18:
        raise ValueError("min_age must be at least 18")
    if population.follow_up_days <= 0:
        raise ValueError("follow_up_days must be positive")

    dgp = cfg.dgp
    if dgp.exposure.baseline_odds <= 0:
        raise ValueError("baseline_odds must be positive")
    if dgp.outcome.baseline_hazard <= 0:
        raise ValueError("baseline_hazard must be positive")
    if dgp.outcome.exposure_rate_ratio <= 0:
        raise ValueError("exposure_rate_ratio must be positive")
    _check_ratios(dgp.exposure.odds_ratios, "exposure odds_ratios")
    _check_ratios(dgp.outcome.rate_ratios, "outcome rate_ratios")

    study = cfg.study
    if study.design_type not in DESIGN_TYPES:
        raise ValueError(f"design_type must be one of {list(DESIGN_TYPES)}")
    try:
        normalize_scheme(study.sampling_scheme)
    except ConfigurationError as exc:
        raise ValueError(str(exc)) from exc
    if math.isnan(study.ratio) or study.ratio <= 0:
        raise ValueError("ratio must be positive")
    if study.design_type == "density" and not float(study.ratio).is_integer():
        raise ValueError("density designs need a whole-number ratio")
    if study.n_replicates < 1:
        raise ValueError("n_replicates must be at least 1")
    if study.on_error not in ("raise", "skip"):
        raise ValueError("on_error must be 'raise' or 'skip'")
    if study.clustered.n_clusters < 1 or study.clustered.per_cluster < 1:
        raise ValueError("cluster sample sizes must be positive")
    if study.stratified.n_strata < 1:
        raise ValueError("n_strata must be positive")
