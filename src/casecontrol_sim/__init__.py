"""Case-control study design simulator."""

from typing import List

from .dgp import ExposureModel, OutcomeModel
from .population import (
    SeedTriplet,
    TrueEffects,
    select_survey_year,
    expand_by_person_weight,
    draw_population,
    recode_race,
    derive_indicators,
    simulate_exposure,
    simulate_outcome,
    synthesize_population,
    true_effects
)
from .sampling import (
    ControlSampler,
    SimpleRandomSampler,
    ProbabilityWeightedSampler,
    SingleStageClusterSampler,
    TwoStageClusterSampler,
    StratifiedSampler,
    allocate_proportional,
    get_sampler,
    normalize_scheme,
    SAMPLING_SCHEMES
)
from .designs import assemble_cumulative, build_risk_sets
from .estimation import (
    EffectEstimate,
    fit_weighted_logistic,
    fit_conditional_logistic
)
from .study import StudyResult, simulate, DESIGN_TYPES
from .exceptions import (
    CaseControlSimError,
    ConfigurationError,
    UnsupportedSchemeError,
    DataSufficiencyError,
    ModelFitError,
    SurveyDataError
)

__all__: List[str] = [
    # Data-generating process
    "ExposureModel",
    "OutcomeModel",
    # Population synthesis
    "SeedTriplet",
    "TrueEffects",
    "select_survey_year",
    "expand_by_person_weight",
    "draw_population",
    "recode_race",
    "derive_indicators",
    "simulate_exposure",
    "simulate_outcome",
    "synthesize_population",
    "true_effects",
    # Control sampling
    "ControlSampler",
    "SimpleRandomSampler",
    "ProbabilityWeightedSampler",
    "SingleStageClusterSampler",
    "TwoStageClusterSampler",
    "StratifiedSampler",
    "allocate_proportional",
    "get_sampler",
    "normalize_scheme",
    "SAMPLING_SCHEMES",
    # Designs and estimators
    "assemble_cumulative",
    "build_risk_sets",
    "EffectEstimate",
    "fit_weighted_logistic",
    "fit_conditional_logistic",
    # Study simulation
    "StudyResult",
    "simulate",
    "DESIGN_TYPES",
    # Errors
    "CaseControlSimError",
    "ConfigurationError",
    "UnsupportedSchemeError",
    "DataSufficiencyError",
    "ModelFitError",
    "SurveyDataError",
]
