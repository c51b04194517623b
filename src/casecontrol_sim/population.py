"""
Population synthesis module for case-control simulations.

This module builds a fixed synthetic target population from person-level
survey microdata (American Community Survey extracts), assigns categorical
covariates, and simulates a binary exposure and a time-to-event outcome from
known data-generating process tables. The resulting population is the
ground truth every simulated study is compared against.
"""

import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np
import pandas as pd
import statsmodels.api as sm
from scipy.special import expit

from utils.logging import log_call

from .columns import (
    AGE_COLUMNS,
    EXPOSURE,
    HORIZON_DAYS,
    MODEL_COVARIATES,
    ONE_HOT_GROUPS,
    OUTCOME,
    POPULATION_COLUMNS,
    SURVEY_COLUMNS,
    TIME,
)
from .dgp import ExposureModel, OutcomeModel
from .exceptions import DataSufficiencyError, SurveyDataError

logger = logging.getLogger(__name__)

# IPUMS general race codes and labels -> race column
RACE_CODES = {
    1: "white",
    2: "black",
    3: "otherrace",   # American Indian or Alaska Native
    4: "asian",
    5: "asian",
    6: "asian",
    7: "otherrace",
    8: "otherrace",
    9: "otherrace",
}
RACE_LABELS = {
    "white": "white",
    "black/african american/negro": "black",
    "american indian or alaska native": "otherrace",
    "chinese": "asian",
    "japanese": "asian",
    "other asian or pacific islander": "asian",
    "other race, nec": "otherrace",
    "two major races": "otherrace",
    "three or more major races": "otherrace",
}

# Hispanic origin codes that override race
HISPANIC_CODES = {1, 2, 3, 4}
HISPANIC_LABELS = {"mexican", "puerto rican", "cuban", "other"}

SEX_CODES = {1: 1, 2: 0}
SEX_LABELS = {"male": 1, "female": 0}

AGE_BINS = [18, 25, 35, 45, 55, 65, np.inf]

EDUCATION_LABELS = {
    "educ_lesshs": [
        "n/a or no schooling", "n/a", "no schooling completed",
        "nursery school to grade 4", "nursery school, preschool",
        "kindergarten", "grade 1, 2, 3, or 4", "grade 1", "grade 2",
        "grade 3", "grade 4", "grade 5, 6, 7, or 8", "grade 5 or 6",
        "grade 5", "grade 6", "grade 7 or 8", "grade 7", "grade 8",
        "grade 9", "grade 10", "grade 11", "grade 12",
        "12th grade, no diploma",
    ],
    "educ_ged": ["ged or alternative credential"],
    "educ_hs": ["regular high school diploma"],
    "educ_somecollege": [
        "some college, but less than 1 year",
        "1 or more years of college credit, no degree",
    ],
    "educ_associates": ["associate's degree, type not specified"],
    "educ_bachelors": ["bachelor's degree"],
    "educ_advdegree": [
        "master's degree",
        "professional degree beyond a bachelor's degree",
        "doctoral degree",
    ],
}
EDUCATION_CODES = {
    "educ_lesshs": list(range(0, 62)),
    "educ_ged": [64],
    "educ_hs": [62, 63],
    "educ_somecollege": [65, 71],
    "educ_associates": [81],
    "educ_bachelors": [101],
    "educ_advdegree": [114, 115, 116],
}


class SeedTriplet(NamedTuple):
    """Seeds for the three independent draws of population synthesis."""

    base_sample: int = 1
    exposure: int = 2
    outcome: int = 3


@dataclass
class TrueEffects:
    """Full-population benchmark effects."""

    odds_ratio: float
    rate_ratio: float
    crude_odds_ratio: float
    crude_rate_ratio: float
    exposure_prevalence: float
    outcome_prevalence: float


def _normalize_codes(values: pd.Series) -> pd.Series:
    """Lower-cased labels for text columns, integers for numeric ones."""
    if pd.api.types.is_numeric_dtype(values):
        return values.astype("Int64")
    return values.astype("string").str.strip().str.lower()


def _unknown(values: pd.Series, known) -> list:
    mask = values.notna() & ~values.isin(list(known))
    return sorted(values[mask].astype(str).unique().tolist())


def _age_years(age: pd.Series) -> pd.Series:
    """Numeric age from either numbers or IPUMS age labels."""
    if pd.api.types.is_numeric_dtype(age):
        return age.astype(float)
    text = age.astype("string").str.strip().str.lower()
    text = text.replace("less than 1 year old", "0")
    return pd.to_numeric(text.str.extract(r"^(\d+)")[0], errors="coerce")


@log_call
def select_survey_year(
    raw: pd.DataFrame,
    year: int = 2010,
    min_age: int = 18
) -> pd.DataFrame:
    """
    Restrict a raw multi-year extract to one survey year and adults.

    Parameters
    ----------
    raw : pd.DataFrame
        Survey extract containing ``year`` plus the synthesizer fields.
    year : int, default=2010
        Survey year to keep.
    min_age : int, default=18
        Minimum age in years.

    Returns
    -------
    survey : pd.DataFrame
        Rows for the selected year and ages, limited to the fields used by
        :func:`synthesize_population`.
    """
    missing = [c for c in ["year"] + SURVEY_COLUMNS if c not in raw.columns]
    if missing:
        raise SurveyDataError(f"Survey extract is missing columns: {missing}")

    ages = _age_years(raw["age"])
    years = pd.to_numeric(raw["year"].astype(str), errors="coerce")
    keep = (years == year) & (
        ages >= min_age
    )
    survey = raw.loc[keep, SURVEY_COLUMNS].reset_index(drop=True)
    logger.info(
        "Selected %d of %d survey records (year=%d, age>=%d)",
        len(survey), len(raw), year, min_age
    )
    return survey


def _expanded_positions(person_weights: pd.Series) -> np.ndarray:
    counts = np.floor(
        pd.to_numeric(person_weights, errors="coerce").fillna(0).to_numpy()
    ).astype(np.int64)
    counts = np.clip(counts, 0, None)
    return np.repeat(np.arange(len(counts)), counts)


@log_call
def expand_by_person_weight(survey: pd.DataFrame) -> pd.DataFrame:
    """
    Replicate each survey record according to its integer person weight.

    Records with a missing or non-positive ``perwt`` drop out. The result
    approximates the full population distribution the survey represents.
    """
    positions = _expanded_positions(survey["perwt"])
    return survey.iloc[positions].reset_index(drop=True)


@log_call
def draw_population(
    survey: pd.DataFrame,
    n_persons: int,
    rng: np.random.Generator
) -> pd.DataFrame:
    """
    Simple random sample of exactly ``n_persons`` from the weight-expanded
    survey, without replacement.

    The expansion is done on row positions so the full replicated frame is
    never materialised; this is equivalent to sampling rows of
    :func:`expand_by_person_weight`.
    """
    positions = _expanded_positions(survey["perwt"])
    if n_persons > len(positions):
        raise DataSufficiencyError(
            f"Requested population of {n_persons} exceeds the "
            f"{len(positions)} persons represented by the survey"
        )
    chosen = rng.choice(len(positions), size=n_persons, replace=False)
    return survey.iloc[positions[chosen]].reset_index(drop=True)


@log_call
def recode_race(race: pd.Series, hispan: pd.Series) -> pd.Series:
    """
    Collapse survey race codes to five categories.

    Any Hispanic-origin code (Mexican, Puerto Rican, Cuban, other) overrides
    the race code, so Hispanic individuals of any race are ``hispanic``.
    """
    race = _normalize_codes(race)
    hispan = _normalize_codes(hispan)
    lookup = RACE_CODES if pd.api.types.is_numeric_dtype(race) else RACE_LABELS
    hispanic_codes = (
        HISPANIC_CODES if pd.api.types.is_numeric_dtype(hispan)
        else HISPANIC_LABELS
    )

    unknown = _unknown(race, lookup)
    if unknown or race.isna().any():
        raise SurveyDataError(f"Unrecognised race codes: {unknown or ['<NA>']}")

    categories = race.map(lookup).astype(object)
    is_hispanic = hispan.isin(list(hispanic_codes)).fillna(False)
    categories.loc[is_hispanic.to_numpy(dtype=bool)] = "hispanic"
    return categories


def _one_hot(categories: pd.Series, columns: list) -> pd.DataFrame:
    return pd.DataFrame(
        {c: (categories == c).astype(int).to_numpy() for c in columns},
        index=categories.index,
    )


def _education_category(educd: pd.Series) -> pd.Series:
    codes = _normalize_codes(educd)
    table = (
        EDUCATION_CODES if pd.api.types.is_numeric_dtype(codes)
        else EDUCATION_LABELS
    )
    lookup = {v: column for column, values in table.items() for v in values}
    unknown = _unknown(codes, lookup)
    if unknown or codes.isna().any():
        raise SurveyDataError(
            f"Unrecognised education codes: {unknown or ['<NA>']}"
        )
    return codes.map(lookup).astype(object)


@log_call
def derive_indicators(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Add one-hot race, sex, age and education indicators.

    Parameters
    ----------
    frame : pd.DataFrame
        Rows with raw ``race``, ``hispan``, ``sex``, ``age`` and ``educd``.

    Returns
    -------
    frame : pd.DataFrame
        Copy of the input with the indicator columns appended.
    """
    race = recode_race(frame["race"], frame["hispan"])

    sex = _normalize_codes(frame["sex"])
    sex_lookup = SEX_CODES if pd.api.types.is_numeric_dtype(sex) else SEX_LABELS
    unknown = _unknown(sex, sex_lookup)
    if unknown or sex.isna().any():
        raise SurveyDataError(f"Unrecognised sex codes: {unknown or ['<NA>']}")
    male = sex.map(sex_lookup).astype(int).rename("male")

    ages = _age_years(frame["age"])
    if ages.isna().any() or (ages < AGE_BINS[0]).any():
        raise SurveyDataError("Ages must be known and at least 18")
    age_bin = pd.cut(ages, bins=AGE_BINS, right=False, labels=AGE_COLUMNS)

    categories = {
        "race": race,
        "age": age_bin.astype(object),
        "education": _education_category(frame["educd"]),
    }
    indicators = [
        _one_hot(categories[group], columns)
        for group, columns in ONE_HOT_GROUPS.items()
    ]
    return pd.concat([frame, male] + indicators, axis=1)


@log_call
def simulate_exposure(
    frame: pd.DataFrame,
    exposure_model: ExposureModel,
    rng: np.random.Generator
) -> np.ndarray:
    """Bernoulli exposure draws with logistic probabilities."""
    prob = expit(exposure_model.linear_predictor(frame))
    return rng.binomial(1, prob).astype(int)


@log_call
def simulate_outcome(
    frame: pd.DataFrame,
    outcome_model: OutcomeModel,
    rng: np.random.Generator,
    horizon: float = HORIZON_DAYS
) -> pd.DataFrame:
    """
    Simulate exponential event times and administratively censor them.

    Parameters
    ----------
    frame : pd.DataFrame
        Rows with covariates and exposure ``A``.
    outcome_model : OutcomeModel
        Hazard table; ``lambda = exp(linear_predictor)``.
    rng : np.random.Generator
        Generator for the event-time draws.
    horizon : float, default=3652.5
        Follow-up length in days.

    Returns
    -------
    outcome : pd.DataFrame
        Columns ``Y`` (1 if the event occurs by ``horizon``) and ``time``
        (event time, or ``horizon`` when censored), aligned to ``frame``.
    """
    rate = np.exp(outcome_model.linear_predictor(frame))
    event_time = rng.exponential(scale=1.0 / rate)
    case = (event_time <= horizon).astype(int)
    return pd.DataFrame(
        {OUTCOME: case, TIME: np.where(case == 1, event_time, horizon)},
        index=frame.index,
    )


@log_call
def synthesize_population(
    survey: pd.DataFrame,
    n_persons: int,
    seeds: SeedTriplet = SeedTriplet(),
    exposure_model: Optional[ExposureModel] = None,
    outcome_model: Optional[OutcomeModel] = None,
    horizon: float = HORIZON_DAYS
) -> pd.DataFrame:
    """
    Build the synthetic population with known exposure-outcome structure.

    Each random step uses its own generator so that, for example, changing
    the outcome table does not alter who is exposed.

    Parameters
    ----------
    survey : pd.DataFrame
        Person-level survey records with ``perwt`` and raw covariates.
    n_persons : int
        Population size N.
    seeds : SeedTriplet
        Seeds for the base sample, exposure and outcome draws.
    exposure_model, outcome_model : optional
        Coefficient tables; defaults reproduce the smoking/lung cancer DGP.
    horizon : float, default=3652.5
        Follow-up length in days.

    Returns
    -------
    population : pd.DataFrame
        One row per synthetic individual with identifiers, indicators,
        ``A``, ``Y`` and ``time``.
    """
    if n_persons <= 0:
        raise DataSufficiencyError("n_persons must be positive")
    exposure_model = exposure_model or ExposureModel()
    outcome_model = outcome_model or OutcomeModel()
    seeds = SeedTriplet(*seeds)

    base = draw_population(
        survey, n_persons, np.random.default_rng(seeds.base_sample)
    )
    pop = derive_indicators(base)
    pop[EXPOSURE] = simulate_exposure(
        pop, exposure_model, np.random.default_rng(seeds.exposure)
    )
    outcome = simulate_outcome(
        pop, outcome_model, np.random.default_rng(seeds.outcome), horizon
    )
    pop[OUTCOME] = outcome[OUTCOME]
    pop[TIME] = outcome[TIME]
    pop = pop[POPULATION_COLUMNS]

    logger.info(
        "Synthesized population of %d: exposure %.1f%%, outcome %.2f%%",
        len(pop), 100 * pop[EXPOSURE].mean(), 100 * pop[OUTCOME].mean()
    )
    return pop


def _exposure_ratio(y, exog, family, **kwargs) -> float:
    fit = sm.GLM(y, exog, family=family, **kwargs).fit()
    return float(np.exp(fit.params[EXPOSURE]))


@log_call
def true_effects(population: pd.DataFrame) -> TrueEffects:
    """
    Benchmark effects fitted on the full population.

    The adjusted logistic odds ratio is the truth for cumulative designs and
    the adjusted Poisson rate ratio (``log(time)`` offset) the truth for
    density designs. Crude versions show the amount of confounding.
    """
    y = population[OUTCOME].to_numpy(dtype=float)
    offset = np.log(population[TIME].to_numpy(dtype=float))
    adjusted = sm.add_constant(
        population[[EXPOSURE] + MODEL_COVARIATES].astype(float)
    )
    crude = sm.add_constant(population[[EXPOSURE]].astype(float))

    return TrueEffects(
        odds_ratio=_exposure_ratio(y, adjusted, sm.families.Binomial()),
        rate_ratio=_exposure_ratio(
            y, adjusted, sm.families.Poisson(), offset=offset
        ),
        crude_odds_ratio=_exposure_ratio(y, crude, sm.families.Binomial()),
        crude_rate_ratio=_exposure_ratio(
            y, crude, sm.families.Poisson(), offset=offset
        ),
        exposure_prevalence=float(population[EXPOSURE].mean()),
        outcome_prevalence=float(population[OUTCOME].mean()),
    )
