"""Reading survey extracts and reading/writing population files."""

from pathlib import Path
from typing import Union

import pandas as pd

from utils.logging import log_call

from .columns import EXPOSURE, MODEL_COVARIATES, OUTCOME, TIME
from .exceptions import SurveyDataError

PathLike = Union[str, Path]


@log_call
def load_survey_extract(path: PathLike) -> pd.DataFrame:
    """Load a Stata (``.dta``) or CSV survey extract with value labels."""
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix == ".dta":
        return pd.read_stata(path)
    if suffix == ".csv":
        return pd.read_csv(path)
    raise SurveyDataError(f"Unsupported survey file format: {path.name}")


@log_call
def save_population(population: pd.DataFrame, path: PathLike) -> Path:
    """Write the population as a header-included CSV file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    population.to_csv(path, index=False)
    return path


@log_call
def load_population(path: PathLike) -> pd.DataFrame:
    population = pd.read_csv(path)
    required = [EXPOSURE, OUTCOME, TIME] + MODEL_COVARIATES
    missing = [c for c in required if c not in population.columns]
    if missing:
        raise SurveyDataError(f"{path} is not a population file: missing {missing}")
    return population
