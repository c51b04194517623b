"""Column groups shared by the population and study sample frames."""

from typing import List

HORIZON_DAYS = 365.25 * 10

DESIGN_COLUMNS: List[str] = ["cluster", "strata", "serial"]
GEOGRAPHY_COLUMNS: List[str] = ["county", "city", "puma", "cpuma0010"]

RACE_COLUMNS: List[str] = ["white", "black", "asian", "hispanic", "otherrace"]
SEX_COLUMNS: List[str] = ["male"]
AGE_COLUMNS: List[str] = [
    "age_18_24", "age_25_34", "age_35_44",
    "age_45_54", "age_55_64", "age_over64",
]
EDUCATION_COLUMNS: List[str] = [
    "educ_lesshs", "educ_ged", "educ_hs", "educ_somecollege",
    "educ_associates", "educ_bachelors", "educ_advdegree",
]

# One-hot groups; each row has exactly one indicator set per group
ONE_HOT_GROUPS = {
    "race": RACE_COLUMNS,
    "age": AGE_COLUMNS,
    "education": EDUCATION_COLUMNS,
}

# Adjustment set: every indicator except the reference level of each group
MODEL_COVARIATES: List[str] = (
    RACE_COLUMNS[1:]
    + AGE_COLUMNS[1:]
    + SEX_COLUMNS
    + EDUCATION_COLUMNS[1:]
)

EXPOSURE = "A"
OUTCOME = "Y"
TIME = "time"
WEIGHT = "sampweight"

POPULATION_COLUMNS: List[str] = (
    DESIGN_COLUMNS
    + GEOGRAPHY_COLUMNS
    + RACE_COLUMNS
    + SEX_COLUMNS
    + AGE_COLUMNS
    + EDUCATION_COLUMNS
    + [EXPOSURE, OUTCOME, TIME]
)

# Raw survey extract fields consumed by the synthesizer
SURVEY_COLUMNS: List[str] = (
    DESIGN_COLUMNS
    + ["perwt"]
    + GEOGRAPHY_COLUMNS
    + ["sex", "age", "educd", "race", "hispan"]
)

# Risk-set bookkeeping added by incidence-density sampling
SET = "Set"
MAP = "Map"
SET_TIME = "Time"
FAIL = "Fail"
