"""
Shared test fixtures for performance optimization.

Populations are synthesized once per session from a fabricated survey
extract; every test that needs one treats it as read-only.
"""

import os
import sys

import pytest

# Add src (and the repository root, for tests.fixtures) to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from casecontrol_sim import (  # noqa: E402
    OutcomeModel,
    SeedTriplet,
    select_survey_year,
    synthesize_population,
    true_effects,
)
from tests.fixtures.sample_surveys import make_survey_extract  # noqa: E402


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "integration: slow end-to-end tests"
    )


@pytest.fixture(scope="session")
def raw_survey():
    """Two-year extract (4000 records) with numeric IPUMS codes."""
    return make_survey_extract(n_records=4000, seed=0)


@pytest.fixture(scope="session")
def labelled_survey():
    """Same extract with Stata value labels instead of codes."""
    return make_survey_extract(n_records=4000, seed=0, labels=True)


@pytest.fixture(scope="session")
def survey(raw_survey):
    """2010 adults from the raw extract."""
    return select_survey_year(raw_survey, year=2010, min_age=18)


@pytest.fixture(scope="session")
def population(survey):
    """Population of 20000 with a fairly common outcome (~15% cases)."""
    return synthesize_population(
        survey,
        n_persons=20000,
        seeds=SeedTriplet(1, 2, 3),
        outcome_model=OutcomeModel(baseline_hazard=1e-5),
    )


@pytest.fixture(scope="session")
def small_population(survey):
    """Population of 8000 with a rarer outcome, for risk-set designs."""
    return synthesize_population(
        survey,
        n_persons=8000,
        seeds=SeedTriplet(4, 5, 6),
        outcome_model=OutcomeModel(baseline_hazard=3e-6),
    )


@pytest.fixture(scope="session")
def population_effects(population):
    """Full-population benchmark effects."""
    return true_effects(population)


@pytest.fixture(scope="session")
def controls(population):
    """Non-cases of the session population."""
    return population[population["Y"] == 0]
