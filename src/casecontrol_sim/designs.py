"""
Case-control design assembly.

Cumulative designs compare all cases with controls sampled once from the
non-cases. Density (nested) designs instead treat the combined case and
control sample as a cohort followed from time 0 and, for every case, draw
matched controls from the members still at risk at the case's event time.
"""

import numpy as np
import pandas as pd

from utils.logging import log_call

from .columns import (
    EXPOSURE,
    FAIL,
    MAP,
    MODEL_COVARIATES,
    OUTCOME,
    SET,
    SET_TIME,
    TIME,
    WEIGHT,
)
from .exceptions import ConfigurationError, DataSufficiencyError


@log_call
def assemble_cumulative(
    cases: pd.DataFrame,
    controls: pd.DataFrame
) -> pd.DataFrame:
    """All cases followed by the sampled controls."""
    return pd.concat([cases, controls])


@log_call
def build_risk_sets(
    cohort: pd.DataFrame,
    controls_per_case: int,
    rng: np.random.Generator
) -> pd.DataFrame:
    """
    Incidence-density sampling of matched risk sets.

    Cases are processed in order of event time; cases with the same event
    time keep their row order in ``cohort``. For a case failing at time
    ``t`` the candidate controls are all other members with ``time > t``,
    plus non-cases whose follow-up ends exactly at ``t``. Candidates
    include future cases, so a later case may serve as an earlier case's
    control.

    Parameters
    ----------
    cohort : pd.DataFrame
        Cases and sampled controls with ``Y``, ``time``, ``A``, covariates
        and ``sampweight``. Entry time is 0 for everyone.
    controls_per_case : int
        Exact number of controls drawn for each risk set.
    rng : np.random.Generator
        Generator for the within-set draws.

    Returns
    -------
    sets : pd.DataFrame
        One row per risk-set member with ``Set`` (1-based), ``Map`` (the
        member's cohort index label), ``Time`` (the case's event time),
        ``Fail`` (1 for the case), exposure, covariates, ``sampweight`` and
        the member's own ``time``.

    Raises
    ------
    DataSufficiencyError
        If there are no cases, or a case has fewer than
        ``controls_per_case`` eligible candidates.
    """
    if not float(controls_per_case).is_integer() or controls_per_case < 1:
        raise ConfigurationError(
            "Density sampling needs a positive whole number of controls "
            f"per case, got {controls_per_case}"
        )
    m = int(controls_per_case)

    times = cohort[TIME].to_numpy(dtype=float)
    failed = cohort[OUTCOME].to_numpy() == 1
    case_positions = np.flatnonzero(failed)
    if len(case_positions) == 0:
        raise DataSufficiencyError("No cases available to form risk sets")
    case_positions = case_positions[
        np.argsort(times[case_positions], kind="stable")
    ]

    by_time = np.argsort(times, kind="stable")
    sorted_times = times[by_time]

    members, set_ids, fail_flags, set_times = [], [], [], []
    for set_number, case in enumerate(case_positions, start=1):
        t = times[case]
        first_tied = np.searchsorted(sorted_times, t, side="left")
        after = np.searchsorted(sorted_times, t, side="right")
        tied = by_time[first_tied:after]
        tied_controls = tied[~failed[tied]]
        n_later = len(times) - after
        n_candidates = len(tied_controls) + n_later
        if n_candidates < m:
            raise DataSufficiencyError(
                f"Risk set {set_number} (case {cohort.index[case]!r}, "
                f"time {t:.2f}) has {n_candidates} eligible controls; "
                f"{m} required"
            )

        # Candidate k is tied_controls[k] for k < n_tied, else a later member
        draw = rng.choice(n_candidates, size=m, replace=False)
        n_tied = len(tied_controls)
        from_tied = draw < n_tied
        picked = np.empty(m, dtype=np.int64)
        picked[from_tied] = tied_controls[draw[from_tied]]
        picked[~from_tied] = by_time[after + draw[~from_tied] - n_tied]

        members.append(np.concatenate([[case], picked]))
        set_ids.append(np.full(m + 1, set_number))
        fail_flags.append(np.r_[1, np.zeros(m, dtype=int)])
        set_times.append(np.full(m + 1, t))

    members = np.concatenate(members)
    columns = [EXPOSURE] + MODEL_COVARIATES + [WEIGHT, TIME]
    sets = cohort.iloc[members][columns].reset_index(drop=True)
    sets.insert(0, SET, np.concatenate(set_ids))
    sets.insert(1, MAP, cohort.index[members].to_numpy())
    sets.insert(2, SET_TIME, np.concatenate(set_times))
    sets.insert(3, FAIL, np.concatenate(fail_flags))
    return sets
