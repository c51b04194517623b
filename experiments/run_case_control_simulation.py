#!/usr/bin/env python3
"""
Case-Control Simulation Experiment Runner

Builds (or loads) a synthetic population, computes the population-level
exposure effects, then runs repeated case-control studies under the
configured design and control sampling scheme.

Usage:
    python experiments/run_case_control_simulation.py \
        experiment.survey_path=data/usa_00001.dta
    python experiments/run_case_control_simulation.py \
        study=density_srs study.ratio=4 population=small
"""

import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict

import pandas as pd

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

import hydra  # noqa: E402
from hydra.utils import to_absolute_path  # noqa: E402
from omegaconf import DictConfig, OmegaConf  # noqa: E402

from casecontrol_sim import true_effects  # noqa: E402
from casecontrol_sim.exceptions import ConfigurationError  # noqa: E402
from casecontrol_sim.io import (  # noqa: E402
    load_population,
    load_survey_extract,
    save_population,
)
from config.schemas import SimulationConfig  # noqa: E402
from core import SimulationEngine  # noqa: E402
from utils.validation import validate_config  # noqa: E402


def setup_logging(cfg: DictConfig, output_dir: Path) -> Path:
    """Configure logging for the simulation, writing the log file into
    ``output_dir``. Replaces any handlers installed at import time."""
    log_path = output_dir / cfg.logging.log_file
    logging.basicConfig(
        level=getattr(logging, cfg.logging.level.upper()),
        format=cfg.logging.log_format,
        handlers=[
            logging.FileHandler(log_path),
            logging.StreamHandler()
        ],
        force=True,
    )
    return log_path


def create_output_directory(cfg: DictConfig) -> Path:
    """Create output directory for simulation results."""
    output_dir = Path(to_absolute_path(cfg.experiment.output_dir))
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def prepare_population(engine: SimulationEngine, cfg: DictConfig) -> pd.DataFrame:
    """Load a saved population, or synthesize one from the survey extract."""
    population_path = cfg.experiment.population_path
    if population_path and Path(to_absolute_path(population_path)).exists():
        logging.info(f"Loading population from {population_path}")
        return load_population(to_absolute_path(population_path))

    if not cfg.experiment.survey_path:
        raise ConfigurationError(
            "Set experiment.survey_path (or an existing "
            "experiment.population_path) to run the simulation"
        )

    logging.info(f"Synthesizing population from {cfg.experiment.survey_path}")
    raw = load_survey_extract(to_absolute_path(cfg.experiment.survey_path))
    population = engine.build_population(raw)

    if population_path:
        saved = save_population(population, to_absolute_path(population_path))
        logging.info(f"Population saved to {saved}")
    return population


def save_results(
    results: pd.DataFrame,
    stats: Dict[str, Any],
    output_dir: Path
) -> None:
    """Write per-replicate results and summary statistics."""
    results.to_csv(output_dir / "replicates.csv", index=False)
    with open(output_dir / "summary_statistics.json", 'w') as f:
        json.dump(stats, f, indent=2)
    logging.info(f"Results saved to {output_dir}")


@hydra.main(version_base=None, config_path="../configs", config_name="config")
def main(cfg: DictConfig) -> None:
    """Main experiment runner."""
    cfg = OmegaConf.merge(OmegaConf.structured(SimulationConfig), cfg)
    validate_config(cfg)

    output_dir = create_output_directory(cfg)
    setup_logging(cfg, output_dir)
    logging.info("Starting case-control simulation experiment")
    logging.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")
    logging.info(f"Output directory: {output_dir}")

    engine = SimulationEngine(cfg)
    population = prepare_population(engine, cfg)
    logging.info(
        f"Population: {len(population):,} persons, "
        f"{int(population['Y'].sum()):,} cases"
    )

    effects = true_effects(population)
    truth = engine.truth_for_design(effects)
    logging.info(
        f"True effects: OR={effects.odds_ratio:.3f} "
        f"(crude {effects.crude_odds_ratio:.3f}), "
        f"RR={effects.rate_ratio:.3f} (crude {effects.crude_rate_ratio:.3f})"
    )

    results = engine.run(population)
    summary = engine.summarize(results, truth)

    stats = {
        'configuration': OmegaConf.to_container(cfg, resolve=True),
        'population': {
            'n_persons': int(len(population)),
            'n_cases': int(population['Y'].sum()),
            'n_exposed': int(population['A'].sum()),
        },
        'true_effects': asdict(effects),
        'summary': summary.to_dict(),
    }
    save_results(results, stats, output_dir)

    logging.info("Simulation completed successfully!")
    logging.info("Summary Statistics:")
    logging.info(f"  - Replicates: {summary.n_replicates} "
                 f"({summary.n_failed} failed)")
    logging.info(f"  - Truth: {summary.truth:.3f}")
    logging.info(f"  - Mean estimate: {summary.mean_estimate:.3f}")
    logging.info(f"  - Log bias: {summary.log_bias:+.4f}")
    logging.info(f"  - 95% CI coverage: {summary.coverage:.3f}")


if __name__ == "__main__":
    main()
