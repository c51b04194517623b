from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class SeedConfig:
    base_sample: int = 1
    exposure: int = 2
    outcome: int = 3


@dataclass
class PopulationConfig:
    n_persons: int = 1000000
    survey_year: int = 2010
    min_age: int = 18
    follow_up_days: float = 3652.5
    seeds: SeedConfig = field(default_factory=SeedConfig)


@dataclass
class ExposureConfig:
    baseline_odds: float = 0.4
    odds_ratios: Dict[str, float] = field(default_factory=dict)


@dataclass
class OutcomeConfig:
    baseline_hazard: float = 1.2e-6
    exposure_rate_ratio: float = 2.0
    rate_ratios: Dict[str, float] = field(default_factory=dict)


@dataclass
class DGPConfig:
    name: str = "smoking_lung_cancer"
    exposure: ExposureConfig = field(default_factory=ExposureConfig)
    outcome: OutcomeConfig = field(default_factory=OutcomeConfig)


@dataclass
class ClusterConfig:
    single_stage_column: str = "cluster"
    two_stage_column: str = "puma"
    n_clusters: int = 143
    per_cluster: int = 143


@dataclass
class StratifiedConfig:
    column: str = "county"
    n_strata: int = 10


@dataclass
class StudyConfig:
    design_type: str = "cumulative"
    sampling_scheme: str = "srs"
    ratio: float = 1.0
    n_replicates: int = 500
    first_seed: int = 1
    robust_se: bool = True
    on_error: str = "skip"
    clustered: ClusterConfig = field(default_factory=ClusterConfig)
    stratified: StratifiedConfig = field(default_factory=StratifiedConfig)


@dataclass
class ExperimentConfig:
    name: str = "case_control_simulation"
    output_dir: str = "outputs"
    survey_path: Optional[str] = None
    population_path: Optional[str] = None


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: str = "simulation.log"


@dataclass
class SimulationConfig:
    population: PopulationConfig = field(default_factory=PopulationConfig)
    dgp: DGPConfig = field(default_factory=DGPConfig)
    study: StudyConfig = field(default_factory=StudyConfig)
    experiment: ExperimentConfig = field(default_factory=ExperimentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
