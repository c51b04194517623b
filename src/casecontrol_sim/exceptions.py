"""Error taxonomy for population synthesis and study simulation."""


class CaseControlSimError(Exception):
    """Base class for all errors raised by the simulator."""


class ConfigurationError(CaseControlSimError, ValueError):
    """Invalid or unsupported design, scheme, ratio or coefficient table."""


class UnsupportedSchemeError(ConfigurationError):
    """A reserved sampling scheme name that has no implementation."""


class DataSufficiencyError(CaseControlSimError):
    """A stratum, cluster or risk set cannot supply the requested units."""


class ModelFitError(CaseControlSimError):
    """The regression did not converge or produced undefined errors."""


class SurveyDataError(CaseControlSimError):
    """The survey extract is missing fields or holds unrecognised codes."""
