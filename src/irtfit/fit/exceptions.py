class M2Error(Exception):
    """Base class for failures of the limited-information fit statistics."""


class ConfigurationError(M2Error, ValueError):
    """Invalid option values or combinations."""


class DimensionError(M2Error):
    """Moment vector, Jacobian or latent estimate shapes disagree."""


class InsufficientDegreesOfFreedomError(M2Error):
    def __init__(self, n_moments: int, n_free: int) -> None:
        self.n_moments = n_moments
        self.n_free = n_free
        super().__init__(
            f"M2 cannot be calculated since df is too low: "
            f"{n_moments} moments for {n_free} free parameters"
        )


class IllConditionedError(M2Error):
    """The projected weight matrix cannot be inverted reliably."""


class MissingInputError(M2Error):
    """Data contain missing values but no imputation plan was supplied."""


class UnsupportedModelError(M2Error):
    """Item types or model classes outside the supported set."""


class NullModelConvergenceError(M2Error):
    """The independence (null) model could not be fitted."""
