"""Error kinds raised by the simulation pipeline and the inference boundary."""


class MixSimError(Exception):
    """Base class for every error raised by mixsim."""


class ConfigError(MixSimError, ValueError):
    """Invalid or non-stationary generation/transform parameters."""


class DomainError(MixSimError, ValueError):
    """A transform was applied outside its valid input domain."""


class WindowError(MixSimError, ValueError):
    """Not enough history to fill a trailing window at a given period."""


class InferenceUnavailable(MixSimError, RuntimeError):
    """
    The inference engine failed, timed out, or returned a malformed result.

    A posterior that is merely imprecise is not an error and never raises this.
    """
