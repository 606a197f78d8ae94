"""Fatal error types. Advisory conditions are logged instead of raised."""


class MotifError(ValueError):
    """A motif cannot be turned into a score matrix."""


class SequenceError(ValueError):
    """Sequence input is unusable."""


class DistributionSizeError(RuntimeError):
    """The null distribution of a motif would exceed the configured size."""
