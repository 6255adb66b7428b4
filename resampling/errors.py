# Error taxonomy for resampling evaluation
# Configuration errors are fatal; per-split errors are recorded, not raised


class InvalidParameter(ValueError):
    """Raised when a splitter or evaluation parameter is malformed."""
    pass


class FitFailure(RuntimeError):
    """Raised when a model cannot be fit or used to predict on a split."""
    pass


class SchemaMismatch(FitFailure):
    """Raised when prediction columns differ from the columns seen at fit time."""
    pass


class UndefinedMetric(ValueError):
    """Raised when a metric cannot be computed for a given assessment set."""
    pass


class ResampleFailureWarning(UserWarning):
    """Issued when resamples are excluded from an aggregate because they failed."""
    pass
