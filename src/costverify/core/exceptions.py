class CostVerifyError(Exception):
    """Base exception for costverify."""

    pass


class InvalidSpec(CostVerifyError, ValueError):
    """Raised when a QuerySpec cannot be compiled into PromQL."""

    pass


class TransportError(CostVerifyError):
    """Raised when Prometheus or the allocation API cannot be reached or answers with a failure."""

    pass


class MalformedSample(CostVerifyError, ValueError):
    """Raised when a sample value is not a finite decimal number."""

    pass


class DegenerateInterval(CostVerifyError):
    """Raised when a resource interval has no positive duration."""

    pass
