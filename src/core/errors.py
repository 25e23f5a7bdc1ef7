"""Error taxonomy for the refresh pipeline and the API surface."""


class MetricsError(Exception):
    """Base class for all metrics service errors."""


class FetchFailure(MetricsError):
    """A source could not be fetched; the pipeline moves on to the next one."""

    def __init__(self, url: str, reason: str, attempts: int = 1):
        super().__init__(f"Fetching {url} failed after {attempts} attempt(s): {reason}")
        self.url = url
        self.reason = reason
        self.attempts = attempts


class ValidationRejected(MetricsError):
    """A record extracted from a source failed the strict (cache-admission) check."""

    def __init__(self, source: str, errors: list[str]):
        super().__init__(f"Record from {source!r} rejected: {'; '.join(errors) or 'not sanitizable'}")
        self.source = source
        self.errors = errors


class MetricsUnavailableError(MetricsError):
    """No servable record exists and a refresh did not produce one."""
