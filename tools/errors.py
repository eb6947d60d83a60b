class ReportError(Exception):
    """Base class for every failure raised by the report pipeline."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidInput(ReportError):
    """Submitted email was rejected before any job was created."""


class JobNotFound(ReportError):
    """No job exists for the requested id."""

    def __init__(self, job_id: str):
        super().__init__(f"Report not found: {job_id}")
        self.job_id = job_id


class StoreUnavailable(ReportError):
    """The job store could not be reached or rejected the operation."""


class EnrichmentError(ReportError):
    """Stage A failure reported by (or while talking to) the enrichment provider."""


class ProviderRateLimited(EnrichmentError):
    pass


class ProviderAuthFailed(EnrichmentError):
    pass


class ProviderBadRequest(EnrichmentError):
    pass


class ProviderNoData(EnrichmentError):
    pass


class ProviderEmptyResult(EnrichmentError):
    pass


class ProviderError(EnrichmentError):
    pass


class GenerationFailed(ReportError):
    """Stage B failure: the text-generation provider gave no usable report."""
