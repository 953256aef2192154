# foreclosure_staging/errors.py
"""Error taxonomy for ingestion runs and staging review."""


class StagingError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(StagingError):
    """Raised when process configuration is missing or invalid."""


# -- ingestion ---------------------------------------------------------------

class ConfigNotFound(StagingError):
    def __init__(self, config_id):
        super().__init__(f"Scraping config {config_id} not found")
        self.config_id = config_id


class RunInProgress(StagingError):
    def __init__(self, config_id):
        super().__init__(f"An ingestion run for config {config_id} is already in progress")
        self.config_id = config_id


class SourceFetchError(StagingError):
    """A page or candidate could not be fetched from the upstream source."""


class StoreWriteError(StagingError):
    """A write to the staging store or run log failed."""


class RunAborted(StagingError):
    """The run stopped before the source was exhausted (timeout or cancellation)."""


class RunLogError(StagingError):
    """A run log entry could not be transitioned (unknown or already closed)."""


# -- review ------------------------------------------------------------------

class ReviewError(StagingError):
    reason = "review_error"

    def __init__(self, staging_id, message=None):
        super().__init__(message or f"Staging record {staging_id}: {self.reason}")
        self.staging_id = staging_id


class NotFound(ReviewError):
    reason = "not_found"


class NotPending(ReviewError):
    reason = "not_pending"

    def __init__(self, staging_id, status=None):
        message = f"Staging record {staging_id} is not pending"
        if status:
            message += f" (status={status})"
        super().__init__(staging_id, message)
        self.status = status


class CatalogError(ReviewError):
    reason = "catalog_error"
