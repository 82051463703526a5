"""Browser-driven scrape job pipeline."""

from .jobs import JobRequest, JobStatus
from .sources import get_source_definition, list_job_types

__all__ = ["JobRequest", "JobStatus", "get_source_definition", "list_job_types"]
