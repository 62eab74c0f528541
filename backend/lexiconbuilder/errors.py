"""Exception types shared across the pipeline.

Per-job and per-record failures are caught by the stages and recorded in
manifests or logs; the errors below that escape a stage are fatal and make
the CLI exit non-zero.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline errors."""


class MissingArtifactError(PipelineError):
    """A required upstream directory, manifest or data file does not exist."""

    def __init__(self, path: object, what: str = "artifact") -> None:
        self.path = path
        super().__init__(f"Missing {what}: {path}")


class ParseInputError(PipelineError):
    """A parser received content when it expected a stream, or the reverse."""


class FetchHTTPError(PipelineError):
    """Non-2xx HTTP response while fetching a job."""

    def __init__(self, status: int, reason: str = "") -> None:
        self.status = status
        self.reason = reason
        super().__init__(f"HTTP {status} {reason}".rstrip())

    @property
    def retryable(self) -> bool:
        return self.status == 429 or 500 <= self.status <= 599


class EmptyResponseError(PipelineError):
    """A fetch returned zero bytes."""


class ExtractionError(PipelineError):
    """Structured LLM extraction failed (provider error, bad JSON, or rejected by the validator)."""


class SchemaOrderError(PipelineError):
    """The schema dependency graph has an unknown reference or a cycle."""
