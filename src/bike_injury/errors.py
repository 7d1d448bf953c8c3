from typing import Optional


class PipelineError(Exception):
    """Fatal error raised by a cleaning or modeling stage.

    `stage` names the pipeline stage that failed. The stage runner fills it in
    when the raising function did not.
    """

    def __init__(self, message: str, *, stage: Optional[str] = None, column: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.column = column

    def __str__(self) -> str:
        prefix = f"[{self.stage}] " if self.stage else ""
        return f"{prefix}{self.message}"


class DatasetIOError(PipelineError, IOError):
    """Input file is unreadable or malformed."""


class SchemaError(PipelineError, ValueError):
    """An expected column is missing, unexpected, or mistyped."""


class MappingError(PipelineError, ValueError):
    """A categorical value is not covered by a collapsing rule."""


class IntegrityError(PipelineError, RuntimeError):
    """A post-stage invariant does not hold."""
