"""
Exceptions raised while building a defect dataset.
"""


class DefectWindowError(Exception):
    """Base exception for all Defect Window errors"""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class MalformedDateError(DefectWindowError):
    """A ticket or commit date could not be parsed. Only that item is skipped."""


class EmptyTimelineError(DefectWindowError):
    """The project has no released versions. Fatal for the whole project."""


class InconsistentKeyError(DefectWindowError):
    """A (version, file) record was read before it was ever created"""


class MissingFieldError(DefectWindowError):
    """A ticket or commit lacks a field the dataset needs"""
