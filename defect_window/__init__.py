"""
Defect Window - Buggy Release Labeling from Ticket History
==========================================================

Builds a per-release, per-file dataset of change metrics labeled buggy/clean.

Key insight: a bug is not only buggy in the release that fixes it. Each ticket's
[injected version, fixed version) window is estimated from its affected
versions, or with the proportion method when those are missing, and every file
the fix touches is labeled buggy across that whole window.
"""

from .config import (
    DEFAULT_PROJECTS,
    FILE_EXTENSION,
    DATASET_COLUMNS,
)

from .errors import (
    DefectWindowError,
    MalformedDateError,
    MissingFieldError,
    EmptyTimelineError,
    InconsistentKeyError,
)

from .timeline import (
    Release,
    ReleaseTimeline,
    parse_date,
)

from .tickets import (
    Ticket,
    TicketWindow,
    TicketResolution,
    ProportionEstimator,
    TicketResolver,
)

from .dataset import (
    ChangeKind,
    EditStats,
    CommitChange,
    FileVersionRecord,
    DatasetAccumulator,
    referenced_ticket_ids,
    ticket_windows_for_commit,
)

from .jira import JiraClient

from .extraction import (
    CommitRecord,
    PyDrillerCommitSource,
    ProjectDataset,
    build_dataset,
    extract_dataset,
    edit_stats_from_diff,
    monthly_fixed_tickets,
    extract_monthly_fixed_tickets,
)

from .diagnostics import diagnose_dataset

__version__ = "0.1.0"

__all__ = [
    # Config
    "DEFAULT_PROJECTS",
    "FILE_EXTENSION",
    "DATASET_COLUMNS",
    # Errors
    "DefectWindowError",
    "MalformedDateError",
    "MissingFieldError",
    "EmptyTimelineError",
    "InconsistentKeyError",
    # Timeline
    "Release",
    "ReleaseTimeline",
    "parse_date",
    # Tickets
    "Ticket",
    "TicketWindow",
    "TicketResolution",
    "ProportionEstimator",
    "TicketResolver",
    # Dataset
    "ChangeKind",
    "EditStats",
    "CommitChange",
    "FileVersionRecord",
    "DatasetAccumulator",
    "referenced_ticket_ids",
    "ticket_windows_for_commit",
    # Jira
    "JiraClient",
    # Extraction
    "CommitRecord",
    "PyDrillerCommitSource",
    "ProjectDataset",
    "build_dataset",
    "extract_dataset",
    "edit_stats_from_diff",
    "monthly_fixed_tickets",
    "extract_monthly_fixed_tickets",
    # Diagnostics
    "diagnose_dataset",
]
