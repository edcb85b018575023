"""
Per-release, per-file metrics table with retroactive bug labels.
"""

import re
from dataclasses import dataclass, field, asdict
from enum import Enum

import pandas as pd

from .config import DATASET_COLUMNS, METRIC_COLUMNS, DERIVED_COLUMNS, TICKET_REFERENCE_TEMPLATE
from .errors import InconsistentKeyError
from .tickets import TicketWindow


class ChangeKind(Enum):
    ADD = 'add'
    MODIFY = 'modify'
    DELETE = 'delete'
    RENAME = 'rename'
    COPY = 'copy'
    UNKNOWN = 'unknown'


# Only changes to existing code can reveal a file that was buggy in older releases
BUGGY_PROPAGATING_KINDS = {ChangeKind.MODIFY, ChangeKind.DELETE}


@dataclass(frozen=True)
class EditStats:
    """Line counts of one file's diff, per kind of edit"""
    inserted: int = 0
    deleted: int = 0
    replaced: int = 0   # old-side lines of hunks that both remove and add

    @property
    def loc_added(self) -> int:
        return self.inserted

    @property
    def loc_touched(self) -> int:
        return self.inserted + self.deleted + self.replaced


@dataclass(frozen=True)
class CommitChange:
    """A single file changed by a commit"""
    path: str
    kind: ChangeKind
    edits: EditStats = field(default_factory=EditStats)
    change_set_size: int = 1    # files touched by the whole commit


@dataclass
class FileVersionRecord:
    """Metrics of one file in one release"""
    loc_touched: int = 0
    number_revisions: int = 0
    number_bug_fixes: int = 0
    loc_added: int = 0
    max_loc_added: int = 0
    chg_set_size: int = 0
    max_chg_set: int = 0
    buggy: int = 0

    @property
    def avg_chg_set(self) -> int:
        if self.number_revisions == 0:
            return 0
        return self.chg_set_size // self.number_revisions

    @property
    def avg_loc_added(self) -> int:
        if self.number_revisions == 0:
            return 0
        return self.loc_added // self.number_revisions

    def to_dict(self) -> dict:
        """Convert to dictionary, derived averages included"""
        d = asdict(self)
        d['avg_chg_set'] = self.avg_chg_set
        d['avg_loc_added'] = self.avg_loc_added
        return d


def referenced_ticket_ids(message: str, project_key: str, ticket_ids) -> list[int]:
    """
    Ids among `ticket_ids` that the commit message references, in id order.

    A reference is "<KEY>-<id>" as a whole word, in any case.
    """
    if not message:
        return []

    key = re.escape(project_key)
    matched = []
    for ticket_id in sorted(ticket_ids):
        pattern = TICKET_REFERENCE_TEMPLATE.format(key=key, ticket_id=ticket_id)
        if re.search(pattern, message, re.IGNORECASE):
            matched.append(ticket_id)
    return matched


def ticket_windows_for_commit(message: str, project_key: str, windows: dict) -> list[TicketWindow]:
    """Windows of every resolved ticket the commit message references (`windows`: id -> TicketWindow)"""
    return [windows[ticket_id] for ticket_id in referenced_ticket_ids(message, project_key, windows)]


class DatasetAccumulator:
    """
    Sparse table (version, path) -> FileVersionRecord.

    Records are created lazily; every mutation goes through ensure_record,
    merge_commit_change or propagate_buggy so that creation stays idempotent
    and the buggy flag never goes back to 0.
    """

    def __init__(self):
        self.records: dict[tuple[int, str], FileVersionRecord] = {}

    def __len__(self) -> int:
        return len(self.records)

    def __contains__(self, key) -> bool:
        return key in self.records

    def ensure_record(self, version: int, path: str) -> FileVersionRecord:
        """Create an empty record for (version, path) if missing"""
        key = (version, path)
        if key not in self.records:
            self.records[key] = FileVersionRecord()
        return self.records[key]

    def record(self, version: int, path: str) -> FileVersionRecord:
        try:
            return self.records[(version, path)]
        except KeyError:
            raise InconsistentKeyError("No record for file version", {'version': version, 'path': path}) from None

    def seed_files(self, paths, last_version: int):
        """Empty records for files known to exist, in versions 1..last_version"""
        for path in paths:
            for version in range(1, last_version + 1):
                self.ensure_record(version, path)

    def merge_commit_change(self, version: int, change: CommitChange,
                            ticket_windows: list[TicketWindow], version_ceiling: int) -> FileVersionRecord:
        """Add one commit's change to (version, change.path); no-op at or past the ceiling"""
        record = self.ensure_record(version, change.path)
        if version >= version_ceiling:
            return record

        loc_added = change.edits.loc_added
        chg_set = change.change_set_size

        record.loc_touched += change.edits.loc_touched
        record.number_revisions += 1
        record.loc_added += loc_added
        record.max_loc_added = max(record.max_loc_added, loc_added)
        record.chg_set_size += chg_set
        record.max_chg_set = max(record.max_chg_set, chg_set)

        if ticket_windows:
            record.number_bug_fixes += len(ticket_windows)
            record.buggy = 1

        return record

    def propagate_buggy(self, ticket_windows: list[TicketWindow], change: CommitChange, version_ceiling: int) -> int:
        """
        Label the changed file buggy in every release of each ticket's window.

        Returns the number of records touched.
        """
        if not ticket_windows or change.kind not in BUGGY_PROPAGATING_KINDS:
            return 0

        touched = 0
        for window in ticket_windows:
            for version in range(window.iv, min(window.fv, version_ceiling)):
                self.ensure_record(version, change.path).buggy = 1
                touched += 1
        return touched

    def rows(self, version_ceiling: int) -> list[dict]:
        """Output rows for releases below the ceiling, sorted by (version, path)"""
        rows = []
        for (version, path) in sorted(self.records):
            if version >= version_ceiling:
                continue
            record = self.records[(version, path)]
            values = record.to_dict()
            row = {'Version Number': version, 'File Name': path}
            for attr, column in METRIC_COLUMNS.items():
                row[column] = values[attr]
            for attr, column in DERIVED_COLUMNS.items():
                row[column] = values[attr]
            row['Buggy'] = 'Yes' if record.buggy else 'No'
            rows.append(row)
        return rows

    def to_dataframe(self, version_ceiling: int) -> pd.DataFrame:
        return pd.DataFrame(self.rows(version_ceiling), columns=DATASET_COLUMNS)
