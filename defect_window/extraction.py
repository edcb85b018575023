"""
Repository mining and dataset construction pipeline.
"""

import tempfile
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Protocol

import pandas as pd
from git import Repo
from pydriller import Git, ModificationType, Repository

from .config import FILE_EXTENSION, GITHUB_CLONE_TEMPLATE, MONTHLY_COLUMNS
from .dataset import (
    ChangeKind,
    CommitChange,
    DatasetAccumulator,
    EditStats,
    referenced_ticket_ids,
    ticket_windows_for_commit,
)
from .errors import MalformedDateError, MissingFieldError
from .jira import JiraClient
from .tickets import Ticket, TicketResolver
from .timeline import ReleaseTimeline, parse_date


# =============================================================================
# SOURCES
# =============================================================================

@dataclass
class CommitRecord:
    """A commit as handed to the dataset builder"""
    date: date | datetime | str
    message: str
    has_parent: bool
    changes: list[CommitChange] = field(default_factory=list)


class ReleaseSource(Protocol):
    def get_releases(self, project_key: str) -> list[tuple]: ...


class TicketSource(Protocol):
    def get_resolved_tickets(self, project_key: str) -> list[dict]: ...


class CommitSource(Protocol):
    def for_each_commit(self, project_key: str) -> Iterable[CommitRecord]: ...


CHANGE_KINDS = {
    ModificationType.ADD: ChangeKind.ADD,
    ModificationType.MODIFY: ChangeKind.MODIFY,
    ModificationType.DELETE: ChangeKind.DELETE,
    ModificationType.RENAME: ChangeKind.RENAME,
    ModificationType.COPY: ChangeKind.COPY,
}


def edit_stats_from_diff(diff: str) -> EditStats:
    """
    Count inserted, deleted and replaced lines of a unified diff.

    Each run of consecutive +/- lines is one edit: only "+" lines is an
    insertion, only "-" lines a deletion, both a replacement (counted on the
    old side).
    """
    inserted = deleted = replaced = 0
    removed_run = added_run = 0
    in_hunk = False

    def flush():
        nonlocal inserted, deleted, replaced, removed_run, added_run
        if removed_run and added_run:
            replaced += removed_run
        elif added_run:
            inserted += added_run
        elif removed_run:
            deleted += removed_run
        removed_run = added_run = 0

    for line in (diff or '').splitlines():
        if line.startswith('@@'):
            flush()
            in_hunk = True
        elif not in_hunk or line.startswith('\\'):
            continue
        elif line.startswith('-'):
            removed_run += 1
        elif line.startswith('+'):
            added_run += 1
        else:
            flush()
    flush()

    return EditStats(inserted=inserted, deleted=deleted, replaced=replaced)


class PyDrillerCommitSource:
    """Walk a local clone oldest-first and describe each commit's file changes"""

    def __init__(self, repo_path: str, file_extension: str = None, with_changes: bool = True):
        self.repo_path = str(repo_path)
        self.file_extension = file_extension
        self.with_changes = with_changes     # False skips diffing, for message-only walks
        self.commits_seen = 0

    def for_each_commit(self, project_key: str = None):
        for commit in Repository(self.repo_path).traverse_commits():
            self.commits_seen += 1
            modified = commit.modified_files if self.with_changes else []
            changes = []
            for mod in modified:
                path = mod.new_path or mod.old_path
                if self.file_extension and not path.endswith(self.file_extension):
                    continue
                changes.append(CommitChange(
                    path=path,
                    kind=CHANGE_KINDS.get(mod.change_type, ChangeKind.UNKNOWN),
                    edits=edit_stats_from_diff(mod.diff),
                    change_set_size=len(modified),
                ))

            yield CommitRecord(
                date=commit.committer_date,
                message=commit.msg,
                has_parent=bool(commit.parents),
                changes=changes,
            )


def clone_project(repo_url: str, dest) -> str:
    """Clone `repo_url` into `dest` and return the local path"""
    print(f"  Cloning {repo_url}...", flush=True)
    Repo.clone_from(repo_url, str(dest))
    return str(dest)


def list_head_files(repo_path: str, extension: str = FILE_EXTENSION) -> list[str]:
    """Repo-relative paths of the files with `extension` in the working tree"""
    root = Path(repo_path).resolve()
    files = []
    for f in Git(str(root)).files():
        if f.endswith(extension):
            files.append(Path(f).resolve().relative_to(root).as_posix())
    return sorted(files)


# =============================================================================
# DATASET
# =============================================================================

@dataclass
class ProjectDataset:
    """Everything computed for one project"""
    project: str
    timeline: ReleaseTimeline
    resolver: TicketResolver
    accumulator: DatasetAccumulator
    commits_processed: int = 0
    commits_skipped: int = 0
    tickets_skipped: int = 0

    @property
    def version_ceiling(self) -> int:
        return self.timeline.version_ceiling()

    def to_dataframe(self) -> pd.DataFrame:
        return self.accumulator.to_dataframe(self.version_ceiling)

    def to_csv(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        self.to_dataframe().to_csv(path, index=False)
        return path


def load_tickets(ticket_source: TicketSource, project_key: str) -> tuple[list[Ticket], int]:
    """Parse the tracker's tickets, skipping (and reporting) unusable ones"""
    tickets = []
    skipped = 0
    for fields in ticket_source.get_resolved_tickets(project_key):
        try:
            tickets.append(Ticket.from_fields(fields))
        except (MalformedDateError, MissingFieldError) as e:
            skipped += 1
            print(f"  WARNING: skipping ticket {fields.get('id')}: {e}", flush=True)
    return tickets, skipped


def build_dataset(project_key: str, release_source: ReleaseSource, ticket_source: TicketSource,
                  commit_source: CommitSource, seed_paths: Iterable[str] = None,
                  file_extension: str = FILE_EXTENSION) -> ProjectDataset:
    """
    Build the labeled per-release file dataset of one project.

    Order matters: the timeline comes first, every ticket goes through the
    affected-version phase before the proportion phase, and commits are
    consumed in the order the commit source yields them (oldest first).
    """
    print(f"\nProcessing: {project_key}", flush=True)

    # Raises EmptyTimelineError, which aborts the project
    timeline = ReleaseTimeline.build(release_source.get_releases(project_key))
    ceiling = timeline.version_ceiling()
    print(f"  {len(timeline)} releases, dataset covers versions 1-{timeline.scope_cutoff()}", flush=True)

    accumulator = DatasetAccumulator()
    if seed_paths:
        accumulator.seed_files(seed_paths, timeline.scope_cutoff())

    print(f"  Resolving tickets...", flush=True)
    tickets, tickets_skipped = load_tickets(ticket_source, project_key)
    resolver = TicketResolver(timeline)
    windows = resolver.resolve_all(tickets)
    stats = resolver.get_stats()
    print(f"  Tickets: {stats['affected_versions']} from affected versions, "
          f"{stats['proportion']} from proportion, {stats['dropped']} dropped", flush=True)

    dataset = ProjectDataset(project_key, timeline, resolver, accumulator, tickets_skipped=tickets_skipped)

    print(f"  Accumulating commit metrics...", flush=True)
    for commit in commit_source.for_each_commit(project_key):
        if not commit.has_parent:
            continue
        try:
            version = timeline.index_at_or_before(commit.date)
        except MalformedDateError as e:
            dataset.commits_skipped += 1
            print(f"  WARNING: skipping commit: {e}", flush=True)
            continue

        ticket_windows = ticket_windows_for_commit(commit.message, project_key, windows)
        for change in commit.changes:
            if not change.path.endswith(file_extension):
                continue
            accumulator.merge_commit_change(version, change, ticket_windows, ceiling)
            accumulator.propagate_buggy(ticket_windows, change, ceiling)
        dataset.commits_processed += 1

    df = dataset.to_dataframe()
    buggy = int((df['Buggy'] == 'Yes').sum())
    print(f"  Extracted: {len(df)} rows ({buggy} buggy, {len(df) - buggy} clean)", flush=True)
    return dataset


def extract_dataset(project_key: str, repo_url: str = None, jira: JiraClient = None,
                    file_extension: str = FILE_EXTENSION) -> ProjectDataset:
    """Clone the project's repository and build its dataset from Jira + git"""
    repo_url = repo_url or GITHUB_CLONE_TEMPLATE.format(name=project_key.lower())
    jira = jira or JiraClient()

    with tempfile.TemporaryDirectory() as workdir:
        repo_path = clone_project(repo_url, Path(workdir) / project_key.lower())
        dataset = build_dataset(
            project_key,
            release_source=jira,
            ticket_source=jira,
            commit_source=PyDrillerCommitSource(repo_path, file_extension),
            seed_paths=list_head_files(repo_path, file_extension),
            file_extension=file_extension,
        )

    stats = jira.get_stats()
    print(f"  Jira API: {stats['api_calls']} calls, {stats['tickets_fetched']} tickets", flush=True)
    return dataset


# =============================================================================
# FIXED TICKETS PER MONTH
# =============================================================================

def monthly_fixed_tickets(project_key: str, ticket_ids: Iterable[int],
                          commits: Iterable[CommitRecord]) -> pd.DataFrame:
    """
    Count fixed tickets per month of commit history.

    A ticket is counted once, in the month of the latest commit whose message
    references it. Every month from the first to the last commit gets a row,
    zero when nothing was fixed.
    """
    ticket_ids = set(ticket_ids)
    fixed_on = {}
    commit_days = []

    for commit in commits:
        try:
            day = parse_date(commit.date)
        except MalformedDateError as e:
            print(f"  WARNING: skipping commit: {e}", flush=True)
            continue
        commit_days.append(day)
        for ticket_id in referenced_ticket_ids(commit.message, project_key, ticket_ids):
            if ticket_id not in fixed_on or day > fixed_on[ticket_id]:
                fixed_on[ticket_id] = day

    if not commit_days:
        return pd.DataFrame(columns=MONTHLY_COLUMNS)

    months = pd.period_range(pd.Timestamp(min(commit_days)), pd.Timestamp(max(commit_days)), freq='M')
    fixed_months = pd.to_datetime(list(fixed_on.values())).to_period('M')
    counts = pd.Series(fixed_months).value_counts().reindex(months, fill_value=0)

    print(f"  {len(fixed_on)}/{len(ticket_ids)} fixed tickets referenced by a commit", flush=True)
    return pd.DataFrame({
        MONTHLY_COLUMNS[0]: [f"{m.month}/{m.year}" for m in months],
        MONTHLY_COLUMNS[1]: counts.astype(int).to_numpy(),
    })


def extract_monthly_fixed_tickets(project_key: str, repo_url: str = None,
                                  jira: JiraClient = None) -> pd.DataFrame:
    """Clone the project's repository and count its Jira fixed tickets per month"""
    repo_url = repo_url or GITHUB_CLONE_TEMPLATE.format(name=project_key.lower())
    jira = jira or JiraClient()

    print(f"\nCounting fixed tickets per month: {project_key}", flush=True)
    ticket_ids = [fields['id'] for fields in jira.get_resolved_tickets(project_key)]

    with tempfile.TemporaryDirectory() as workdir:
        repo_path = clone_project(repo_url, Path(workdir) / project_key.lower())
        commits = PyDrillerCommitSource(repo_path, with_changes=False)
        return monthly_fixed_tickets(project_key, ticket_ids, commits.for_each_commit(project_key))
