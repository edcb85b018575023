"""
Release timeline: released versions ordered by date, indexed 1..N.
"""

from dataclasses import dataclass
from datetime import date, datetime

from .errors import EmptyTimelineError, MalformedDateError


def parse_date(value) -> date:
    """Coerce a date, datetime or ISO string (time part ignored) to a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise MalformedDateError("Unsupported date value", {'value': repr(value)})

    # Jira sends "2020-02-01T10:15:00.000+0000", git tools may send "2020-02-01 10:15:00"
    day = value.strip().split('T')[0].split(' ')[0]
    try:
        return date.fromisoformat(day)
    except ValueError:
        raise MalformedDateError("Unparseable date", {'value': value}) from None


@dataclass(frozen=True)
class Release:
    """A release date bucket. Several names may ship on the same date."""
    date: date
    index: int
    names: tuple[str, ...] = ()


class ReleaseTimeline:
    """Released versions sorted by date, with dense indices starting at 1"""

    def __init__(self, releases: list[Release]):
        if not releases:
            raise EmptyTimelineError("Project has no released versions")
        self.releases = releases

    @classmethod
    def build(cls, releases) -> 'ReleaseTimeline':
        """
        Build the timeline from (date, name) pairs.

        Pairs sharing a date collapse into one bucket; names keep the order in
        which they were discovered. Raises EmptyTimelineError for no releases.
        """
        buckets: dict[date, list[str]] = {}
        for release_date, name in releases:
            names = buckets.setdefault(parse_date(release_date), [])
            if name not in names:
                names.append(name)

        ordered = [
            Release(date=day, index=i, names=tuple(buckets[day]))
            for i, day in enumerate(sorted(buckets), start=1)
        ]
        return cls(ordered)

    def __len__(self) -> int:
        return len(self.releases)

    def __iter__(self):
        return iter(self.releases)

    @property
    def last_index(self) -> int:
        return self.releases[-1].index

    def index_at_or_after(self, day) -> int:
        """Smallest index released on or after `day`; the last index if none is"""
        day = parse_date(day)
        for release in self.releases:
            if release.date >= day:
                return release.index
        return self.last_index

    def index_at_or_before(self, day) -> int:
        """
        Release bucket a commit made on `day` falls in.

        Scans forward chronologically and stops at the first release dated on
        or after `day`. Commits newer than the last release are clamped to it.
        """
        day = parse_date(day)
        index = 0
        for release in self.releases:
            index = release.index
            if release.date >= day:
                break
        return index

    def oldest_index_named(self, names, before) -> int:
        """Oldest release carrying one of `names` and dated strictly before `before`, else 0"""
        if not names:
            return 0
        wanted = set(names)
        before = parse_date(before)
        for release in self.releases:
            if release.date >= before:
                break
            if wanted.intersection(release.names):
                return release.index
        return 0

    def scope_cutoff(self) -> int:
        """Index of the last release in the first half of the history"""
        return len(self.releases) // 2

    def version_ceiling(self) -> int:
        """Exclusive upper bound for accumulating metrics"""
        return self.scope_cutoff() + 1
