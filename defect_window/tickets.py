"""
Injected/fixed version estimation for bug tickets.

Every ticket gets an opening version (OV, release active when it was filed)
and a fixed version (FV, release active when it was resolved). The injected
version (IV) comes from the ticket's affected-version list when that list
names a release older than the ticket; otherwise it is estimated with the
proportion method from the tickets resolved before it.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import NamedTuple

from .errors import MissingFieldError
from .timeline import ReleaseTimeline, parse_date


@dataclass(frozen=True)
class Ticket:
    """A fixed bug as reported by the tracker"""
    id: int
    created: date
    resolved: date
    affected_versions: tuple[str, ...] = ()

    @classmethod
    def from_fields(cls, fields: dict) -> 'Ticket':
        """
        Build a ticket from a TicketSource dict.

        Expects keys: id, created, resolved, affected_versions (may be empty).
        Raises MissingFieldError / MalformedDateError for unusable input.
        """
        for key in ('id', 'created', 'resolved'):
            if fields.get(key) in (None, ''):
                raise MissingFieldError("Ticket field missing", {'field': key, 'ticket': fields.get('id')})
        try:
            ticket_id = int(fields['id'])
        except (TypeError, ValueError):
            raise MissingFieldError("Ticket id is not an integer", {'id': fields['id']}) from None

        return cls(
            id=ticket_id,
            created=parse_date(fields['created']),
            resolved=parse_date(fields['resolved']),
            affected_versions=tuple(fields.get('affected_versions') or ()),
        )


class TicketWindow(NamedTuple):
    """Buggy window [iv, fv) of a resolved ticket"""
    iv: int
    fv: int
    ticket_id: int


@dataclass
class TicketResolution:
    """Outcome of resolving one ticket"""
    ticket_id: int
    ov: int
    fv: int
    iv: int = 0
    proportion: float | None = None
    method: str = 'pending'   # 'affected_versions', 'proportion', 'pending' or 'dropped'


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (round() would bank it)"""
    return math.floor(value + 0.5)


@dataclass
class ProportionEstimator:
    """
    Running proportion values used to estimate IV for tickets without usable AV.

    `proportions` holds (ticket_id, P) for tickets whose P was computed directly
    from their affected versions. `pending` holds (ticket_id, OV, FV) for the
    tickets waiting on an estimate.
    """
    proportions: list[tuple[int, float]] = field(default_factory=list)
    pending: list[tuple[int, int, int]] = field(default_factory=list)

    def record_direct(self, ticket_id: int, proportion: float):
        self.proportions.append((ticket_id, proportion))

    def defer(self, ticket_id: int, ov: int, fv: int):
        self.pending.append((ticket_id, ov, fv))

    def mean_proportion_before(self, ticket_id: int) -> float:
        """
        Moving proportion over tickets with a smaller id, 0 if there are none.

        NOTE: this is count / sum(P), the reciprocal of the arithmetic mean.
        The IV estimates downstream are calibrated on this value, so it must
        not be "corrected" to sum / count.
        """
        previous = [p for tid, p in self.proportions if tid < ticket_id]
        if not previous:
            return 0
        return len(previous) / sum(previous)

    def resolve_pending(self):
        """
        Estimate IV for every deferred ticket, in ascending ticket id.

        Yields (ticket_id, iv, fv, ov) for every ticket, with iv = 0 when the
        ticket cannot produce a window (FV == OV or IV >= FV).
        """
        for ticket_id, ov, fv in sorted(self.pending):
            if fv == ov:
                yield ticket_id, 0, fv, ov
                continue

            p = round_half_up(self.mean_proportion_before(ticket_id))
            if p > 0:
                iv = max(1, fv - (fv - ov) * p)
            else:
                # Simple method: the bug has been there since the ticket was opened
                iv = ov

            yield ticket_id, (iv if iv < fv else 0), fv, ov


class TicketResolver:
    """
    Resolves [IV, FV) windows for a project's tickets.

    Resolution is a two-phase pipeline: every ticket goes through the
    affected-version path first (which feeds the proportion estimator), then
    the deferred tickets are estimated in ascending id order.
    """

    def __init__(self, timeline: ReleaseTimeline, estimator: ProportionEstimator = None):
        self.timeline = timeline
        self.estimator = estimator or ProportionEstimator()
        self.windows: dict[int, TicketWindow] = {}    # ticket_id -> window
        self.resolutions: dict[int, TicketResolution] = {}

    def resolve(self, ticket: Ticket) -> TicketResolution:
        """Phase 1: resolve a ticket through its affected versions, or defer it"""
        ov = self.timeline.index_at_or_after(ticket.created)
        fv = self.timeline.index_at_or_after(ticket.resolved)
        iv = self.timeline.oldest_index_named(ticket.affected_versions, before=ticket.created)

        resolution = TicketResolution(ticket_id=ticket.id, ov=ov, fv=fv, iv=iv)
        self.resolutions[ticket.id] = resolution

        if iv == 0:
            self.estimator.defer(ticket.id, ov, fv)
            return resolution

        if fv != ov and fv != iv and iv < fv:
            proportion = (fv - iv) / (fv - ov)
            if proportion > 0:
                resolution.proportion = proportion
                self.estimator.record_direct(ticket.id, proportion)

        self._register(resolution, method='affected_versions')
        return resolution

    def resolve_pending(self) -> list[TicketResolution]:
        """Phase 2: proportion estimate for every deferred ticket"""
        resolved = []
        for ticket_id, iv, fv, ov in self.estimator.resolve_pending():
            resolution = self.resolutions.get(ticket_id) or TicketResolution(ticket_id=ticket_id, ov=ov, fv=fv)
            resolution.iv = iv
            self.resolutions[ticket_id] = resolution
            self._register(resolution, method='proportion')
            resolved.append(resolution)
        self.estimator.pending.clear()
        return resolved

    def resolve_all(self, tickets) -> dict[int, TicketWindow]:
        """Run both phases over `tickets` and return the accepted windows"""
        for ticket in sorted(tickets, key=lambda t: t.id):
            self.resolve(ticket)
        self.resolve_pending()
        return self.windows

    def _register(self, resolution: TicketResolution, method: str):
        """Keep the window only if IV < FV; anything else is dropped"""
        if 0 < resolution.iv < resolution.fv:
            resolution.method = method
            self.windows[resolution.ticket_id] = TicketWindow(resolution.iv, resolution.fv, resolution.ticket_id)
        else:
            resolution.method = 'dropped'

    def get_stats(self) -> dict:
        """Return resolution statistics"""
        methods = [r.method for r in self.resolutions.values()]
        return {
            'tickets': len(self.resolutions),
            'affected_versions': methods.count('affected_versions'),
            'proportion': methods.count('proportion'),
            'pending': methods.count('pending'),
            'dropped': methods.count('dropped'),
            'direct_proportions': len(self.estimator.proportions),
        }
