"""
Jira REST integration for released versions and fixed tickets.
"""

import requests

from .config import (
    JIRA_API_BASE,
    JIRA_PAGE_SIZE,
    JIRA_TIMEOUT,
    JIRA_TOKEN,
    JIRA_FIXED_BUGS_JQL,
    JIRA_TICKET_FIELDS,
)


def parse_ticket_id(key: str) -> int:
    """Numeric part of a ticket key: 'AVRO-1234' -> 1234"""
    return int(key.rsplit('-', 1)[-1])


def released_version_names(versions: list) -> list[str]:
    """Names of the affected versions that actually have a release date"""
    return [v['name'] for v in versions or [] if 'releaseDate' in v and 'name' in v]


class JiraClient:
    """Fetch released versions and fixed tickets of a Jira project"""

    def __init__(self, api_base: str = JIRA_API_BASE, session: requests.Session = None):
        self.api_base = api_base.rstrip('/')
        self.api_calls = 0
        self.tickets_fetched = 0

        # Reuse a caller-provided session if given, otherwise create a new one
        if session:
            self.session = session
        else:
            self.session = requests.Session()
            if JIRA_TOKEN:
                self.session.headers['Authorization'] = f'Bearer {JIRA_TOKEN}'
            self.session.headers['Accept'] = 'application/json'
            self.session.headers['User-Agent'] = 'Defect-Window'

    def _get(self, path: str, params: dict = None) -> dict:
        resp = self.session.get(f'{self.api_base}/{path}', params=params, timeout=JIRA_TIMEOUT)
        self.api_calls += 1
        resp.raise_for_status()
        return resp.json()

    def get_releases(self, project_key: str) -> list[tuple[str, str]]:
        """(release date, name) of every version with a release date"""
        data = self._get(f'project/{project_key}')
        releases = []
        for version in data.get('versions', []):
            if 'releaseDate' in version and 'name' in version:
                releases.append((version['releaseDate'], version['name']))
        return releases

    def get_resolved_tickets(self, project_key: str) -> list[dict]:
        """
        Every closed/resolved ticket with resolution "fixed".

        Returns dicts with: id, created, resolved, affected_versions.
        Results are paged, JIRA_PAGE_SIZE at a time.
        """
        tickets = []
        start_at = 0
        total = 1

        while start_at < total:
            data = self._get('search', params={
                'jql': JIRA_FIXED_BUGS_JQL.format(project=project_key),
                'fields': JIRA_TICKET_FIELDS,
                'startAt': start_at,
                'maxResults': JIRA_PAGE_SIZE,
            })
            total = data.get('total', 0)
            issues = data.get('issues', [])
            if not issues:
                break

            for issue in issues:
                fields = issue.get('fields', {})
                tickets.append({
                    'id': parse_ticket_id(issue['key']),
                    'created': fields.get('created'),
                    'resolved': fields.get('resolutiondate'),
                    'affected_versions': released_version_names(fields.get('versions')),
                })
            start_at += len(issues)

        self.tickets_fetched += len(tickets)
        return tickets

    def get_stats(self) -> dict:
        """Return API usage statistics"""
        return {
            'api_calls': self.api_calls,
            'tickets_fetched': self.tickets_fetched,
        }
