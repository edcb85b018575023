#!/usr/bin/env python3
"""
Pipeline tests: dataset construction from in-memory sources, Jira paging,
diff parsing and the pydriller commit source.

Usage:
    python -m pytest tests/test_pipeline.py -v
"""

import shutil
import sys
from pathlib import Path

import pandas as pd
import pytest

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# FAKE SOURCES
# =============================================================================

class FakeReleaseSource:
    def __init__(self, releases):
        self.releases = releases

    def get_releases(self, project_key):
        return list(self.releases)


class FakeTicketSource:
    def __init__(self, tickets):
        self.tickets = tickets

    def get_resolved_tickets(self, project_key):
        return list(self.tickets)


class FakeCommitSource:
    def __init__(self, commits):
        self.commits = commits

    def for_each_commit(self, project_key):
        return iter(self.commits)


RELEASES = [(f"2020-{m:02d}-01", f"r{m}") for m in (1, 3, 5, 7, 9, 11)]

TICKETS = [
    # OV=3, FV=5, IV=1 -> P = 2.0, window [1, 5)
    {'id': 10, 'created': '2020-04-01', 'resolved': '2020-08-01', 'affected_versions': ['r1']},
    # No AV: OV=2, FV=4, p = round(1 / 2.0) = 1 -> IV = OV, window [2, 4)
    {'id': 11, 'created': '2020-02-01', 'resolved': '2020-06-01', 'affected_versions': []},
    {'id': 12, 'created': 'sometime', 'resolved': '2020-06-01', 'affected_versions': []},
]


def make_commits():
    from defect_window.dataset import ChangeKind, CommitChange, EditStats
    from defect_window.extraction import CommitRecord

    return [
        CommitRecord("2020-01-10", "Initial import", has_parent=False, changes=[
            CommitChange("A.java", ChangeKind.ADD, EditStats(inserted=50), 1),
        ]),
        CommitRecord("2020-02-15", "Add parser", has_parent=True, changes=[
            CommitChange("A.java", ChangeKind.MODIFY, EditStats(inserted=10), 2),
            CommitChange("README.md", ChangeKind.MODIFY, EditStats(inserted=3), 2),
        ]),
        CommitRecord("2020-08-15T12:00:00", "PROJ-10 fix NPE in parser", has_parent=True, changes=[
            CommitChange("A.java", ChangeKind.MODIFY, EditStats(inserted=2, deleted=1), 1),
        ]),
        CommitRecord("2020-04-10", "proj-11 tweak defaults", has_parent=True, changes=[
            CommitChange("B.java", ChangeKind.MODIFY, EditStats(inserted=3, replaced=1), 1),
        ]),
        CommitRecord("yesterday", "PROJ-10 again", has_parent=True, changes=[
            CommitChange("C.java", ChangeKind.MODIFY, EditStats(inserted=1), 1),
        ]),
    ]


def build(releases=RELEASES, tickets=TICKETS, seed_paths=("A.java", "C.java")):
    from defect_window.extraction import build_dataset

    return build_dataset(
        "PROJ",
        release_source=FakeReleaseSource(releases),
        ticket_source=FakeTicketSource(tickets),
        commit_source=FakeCommitSource(make_commits()),
        seed_paths=seed_paths,
    )


# =============================================================================
# PIPELINE TESTS
# =============================================================================

def test_build_dataset_windows():
    """Tickets resolve through both phases; malformed ones are skipped"""
    from defect_window.tickets import TicketWindow

    dataset = build()

    assert dataset.resolver.windows == {
        10: TicketWindow(1, 5, 10),
        11: TicketWindow(2, 4, 11),
    }
    assert dataset.tickets_skipped == 1
    assert dataset.version_ceiling == 4


def test_build_dataset_rows():
    """Rows cover seeded, merged and retroactively labeled records"""
    dataset = build()
    df = dataset.to_dataframe()

    keys = list(zip(df['Version Number'], df['File Name']))
    assert keys == [
        (1, "A.java"), (1, "C.java"),
        (2, "A.java"), (2, "B.java"), (2, "C.java"),
        (3, "A.java"), (3, "B.java"), (3, "C.java"),
    ]

    buggy = set(k for k, b in zip(keys, df['Buggy']) if b == 'Yes')
    assert buggy == {(1, "A.java"), (2, "A.java"), (3, "A.java"), (2, "B.java"), (3, "B.java")}


def test_build_dataset_metrics():
    """Metrics land in the commit's release; the fix after the ceiling adds none"""
    dataset = build()
    df = dataset.to_dataframe().set_index(['Version Number', 'File Name'])

    a2 = df.loc[(2, "A.java")]
    assert a2['NumberRevisions'] == 1
    assert a2['LOC_Added'] == 10
    assert a2['Chg_Set_Size'] == 2
    assert a2['AVG_Chg_Set'] == 2
    assert a2['NumberBugFix'] == 0

    b3 = df.loc[(3, "B.java")]
    assert b3['NumberRevisions'] == 1
    assert b3['NumberBugFix'] == 1
    assert b3['LOC_Touched'] == 4
    assert b3['LOC_Added'] == 3

    # The version-5 record exists but is outside the dataset
    assert (5, "A.java") in dataset.accumulator
    assert dataset.accumulator.record(5, "A.java").number_revisions == 0


def test_build_dataset_excludes_ceiling_release():
    """A commit bucketed at the ceiling leaves no zero-metric row behind"""
    from defect_window.dataset import ChangeKind, CommitChange, EditStats
    from defect_window.extraction import CommitRecord, build_dataset

    late = CommitRecord("2020-06-15", "Add late feature", has_parent=True, changes=[
        CommitChange("Late.java", ChangeKind.MODIFY, EditStats(inserted=5), 1),
    ])
    dataset = build_dataset(
        "PROJ",
        release_source=FakeReleaseSource(RELEASES),
        ticket_source=FakeTicketSource([]),
        commit_source=FakeCommitSource([late]),
    )
    df = dataset.to_dataframe()

    # Bucketed into release 4 == version_ceiling, cutoff is 3
    assert dataset.timeline.index_at_or_before("2020-06-15") == dataset.version_ceiling
    assert len(df) == 0
    assert (df['Version Number'] <= dataset.timeline.scope_cutoff()).all()


def test_build_dataset_rows_within_cutoff():
    """Every emitted row belongs to a release at or below the scope cutoff"""
    dataset = build()
    df = dataset.to_dataframe()

    assert df['Version Number'].max() == dataset.timeline.scope_cutoff()
    assert (dataset.version_ceiling, "A.java") not in set(zip(df['Version Number'], df['File Name']))


def test_build_dataset_skips_bad_commits():
    """Root commits are ignored, undated commits are reported and skipped"""
    dataset = build()

    assert dataset.commits_processed == 3
    assert dataset.commits_skipped == 1
    # The undated commit touched nothing
    assert dataset.accumulator.record(1, "C.java").buggy == 0


def test_build_dataset_empty_timeline():
    """No releases aborts the project"""
    from defect_window.errors import EmptyTimelineError

    with pytest.raises(EmptyTimelineError):
        build(releases=[])


def test_project_dataset_to_csv(tmp_path):
    """CSV output keeps the column contract"""
    from defect_window.config import DATASET_COLUMNS

    path = build().to_csv(tmp_path / "out" / "PROJ_dataset.csv")
    df = pd.read_csv(path)

    assert list(df.columns) == DATASET_COLUMNS
    assert len(df) == 8
    assert set(df['Buggy']) == {'Yes', 'No'}


def test_diagnose_dataset():
    """Diagnostics summarize labels and ticket coverage"""
    from defect_window.diagnostics import diagnose_dataset

    report = diagnose_dataset(build())

    assert report['rows'] == 8
    assert report['files'] == 3
    assert report['buggy_ratio'] == pytest.approx(5 / 8)
    assert report['rows_per_version'] == {1: 2, 2: 3, 3: 3}
    assert 0 <= report['quality_score'] <= 100


def test_diagnose_dataset_report(capsys):
    """The report states the label verdict and one warning per issue"""
    from defect_window.diagnostics import diagnose_dataset

    report = diagnose_dataset(build())
    out = capsys.readouterr().out

    # 62.5% buggy rows is outside the expected range
    assert any('Buggy ratio' in issue for issue in report['issues'])
    assert f"Label quality: {report['quality_score']}/100 ({report['verdict']})" in out
    assert out.count("  WARNING: ") >= len(report['issues'])
    assert "FAIR" not in out

# =============================================================================
# MONTHLY FIXED TICKETS TESTS
# =============================================================================

def test_monthly_fixed_tickets():
    """Every month of history gets a row; referenced tickets count once"""
    from defect_window.config import MONTHLY_COLUMNS
    from defect_window.extraction import monthly_fixed_tickets

    df = monthly_fixed_tickets("PROJ", [10, 11, 99], make_commits())

    assert list(df.columns) == MONTHLY_COLUMNS
    # January to August 2020, the undated commit is skipped
    assert list(df['Month']) == [f"{m}/2020" for m in range(1, 9)]
    counts = dict(zip(df['Month'], df['Fixed issues']))
    assert counts["4/2020"] == 1
    assert counts["8/2020"] == 1
    assert sum(counts.values()) == 2


def test_monthly_fixed_tickets_latest_reference_wins():
    """A ticket referenced twice counts in the month of its latest commit"""
    from defect_window.extraction import CommitRecord, monthly_fixed_tickets

    commits = [
        CommitRecord("2021-03-02", "PROJ-7 first attempt", has_parent=True),
        CommitRecord("2021-01-20", "PROJ-70 unrelated", has_parent=True),
        CommitRecord("2021-05-30", "Revert and redo proj-7", has_parent=True),
    ]
    df = monthly_fixed_tickets("PROJ", [7], commits)
    counts = dict(zip(df['Month'], df['Fixed issues']))

    assert counts == {"1/2021": 0, "2/2021": 0, "3/2021": 0, "4/2021": 0, "5/2021": 1}


def test_monthly_fixed_tickets_no_commits():
    """No dated commits yields an empty table with the column contract"""
    from defect_window.config import MONTHLY_COLUMNS
    from defect_window.extraction import monthly_fixed_tickets

    df = monthly_fixed_tickets("PROJ", [1], [])

    assert list(df.columns) == MONTHLY_COLUMNS
    assert len(df) == 0


# =============================================================================
# DIFF PARSING TESTS
# =============================================================================

def test_edit_stats_from_diff():
    """Mixed runs are replacements, pure runs insertions or deletions"""
    from defect_window.extraction import edit_stats_from_diff

    diff = (
        "@@ -1,4 +1,5 @@\n"
        " package foo;\n"
        "-int a = 1;\n"
        "+int a = 2;\n"
        " int b;\n"
        "-int c;\n"
        "-int d;\n"
        " int e;\n"
        "+int f;\n"
        "+int g;\n"
    )
    stats = edit_stats_from_diff(diff)

    assert (stats.inserted, stats.deleted, stats.replaced) == (2, 2, 1)
    assert stats.loc_touched == 5


def test_edit_stats_from_diff_content_lines():
    """Lines that look like headers inside a hunk are still content"""
    from defect_window.extraction import edit_stats_from_diff

    diff = (
        "@@ -1,2 +1,1 @@\n"
        "--- a comment\n"
        "-+++ another\n"
        " kept\n"
        "\\ No newline at end of file\n"
    )
    stats = edit_stats_from_diff(diff)

    assert (stats.inserted, stats.deleted, stats.replaced) == (0, 2, 0)


def test_edit_stats_from_empty_diff():
    """Binary or empty diffs count nothing"""
    from defect_window.extraction import edit_stats_from_diff

    assert edit_stats_from_diff("").loc_touched == 0
    assert edit_stats_from_diff(None).loc_touched == 0


# =============================================================================
# JIRA TESTS
# =============================================================================

class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests
            raise requests.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Serves canned responses by URL suffix, search results page by page"""

    def __init__(self, project=None, pages=None, status_code=200):
        self.headers = {}
        self.project = project
        self.pages = list(pages or [])
        self.status_code = status_code
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        if url.endswith('/search'):
            return FakeResponse(self.pages.pop(0), self.status_code)
        return FakeResponse(self.project, self.status_code)


def test_parse_ticket_id():
    """Ticket keys map to their numeric id"""
    from defect_window.jira import parse_ticket_id

    assert parse_ticket_id("AVRO-1234") == 1234
    assert parse_ticket_id("MY-PROJ-7") == 7


def test_jira_get_releases():
    """Only versions with a release date are releases"""
    from defect_window.jira import JiraClient

    session = FakeSession(project={'versions': [
        {'name': '1.0', 'releaseDate': '2020-01-01'},
        {'name': '1.1'},
        {'name': '1.2', 'releaseDate': '2020-06-01'},
    ]})
    client = JiraClient(api_base='https://jira.example/rest/api/2', session=session)

    assert client.get_releases('AVRO') == [('2020-01-01', '1.0'), ('2020-06-01', '1.2')]
    assert session.calls[0][0] == 'https://jira.example/rest/api/2/project/AVRO'


def test_jira_get_resolved_tickets_pages():
    """Search results are paged until the total is reached"""
    from defect_window.jira import JiraClient

    def issue(key, versions):
        return {'key': key, 'fields': {
            'created': '2020-02-01T10:00:00.000+0000',
            'resolutiondate': '2020-07-01T10:00:00.000+0000',
            'versions': versions,
        }}

    session = FakeSession(pages=[
        {'total': 3, 'issues': [
            issue('AVRO-1', [{'name': '1.0', 'releaseDate': '2020-01-01'}, {'name': '2.0'}]),
            issue('AVRO-2', []),
        ]},
        {'total': 3, 'issues': [issue('AVRO-5', None)]},
    ])
    client = JiraClient(session=session)

    tickets = client.get_resolved_tickets('AVRO')

    assert [t['id'] for t in tickets] == [1, 2, 5]
    assert tickets[0]['affected_versions'] == ['1.0']
    assert tickets[2]['affected_versions'] == []
    assert tickets[0]['created'].startswith('2020-02-01')
    assert [params['startAt'] for _, params in session.calls] == [0, 2]
    assert 'project="AVRO"' in session.calls[0][1]['jql']
    assert session.calls[0][1]['fields'] == 'key,versions,resolutiondate,created'
    assert client.get_stats() == {'api_calls': 2, 'tickets_fetched': 3}


def test_jira_http_error_propagates():
    """HTTP failures surface as requests errors"""
    import requests
    from defect_window.jira import JiraClient

    client = JiraClient(session=FakeSession(project={}, status_code=404))
    with pytest.raises(requests.HTTPError):
        client.get_releases('NOPE')


def test_jira_client_init():
    """JiraClient should initialize without network access"""
    from defect_window.jira import JiraClient

    client = JiraClient()
    assert client.api_calls == 0
    assert client.session.headers['Accept'] == 'application/json'


# =============================================================================
# GIT SOURCE TESTS
# =============================================================================

@pytest.fixture
def git_repo(tmp_path):
    """Two-commit repository: add A.java + notes.txt, then fix A.java"""
    if shutil.which('git') is None:
        pytest.skip("git not available")

    from git import Actor, Repo

    repo = Repo.init(tmp_path / "repo")
    root = Path(repo.working_tree_dir)
    author = Actor("Dev", "dev@example.com")

    (root / "A.java").write_text("a\nb\nc\n")
    (root / "notes.txt").write_text("notes\n")
    repo.index.add(["A.java", "notes.txt"])
    repo.index.commit("Initial import", author=author, committer=author,
                      author_date="2020-01-10T12:00:00", commit_date="2020-01-10T12:00:00")

    (root / "A.java").write_text("a\nB\nc\nd\n")
    repo.index.add(["A.java"])
    repo.index.commit("PROJ-1 fix b", author=author, committer=author,
                      author_date="2020-02-10T12:00:00", commit_date="2020-02-10T12:00:00")

    return str(root)


def test_pydriller_commit_source(git_repo):
    """Commits come oldest first with per-file edit statistics"""
    from defect_window.dataset import ChangeKind
    from defect_window.extraction import PyDrillerCommitSource

    commits = list(PyDrillerCommitSource(git_repo, '.java').for_each_commit('PROJ'))

    assert [c.has_parent for c in commits] == [False, True]
    assert commits[1].message.startswith("PROJ-1")

    first = commits[0].changes
    assert [c.path for c in first] == ["A.java"]
    assert first[0].kind == ChangeKind.ADD
    assert first[0].edits.inserted == 3
    assert first[0].change_set_size == 2

    fix = commits[1].changes[0]
    assert fix.kind == ChangeKind.MODIFY
    assert (fix.edits.inserted, fix.edits.deleted, fix.edits.replaced) == (1, 0, 1)


def test_list_head_files(git_repo):
    """Seed paths are repo-relative and filtered by extension"""
    from defect_window.extraction import list_head_files

    assert list_head_files(git_repo, '.java') == ["A.java"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
