"""
Configuration and constants for Defect Window.
"""

import os

# =============================================================================
# PROJECT SETTINGS
# =============================================================================

DEFAULT_PROJECTS = [
    "AVRO",
    "BOOKKEEPER",
]

# Apache projects mirror their Jira key on GitHub (lowercased by git hosting)
GITHUB_CLONE_TEMPLATE = "https://github.com/apache/{name}.git"

# Only source files with this extension enter the dataset
FILE_EXTENSION = '.java'

# =============================================================================
# JIRA API SETTINGS
# =============================================================================

JIRA_API_BASE = os.environ.get('JIRA_API_BASE', 'https://issues.apache.org/jira/rest/api/2')
JIRA_PAGE_SIZE = 1000   # Jira caps search results per request
JIRA_TIMEOUT = 30
JIRA_TOKEN = os.environ.get('JIRA_TOKEN', '')

# Closed or resolved tickets whose resolution is "fixed"
JIRA_FIXED_BUGS_JQL = (
    'project="{project}" AND '
    '("status"="closed" OR "status"="resolved") AND "resolution"="fixed"'
)
JIRA_TICKET_FIELDS = 'key,versions,resolutiondate,created'

# =============================================================================
# TICKET / COMMIT LINKING
# =============================================================================

# Matches "AVRO-123" as a whole word, case-insensitive (KEY is re.escape'd)
TICKET_REFERENCE_TEMPLATE = r'\b{key}-{ticket_id}\b'

# =============================================================================
# DATASET COLUMNS
# =============================================================================

# Stored, accumulating metrics (record attribute -> column name)
METRIC_COLUMNS = {
    'loc_touched': 'LOC_Touched',
    'number_revisions': 'NumberRevisions',
    'number_bug_fixes': 'NumberBugFix',
    'loc_added': 'LOC_Added',
    'max_loc_added': 'MAX_LOC_Added',
    'chg_set_size': 'Chg_Set_Size',
    'max_chg_set': 'Max_Chg_Set',
}

# Derived at read time from the stored sums
DERIVED_COLUMNS = {
    'avg_chg_set': 'AVG_Chg_Set',
    'avg_loc_added': 'Avg_LOC_Added',
}

# Column order is a contract with the downstream ML dataset consumers
DATASET_COLUMNS = [
    'Version Number',
    'File Name',
    *METRIC_COLUMNS.values(),
    *DERIVED_COLUMNS.values(),
    'Buggy',
]

# Fixed tickets per month of commit history ("M/YYYY")
MONTHLY_COLUMNS = ['Month', 'Fixed issues']
