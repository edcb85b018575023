"""
Dataset diagnostics for assessing label quality.
"""

import numpy as np


def diagnose_dataset(dataset) -> dict:
    """Summarize a ProjectDataset's labels and ticket coverage"""
    print(f"\n{'='*60}")
    print(f"DATASET DIAGNOSTIC: {dataset.project}")
    print(f"{'='*60}")

    df = dataset.to_dataframe()
    ticket_stats = dataset.resolver.get_stats()

    rows = len(df)
    buggy = int((df['Buggy'] == 'Yes').sum()) if rows else 0
    buggy_ratio = buggy / max(rows, 1)
    files = df['File Name'].nunique() if rows else 0
    rows_per_version = df.groupby('Version Number').size().to_dict() if rows else {}
    avg_revisions = float(np.mean(df['NumberRevisions'])) if rows else 0.0

    tickets = max(ticket_stats['tickets'], 1)
    windows = ticket_stats['affected_versions'] + ticket_stats['proportion']
    window_ratio = windows / tickets
    av_ratio = ticket_stats['affected_versions'] / max(windows, 1)

    # Quality assessment
    quality_score = 0
    issues = []

    # Buggy ratio (ideal: 5-40%)
    if 0.05 <= buggy_ratio <= 0.40:
        quality_score += 25
    elif 0.01 <= buggy_ratio <= 0.60:
        quality_score += 15
    else:
        issues.append(f"Buggy ratio {buggy_ratio:.1%} outside ideal range (5-40%)")

    # Tickets that produced a usable window
    if window_ratio >= 0.75:
        quality_score += 25
    elif window_ratio >= 0.50:
        quality_score += 15
    else:
        issues.append(f"Only {window_ratio:.0%} of tickets produced a buggy window")

    # Windows backed by real affected versions rather than estimates
    if av_ratio >= 0.50:
        quality_score += 25
    elif av_ratio >= 0.25:
        quality_score += 15
    else:
        issues.append(f"Only {av_ratio:.0%} of windows come from affected versions - labels are mostly estimated")

    # Enough releases in scope
    in_scope = dataset.timeline.scope_cutoff()
    if in_scope >= 5:
        quality_score += 25
    elif in_scope >= 3:
        quality_score += 15
    else:
        issues.append(f"Only {in_scope} releases in scope - walk-forward evaluation will be thin")

    # Print report
    print(f"\nReleases: {len(dataset.timeline)} ({in_scope} in scope)")
    print(f"\nMetrics:")
    print(f"  Rows:                {rows:>5}")
    print(f"  Files:               {files:>5}")
    print(f"  Buggy rows:          {buggy:>5} ({buggy_ratio:.1%})")
    print(f"  Avg revisions/row:   {avg_revisions:>5.2f}")
    print(f"  Tickets:             {ticket_stats['tickets']:>5}")
    print(f"    from AV:           {ticket_stats['affected_versions']:>5}")
    print(f"    from proportion:   {ticket_stats['proportion']:>5}")
    print(f"    dropped:           {ticket_stats['dropped']:>5}")
    print(f"  Skipped tickets:     {dataset.tickets_skipped:>5}")
    print(f"  Skipped commits:     {dataset.commits_skipped:>5}")

    verdict = ("labels look reliable" if quality_score >= 75
               else "labels partly estimated, check the warnings" if quality_score >= 50
               else "labels too sparse or too estimated to trust")
    print(f"\nLabel quality: {quality_score}/100 ({verdict})")

    for issue in issues:
        print(f"  WARNING: {issue}")

    return {
        'quality_score': quality_score,
        'verdict': verdict,
        'rows': rows,
        'files': files,
        'buggy_ratio': buggy_ratio,
        'rows_per_version': rows_per_version,
        'window_ratio': window_ratio,
        'av_ratio': av_ratio,
        'issues': issues,
    }
