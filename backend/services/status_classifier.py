"""Bucket Redmine issues into New / In Progress / Closed counts."""

from dataclasses import dataclass

# Redmine's built-in status ids
NEW_STATUS_IDS = {1}
IN_PROGRESS_STATUS_IDS = {2}

NEW_STATUS_NAMES = {"new"}
IN_PROGRESS_STATUS_NAMES = {"in progress", "inprogress", "testing"}


@dataclass(frozen=True)
class IssueCounts:
    assigned: int
    new: int
    in_progress: int
    closed: int


def _status(issue: dict) -> tuple:
    status = issue.get("status") or {}
    name = str(status.get("name") or "").strip().lower()
    return status.get("id"), name


def is_new(issue: dict) -> bool:
    status_id, name = _status(issue)
    return status_id in NEW_STATUS_IDS or name in NEW_STATUS_NAMES


def is_in_progress(issue: dict) -> bool:
    status_id, name = _status(issue)
    return status_id in IN_PROGRESS_STATUS_IDS or name in IN_PROGRESS_STATUS_NAMES


def classify(issues: list, closed_issues: list) -> IssueCounts:
    """Count issues per bucket.

    The closed count comes from the separately fetched closed list, not from
    the statuses in ``issues``. ``assigned`` is the sum of the three buckets.
    """
    new_count = sum(1 for issue in issues if is_new(issue))
    in_progress_count = sum(1 for issue in issues if is_in_progress(issue))
    closed_count = len(closed_issues)

    return IssueCounts(
        assigned=new_count + in_progress_count + closed_count,
        new=new_count,
        in_progress=in_progress_count,
        closed=closed_count,
    )
