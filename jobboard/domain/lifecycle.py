"""Job post status transitions.

Only the first transition into Published fires alert dispatch. A post that
was closed because it ran out of positions and is later reopened does not
re-fire, and neither does saving an already published post.
"""

from typing import Optional

from .models import JobStatus


def fires_publication(previous: Optional[JobStatus], current: JobStatus) -> bool:
    """Whether a write moving a job from ``previous`` to ``current`` publishes it.

    ``previous`` is None for a newly created post.

    Example:
        >>> fires_publication(None, JobStatus.PUBLISHED)
        True
        >>> fires_publication(JobStatus.CLOSED, JobStatus.PUBLISHED)
        False
    """
    return current == JobStatus.PUBLISHED and previous in (None, JobStatus.DRAFT)


def status_after_positions_change(status: JobStatus, positions_remaining: int) -> JobStatus:
    """Status a post should have after its open position count changes.

    Drafts are left alone. A published post with no positions left closes,
    and a closed post that regains open positions goes back to Published.
    """
    if status == JobStatus.DRAFT:
        return status
    if positions_remaining <= 0:
        return JobStatus.CLOSED
    if status == JobStatus.CLOSED:
        return JobStatus.PUBLISHED
    return status
