"""Template context builders for job alert and resume alert emails.

The dispatcher builds the context on its own thread and hands it to the
gateway inside a NotificationRequest. ``frontend_url`` is added by the
gateway at render time.
"""

from typing import Dict, Optional

from jobboard.domain.models import AlertSubscription, CandidateProfile, JobPost
from jobboard.matching.models import MatchResult
from jobboard.matching.utils import describe_criteria


def build_job_alert_metadata(
    job: JobPost, alert: AlertSubscription, match_result: MatchResult
) -> Dict:
    """Build the job alert template context.

    Returns:
        Dict with keys:
        - job_id, job_title, company_name, location, offered_salary, job_type
        - alert_id, alert_title
        - match_summary, matched_keywords
    """
    return {
        "job_id": job.id,
        "job_title": job.title,
        "company_name": job.company_name or "",
        "location": job.location.city or "",
        "offered_salary": job.offered_salary or "",
        "job_type": job.job_type or "",
        "alert_id": alert.id,
        "alert_title": alert.title,
        "match_summary": match_result.summary,
        "matched_keywords": list(match_result.matched_keywords),
    }


def build_resume_alert_metadata(
    profile: CandidateProfile,
    alert: AlertSubscription,
    match_result: MatchResult,
    score: Optional[float],
) -> Dict:
    """Build the resume alert template context.

    ``match_score`` is preformatted to one decimal ("82.5%"), or "N/A" when
    no score was computed.
    """
    return {
        "profile_id": profile.id,
        "candidate_name": profile.full_name,
        "candidate_headline": profile.headline,
        "alert_id": alert.id,
        "alert_title": alert.title,
        "match_score": f"{score:.1f}%" if score is not None else "N/A",
        "criteria": [{"label": label, "value": value} for label, value in describe_criteria(alert.criteria)],
        "match_summary": match_result.summary,
    }
