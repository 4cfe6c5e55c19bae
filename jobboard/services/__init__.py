"""Write services: the authorized writes that publish post-commit events."""

from .job_posts import IMMUTABLE_FIELDS, JobPostService
from .profiles import CandidateProfileService

__all__ = [
    "JobPostService",
    "CandidateProfileService",
    "IMMUTABLE_FIELDS",
]
