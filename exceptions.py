"""
Error types raised by the editorial service.

Only reference-integrity violations on write paths are surfaced as errors.
Scoring and compliance results are returned as data and never raise.
"""


class BlogPlatformError(Exception):
    """Base class for all service errors"""


class InvalidReference(BlogPlatformError):
    """A referenced content item, user or workflow does not exist"""

    def __init__(self, kind: str, ref_id=None):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"{kind} not found: {ref_id}")


class ValidationFailure(BlogPlatformError):
    """Malformed input on a write path"""
