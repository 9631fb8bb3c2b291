"""
Error taxonomy.

Share link failures are user-visible and terminal for the session.
TrackingFailure and FetchFailure never reach a viewer: tracking drops the
write, analytics degrades to a zeroed summary.
"""


class ShareLinkError(Exception):
    """Base for access-guard failures. Carries the HTTP mapping."""
    code = "link_invalid"
    status_code = 404
    message = "Invalid or expired share link"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)


class LinkInvalid(ShareLinkError):
    code = "link_invalid"
    status_code = 404
    message = "Invalid or expired share link"


class LinkExpired(ShareLinkError):
    code = "link_expired"
    status_code = 410
    message = "This share link has expired"


class LinkExhausted(ShareLinkError):
    code = "link_exhausted"
    status_code = 403
    message = "This share link has reached its view limit"


class TrackingFailure(Exception):
    """A view record could not be created or updated."""


class FetchFailure(Exception):
    """View records could not be read for aggregation."""


class DemoNotFound(Exception):
    """No demo the caller may see. Private demos answer the same way."""
    code = "not_found"
    status_code = 404
    message = "Demo not found"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
