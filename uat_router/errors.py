"""
Error taxonomy for the UAT Routing Service.

Parse failures of the model output are deliberately absent: they surface
as a regular routing result with ``routing.tag == "PARSE_ERROR"``.
"""


class RoutingError(Exception):
    """Base exception for routing pipeline errors."""
    pass


class NotFoundError(RoutingError):
    """The requested work item does not exist or its id is unusable."""
    pass


class UpstreamError(RoutingError):
    """The work item tracker or the completion endpoint failed."""
    pass


class IdentityError(RoutingError):
    """Authentication against the identity directory failed."""
    pass
