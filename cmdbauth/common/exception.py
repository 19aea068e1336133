from typing import Any, Optional


class CmdbAuthException(Exception):
    """Base class for all cmdbauth exceptions"""

    _msg_fmt = "An unknown exception occurred."

    def __init__(self, message: Optional[str] = None, **kwargs: Any):
        if not message:
            message = self._msg_fmt % kwargs

        self.context = kwargs
        super().__init__(message)


class NotFound(CmdbAuthException):
    _msg_fmt = "No %(table)s record found for %(field)s in %(ids)s."


class CountMismatch(NotFound):
    _msg_fmt = "Lookup of %(table)s by %(field)s in %(ids)s returned %(got)d records, expected %(expected)d."


class ParseError(CmdbAuthException):
    _msg_fmt = "Failed to parse %(kind)s record: %(reason)s"


class InconsistentTenant(CmdbAuthException):
    _msg_fmt = "Batch of %(kind)s spans multiple businesses: %(first)d and %(other)d."


class MissingRelation(CmdbAuthException):
    _msg_fmt = "%(kind)s %(name)s refers to %(relation)s %(target)s which could not be resolved."


class UpstreamError(CmdbAuthException):
    _msg_fmt = "Call to %(collaborator)s failed: %(reason)s"


class PermissionDenied(CmdbAuthException):
    _msg_fmt = "Action %(action)s on %(resource_type)s %(name)s (business %(business_id)d) denied: %(reason)s"


class RequestCancelled(UpstreamError):
    _msg_fmt = "Call to %(collaborator)s not made: %(reason)s"
