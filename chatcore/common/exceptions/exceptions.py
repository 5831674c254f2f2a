# chatcore/common/exceptions/exceptions.py
# =============================================================================
# Base exception hierarchy for chatcore
# =============================================================================

class ChatCoreException(Exception):
    """Base exception for chatcore"""
    pass


class PermissionDeniedError(ChatCoreException):
    """Raised when the caller is not authorized to perform an action"""

    def __init__(self, message: str = "user is not authorized to this action"):
        super().__init__(message)


class ValidationError(ChatCoreException):
    """Raised when input or a business rule is violated"""
    pass


class NotFoundError(ChatCoreException):
    """Raised when a resource is not found"""
    pass


class ConflictError(ChatCoreException):
    """Raised when there's a conflict (e.g., duplicate)"""
    pass


class InfrastructureError(ChatCoreException):
    """Raised for relational store or broker failures not mapped to a domain error"""
    pass


class CommitFailedError(InfrastructureError):
    """The transaction could not be committed"""
    pass


class DeadlineExceededError(InfrastructureError):
    """The operation did not finish before its deadline"""

    def __init__(self, timeout: float):
        super().__init__(f"operation deadline of {timeout:.3f}s exceeded")
        self.timeout = timeout


class NestedUnitOfWorkError(InfrastructureError):
    """A unit of work was opened while another one is active in the same task"""

    def __init__(self):
        super().__init__("nested units of work are not supported")


class PublishError(InfrastructureError):
    """An update could not be delivered to the broker"""

    def __init__(self, topic: str, key: str, reason: str):
        super().__init__(f"failed to publish update to '{topic}' (key={key}): {reason}")
        self.topic = topic
        self.key = key
