class CafeHubError(Exception):
    status_code = 500

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    def to_dict(self):
        return {"error": self.message}


class ValidationError(CafeHubError):
    status_code = 400


class InvalidPagination(ValidationError):
    pass


class NotFound(CafeHubError):
    status_code = 404


class PermissionDenied(CafeHubError):
    status_code = 403


class ConflictError(CafeHubError):
    """Request clashes with existing state; nothing was changed."""
    status_code = 409


class SelfVoteDenied(ConflictError):
    pass


class StoreUnavailable(CafeHubError):
    # not retried here
    status_code = 503
