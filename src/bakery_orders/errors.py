class DomainError(Exception):
    """
    Base error of the order service. The HTTP layer turns it into a response
    with `status_code` and `detail`.
    """
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(DomainError):
    status_code = 404


class ForbiddenError(DomainError):
    status_code = 403


class BadRequestError(DomainError):
    status_code = 400
