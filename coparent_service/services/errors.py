from fastapi import HTTPException


class ExpenseValidationError(HTTPException):
    """Caller input failed a precondition; not retryable"""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


class NotFoundError(HTTPException):
    def __init__(self, detail: str = "not-found"):
        super().__init__(status_code=404, detail=detail)


class AlreadyProcessedError(HTTPException):
    """The expense is no longer in the state the action expects"""

    def __init__(self, detail: str = "already-processed"):
        super().__init__(status_code=400, detail=detail)


class StaleExpenseError(HTTPException):
    def __init__(self, detail: str = "Expense was modified by another request"):
        super().__init__(status_code=409, detail=detail)


class PermissionDeniedError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(status_code=403, detail=detail)


class DependencyFailure(HTTPException):
    """
    An audit, messaging or notification call failed.

    Raised by the collaborators themselves; callers that already committed a
    status change log it and carry on instead of rolling back.
    """

    def __init__(self, dependency: str, detail: str):
        self.dependency = dependency
        super().__init__(status_code=502, detail=f"{dependency}: {detail}")
