from fastapi import HTTPException

# Error codes surfaced to callers, with the HTTP status each one is sent with
UNAUTHENTICATED = "unauthenticated"
PERMISSION_DENIED = "permission-denied"
RESOURCE_EXHAUSTED = "resource-exhausted"
FAILED_PRECONDITION = "failed-precondition"
INVALID_ARGUMENT = "invalid-argument"
ALREADY_EXISTS = "already-exists"
NOT_FOUND = "not-found"
INTERNAL = "internal"

STATUS_BY_CODE = {
    UNAUTHENTICATED: 401,
    PERMISSION_DENIED: 403,
    RESOURCE_EXHAUSTED: 429,
    FAILED_PRECONDITION: 400,
    INVALID_ARGUMENT: 400,
    ALREADY_EXISTS: 409,
    NOT_FOUND: 404,
    INTERNAL: 500,
}


class RewardError(HTTPException):
    """A definitive rejection of a ledger request.

    Raised anywhere inside a ledger transaction; aborts it with no field mutated.
    """

    def __init__(self, code: str, message: str):
        if code not in STATUS_BY_CODE:
            raise ValueError(f"Unknown error code: {code}")
        super().__init__(status_code=STATUS_BY_CODE[code], detail=message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"RewardError({self.code!r}, {self.message!r})"
