"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the RoomLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Error kinds:
  ValidationError        400/422  malformed input or a rule the input breaks
  AuthorizationError     403      caller is known but not allowed
  NotFoundError          404      unknown room / settlement / event / participant
  ConflictError          409      duplicate pending settlement, double resolution
  LedgerArithmeticError  500      stored amounts disagree with each other

401 (unauthenticated) and 403 (unauthorized) are never swapped: the auth
middleware raises 401, services raise 403.
"""

from __future__ import annotations


class AppError(Exception):

    http_status: int = 500

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int | None = None,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status if http_status is not None else type(self).http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationError(AppError):
    """Input the ledger refuses. Not to be confused with marshmallow's ValidationError."""
    http_status = 422


class AuthorizationError(AppError):
    http_status = 403


class NotFoundError(AppError):
    http_status = 404


class ConflictError(AppError):
    http_status = 409


class LedgerArithmeticError(AppError, ArithmeticError):
    """Stored amounts are inconsistent. Always a data problem, never user input."""
    http_status = 500


# ── Error Code Registry ────────────────────────────────────────────────────
#
# These are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD                = "MISSING_FIELD"
    INVALID_FIELD                = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION     = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_TYPE           = "INVALID_SPLIT_TYPE"
    INVALID_PAYMENT_METHOD       = "INVALID_PAYMENT_METHOD"
    INVALID_EVENT_ROLE           = "INVALID_EVENT_ROLE"
    CUSTOM_AMOUNTS_SENT_FOR_EQUAL = "CUSTOM_AMOUNTS_SENT_FOR_EQUAL"
    DUPLICATE_PARTICIPANT        = "DUPLICATE_PARTICIPANT"

    # ── Ledger Rule Violations (422) ──────────────────────────────────────
    EMPTY_PARTICIPANTS           = "EMPTY_PARTICIPANTS"
    NON_POSITIVE_AMOUNT          = "NON_POSITIVE_AMOUNT"
    CUSTOM_AMOUNTS_MISMATCH      = "CUSTOM_AMOUNTS_MISMATCH"
    CUSTOM_SUM_EXCEEDS_TOTAL     = "CUSTOM_SUM_EXCEEDS_TOTAL"
    CREATOR_IN_PARTICIPANTS      = "CREATOR_IN_PARTICIPANTS"
    CREATOR_CANNOT_SETTLE        = "CREATOR_CANNOT_SETTLE"
    NO_OUTSTANDING_BALANCE       = "NO_OUTSTANDING_BALANCE"
    PARTICIPANT_NOT_EVENT_MEMBER = "PARTICIPANT_NOT_EVENT_MEMBER"
    INVALID_DATE_RANGE           = "INVALID_DATE_RANGE"
    LAST_EVENT_OWNER             = "LAST_EVENT_OWNER"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    PENDING_SETTLEMENT_EXISTS    = "PENDING_SETTLEMENT_EXISTS"
    SETTLEMENT_ALREADY_RESOLVED  = "SETTLEMENT_ALREADY_RESOLVED"
    ALREADY_EVENT_MEMBER         = "ALREADY_EVENT_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND               = "USER_NOT_FOUND"
    ROOM_NOT_FOUND               = "ROOM_NOT_FOUND"
    PARTICIPANT_NOT_FOUND        = "PARTICIPANT_NOT_FOUND"
    SETTLEMENT_NOT_FOUND         = "SETTLEMENT_NOT_FOUND"
    EVENT_NOT_FOUND              = "EVENT_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    TOKEN_MISSING                = "TOKEN_MISSING"          # 401
    TOKEN_INVALID                = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED                = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                    = "FORBIDDEN"              # 403
    NOT_ROOM_CREATOR             = "NOT_ROOM_CREATOR"       # 403
    NOT_EVENT_OWNER              = "NOT_EVENT_OWNER"        # 403

    # ── Data Integrity (500) ───────────────────────────────────────────────
    SHARE_SUM_MISMATCH           = "SHARE_SUM_MISMATCH"
    NET_BALANCE_MISMATCH         = "NET_BALANCE_MISMATCH"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR               = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Submitted or approved amount is larger than the payer's remaining
    # balance. Still recorded; aggregation clamps outstanding at zero.
    OVERPAYMENT = "OVERPAYMENT"
