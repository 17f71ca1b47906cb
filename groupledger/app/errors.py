"""
errors.py — AppError hierarchy and error code registry.

Every error raised by the ledger engine, its store adapters and the HTTP
layer uses a code defined here. Do not raise strings or generic exceptions
from ledger, service or route code.

Three families sit under AppError:

  DataIntegrityError  — corrupt or inconsistent ledger data (split sums that
                        do not match, balance maps that do not net to zero,
                        mixed currencies). Non-retryable. Always carries the
                        id of the offending record when there is one.
  PolicyError         — an expected, user-facing refusal (step-up
                        verification missing, record already resolved,
                        self settlement, non-member). Non-retryable: the
                        caller re-prompts, it does not blindly retry.
  StoreError          — the backing store failed (transport, permission).
                        Retryable.
    ConflictError     — a compare-and-set on a settlement status lost the
                        race. Retryable, but only after a re-read.

Error codes are a versioned contract. Messages are prose and may change.
"""

from __future__ import annotations


class AppError(Exception):

    retryable_default: bool = False

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            retryable: bool | None = None,
            context: dict | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error
        self.retryable   = self.retryable_default if retryable is None else retryable
        self.context     = dict(context or {})

    def to_dict(self) -> dict:
        payload = {
            "code":      self.code,
            "message":   self.message,
            "retryable": self.retryable,
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


class DataIntegrityError(AppError):

    def __init__(
            self,
            code: str,
            message: str,
            record_id: str | None = None,
            http_status: int = 422,
            field: str | None = None,
    ) -> None:
        context = {"record_id": record_id} if record_id is not None else None
        super().__init__(code, message, http_status, field=field, context=context)
        self.record_id = record_id


class PolicyError(AppError):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int = 422,
            field: str | None = None,
            context: dict | None = None,
    ) -> None:
        super().__init__(code, message, http_status, field=field, context=context)


class StoreError(AppError):

    retryable_default = True

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int = 503,
            context: dict | None = None,
    ) -> None:
        super().__init__(code, message, http_status, context=context)


class ConflictError(StoreError):

    def __init__(self, message: str, settlement_id: str | None = None) -> None:
        super().__init__(
            ErrorCode.SETTLEMENT_CONFLICT,
            message,
            http_status=409,
            context={"settlement_id": settlement_id},
        )
        self.settlement_id = settlement_id


class SettlementConflict(Exception):
    """
    Raised by a store adapter when a status compare-and-set finds the record
    in a different status than expected. Internal signal between adapter and
    manager: the manager re-reads and re-evaluates, and only surfaces a
    ConflictError once its attempts are exhausted.
    """

    def __init__(self, settlement_id: str, expected: str, actual: str | None) -> None:
        super().__init__(
            f"Settlement {settlement_id} expected status {expected!r}, found {actual!r}."
        )
        self.settlement_id = settlement_id
        self.expected = expected
        self.actual = actual


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD                  = "MISSING_FIELD"
    INVALID_FIELD                  = "INVALID_FIELD"
    INVALID_AMOUNT                 = "INVALID_AMOUNT"
    INVALID_CURRENCY               = "INVALID_CURRENCY"
    INVALID_STATUS                 = "INVALID_STATUS"
    INVALID_PAYMENT_METHOD         = "INVALID_PAYMENT_METHOD"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    GROUP_NOT_FOUND                = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND              = "EXPENSE_NOT_FOUND"
    SETTLEMENT_NOT_FOUND           = "SETTLEMENT_NOT_FOUND"

    # ── Data Integrity (422) ───────────────────────────────────────────────
    SPLIT_SUM_MISMATCH             = "SPLIT_SUM_MISMATCH"
    EMPTY_SPLITS                   = "EMPTY_SPLITS"
    UNBALANCED_LEDGER              = "UNBALANCED_LEDGER"
    INVALID_BALANCE_AMOUNT         = "INVALID_BALANCE_AMOUNT"
    CURRENCY_MISMATCH              = "CURRENCY_MISMATCH"
    DUPLICATE_RECORD               = "DUPLICATE_RECORD"

    # ── Policy Errors (403 / 409 / 422) ────────────────────────────────────
    SELF_SETTLEMENT                = "SELF_SETTLEMENT"
    PAYER_NOT_MEMBER               = "PAYER_NOT_MEMBER"
    RECIPIENT_NOT_MEMBER           = "RECIPIENT_NOT_MEMBER"
    STEP_UP_VERIFICATION_REQUIRED  = "STEP_UP_VERIFICATION_REQUIRED"
    SETTLEMENT_ALREADY_RESOLVED    = "SETTLEMENT_ALREADY_RESOLVED"
    FORBIDDEN                      = "FORBIDDEN"

    # ── Store / Transport (409 / 503) ──────────────────────────────────────
    SETTLEMENT_CONFLICT            = "SETTLEMENT_CONFLICT"
    STORE_UNAVAILABLE              = "STORE_UNAVAILABLE"
    STORE_PERMISSION_DENIED        = "STORE_PERMISSION_DENIED"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    TOKEN_MISSING                  = "TOKEN_MISSING"
    TOKEN_INVALID                  = "TOKEN_INVALID"
    TOKEN_EXPIRED                  = "TOKEN_EXPIRED"

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR                 = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Settlement amount exceeds the payer's current outstanding debt.
    # Still recorded; pre-payment is valid.
    OVERPAYMENT = "OVERPAYMENT"

    # The proposed settlement needs step-up verification before it can be
    # confirmed. Informational at proposal time.
    STEP_UP_REQUIRED = "STEP_UP_REQUIRED"
