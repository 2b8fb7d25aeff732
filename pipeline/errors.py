"""
Error taxonomy shared by every pipeline stage.

Each rejection is a ``PipelineError`` subclass carrying the HTTP status, a
stable ``kind`` and the user-facing message/details. ``main.get_app`` renders
all of them into one envelope:

    {"success": false, "error": {"message": ..., "details": ...,
                                 "validationErrors": [...]}}
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class ValidationError:
    field: str
    message: str
    rejected_value: Any = None
    location: str = "body"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "field": self.field,
            "message": self.message,
            "value": self.rejected_value,
            "location": self.location,
        }


class PipelineError(Exception):
    status_code: int = 400
    kind: str = "BadRequest"
    default_message: str = "Bad request"

    def __init__(self, details: str = "", message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(f"{self.kind}: {self.message}")

    def body(self) -> Dict[str, Any]:
        return {"success": False, "error": {"message": self.message, "details": self.details}}


class ValidationFailure(PipelineError):
    status_code = 400
    kind = "ValidationFailure"
    default_message = "Invalid input data"

    def __init__(self, errors: Sequence[ValidationError], details: str = "Please correct the following errors") -> None:
        super().__init__(details)
        self.errors: List[ValidationError] = list(errors)

    def body(self) -> Dict[str, Any]:
        payload = super().body()
        payload["error"]["validationErrors"] = [e.to_dict() for e in self.errors]
        return payload


class InjectionDetected(PipelineError):
    status_code = 400
    kind = "InjectionDetected"
    default_message = "Potentially dangerous content detected"

    def __init__(self) -> None:
        super().__init__("Malicious code was detected in the submitted data")


class PayloadTooLarge(PipelineError):
    status_code = 413
    kind = "PayloadTooLarge"
    default_message = "Payload too large"

    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"The request body exceeds the limit of {max_bytes / 1024:g}KB")
        self.max_bytes = max_bytes


class UnsupportedContentType(PipelineError):
    status_code = 415
    kind = "UnsupportedContentType"
    default_message = "Unsupported content type"

    def __init__(self, allowed: Sequence[str]) -> None:
        super().__init__(f"One of the following content types is required: {', '.join(allowed)}")


class AccountInactive(PipelineError):
    status_code = 403
    kind = "AccountInactive"
    default_message = "Account deactivated"


class SessionExpiredByPolicy(PipelineError):
    status_code = 401
    kind = "SessionExpiredByPolicy"
    default_message = "Session expired due to inactivity"


class RateLimited(PipelineError):
    status_code = 429
    kind = "RateLimited"
    default_message = "Too many transactions"


class AmountPolicyExceeded(PipelineError):
    status_code = 400
    kind = "AmountPolicyExceeded"
    default_message = "Amount exceeds the allowed maximum"


class FinancialInconsistency(PipelineError):
    status_code = 400
    kind = "FinancialInconsistency"
    default_message = "Inconsistent financial data"


class PlanLimitExceeded(PipelineError):
    status_code = 400
    kind = "PlanLimitExceeded"
    default_message = "Plan limit exceeded"


class DuplicateTransaction(PipelineError):
    status_code = 409
    kind = "DuplicateTransaction"
    default_message = "Duplicate transaction"


class NotFound(PipelineError):
    status_code = 404
    kind = "NotFound"
    default_message = "Resource not found"

    def __init__(self, details: str = "The requested resource does not exist or you do not have access to it") -> None:
        super().__init__(details)


class InvalidCredentials(PipelineError):
    status_code = 401
    kind = "InvalidCredentials"
    default_message = "Invalid credentials"

    def __init__(self, details: str = "Incorrect email or password", message: Optional[str] = None) -> None:
        super().__init__(details, message)


# A business check returns None on pass, or the error that rejects the request.
RuleOutcome = Optional[PipelineError]
