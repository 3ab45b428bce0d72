from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CashValidationIssue:
    field: str
    reason: str


@dataclass(frozen=True)
class CashValidationResult:
    ok: bool
    issues: list[CashValidationIssue]


class CashValidationError(ValueError):
    def __init__(self, issues: list[CashValidationIssue]) -> None:
        self.issues = issues
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if not self.issues:
            return "Validation failed"
        issue = self.issues[0]
        return f"{issue.field}: {issue.reason}"


def _require_int(value: object, field: str, issues: list[CashValidationIssue]) -> bool:
    if value is None:
        issues.append(CashValidationIssue(field=field, reason="is required"))
        return False
    if isinstance(value, bool) or not isinstance(value, int):
        issues.append(CashValidationIssue(field=field, reason="must be an integer amount in minor units"))
        return False
    return True


def _require_positive_amount(value: object, field: str, issues: list[CashValidationIssue]) -> None:
    if _require_int(value, field, issues) and value <= 0:  # type: ignore[operator]
        issues.append(CashValidationIssue(field=field, reason="must be greater than 0"))


def _require_non_negative_amount(value: object, field: str, issues: list[CashValidationIssue]) -> None:
    if _require_int(value, field, issues) and value < 0:  # type: ignore[operator]
        issues.append(CashValidationIssue(field=field, reason="must be >= 0"))


def _require_non_empty(value: str | None, field: str, issues: list[CashValidationIssue]) -> None:
    if value is None or not value.strip():
        issues.append(CashValidationIssue(field=field, reason="is required"))


def validate_opening_balance(opening_balance: int, cashier_id: str | None) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    _require_non_negative_amount(opening_balance, "opening_balance", issues)
    _require_non_empty(cashier_id, "cashier_id", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def validate_sale_amount(amount: int, reference: str | None) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    _require_positive_amount(amount, "amount", issues)
    _require_non_empty(reference, "reference", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def validate_cash_movement(amount: int, description: str | None) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    _require_positive_amount(amount, "amount", issues)
    _require_non_empty(description, "description", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def validate_counted_cash(counted: int | None) -> CashValidationResult:
    issues: list[CashValidationIssue] = []
    if counted is not None:
        _require_non_negative_amount(counted, "counted_amount", issues)
    return CashValidationResult(ok=not issues, issues=issues)


def ensure_valid(result: CashValidationResult) -> None:
    if not result.ok:
        raise CashValidationError(result.issues)
