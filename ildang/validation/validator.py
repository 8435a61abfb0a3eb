"""
Two-Stage Entry Validation

STAGE 1 - REQUIRED FIELDS:
- Date present and parseable
- Location present for work days, and not the reserved day-off value
- Amount present and positive for work days
- Text fields within the lengths the record models accept

STAGE 2 - PLAUSIBILITY:
- Dates far in the future
- Unusually large daily amounts
Stage 2 only produces warnings; it never blocks an entry.

IMPORTANT: Validation NEVER silently fixes issues.
A rejected entry is not persisted at all; the caller re-prompts.
"""

from datetime import date, timedelta
from typing import Any, Optional

from pydantic import BaseModel

from ildang.config import AppSettings, get_settings
from ildang.models.validation import ValidationIssue, ValidationResult
from ildang.models.worklog import DAY_OFF_LOCATION, UserSettings, WorkLog


FIELD_LABELS = {
    "location": "현장",
    "task": "작업 내용",
    "memo": "메모",
    "user_name": "이름",
    "bank_name": "은행명",
    "bank_account": "계좌번호",
    "account_holder": "예금주",
}


def max_length(model: type[BaseModel], field_name: str) -> Optional[int]:
    """The max_length constraint declared on a model field, if any."""
    for constraint in model.model_fields[field_name].metadata:
        limit = getattr(constraint, "max_length", None)
        if limit is not None:
            return limit
    return None


def length_issues(model: type[BaseModel], values: dict[str, Any]) -> list[ValidationIssue]:
    issues = []
    for name, value in values.items():
        limit = max_length(model, name)
        if limit is None or not isinstance(value, str):
            continue
        if len(value.strip()) > limit:
            issues.append(ValidationIssue(
                field=name,
                issue_type="too_long",
                message=f"{FIELD_LABELS.get(name, name)}은(는) {limit}자 이하로 입력해주세요.",
                severity="error",
                suggested_fix=f"{len(value.strip()) - limit}자를 줄여주세요",
            ))
    return issues


class ValidationError(Exception):
    """A user-entered record was rejected."""
    
    def __init__(self, result: ValidationResult):
        self.result = result
        messages = [i.message for i in result.issues if i.severity == "error"]
        super().__init__("; ".join(messages) or "Validation failed")


class WorkLogValidator:
    """Validates work log input before it reaches the store."""
    
    def __init__(self, app_settings: Optional[AppSettings] = None):
        self._settings = app_settings or get_settings().app
    
    def _validate_required(
        self,
        work_date: Any,
        location: Optional[str],
        amount: Any,
        is_day_off: bool,
    ) -> list[ValidationIssue]:
        issues = []
        
        if work_date is None or work_date == "":
            issues.append(ValidationIssue(
                field="date",
                issue_type="missing",
                message="날짜를 입력해주세요.",
                severity="error",
            ))
        elif not isinstance(work_date, date):
            try:
                date.fromisoformat(str(work_date))
            except ValueError:
                issues.append(ValidationIssue(
                    field="date",
                    issue_type="invalid_format",
                    message=f"날짜 형식이 올바르지 않습니다: {work_date}",
                    severity="error",
                    suggested_fix="YYYY-MM-DD 형식으로 입력해주세요",
                ))
        
        if is_day_off:
            if amount not in (None, "", 0):
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="invalid_value",
                    message="휴무 기록에는 금액을 입력할 수 없습니다.",
                    severity="error",
                ))
            if (location or "").strip() not in ("", DAY_OFF_LOCATION):
                issues.append(ValidationIssue(
                    field="location",
                    issue_type="invalid_value",
                    message=f"휴무 기록의 현장은 '{DAY_OFF_LOCATION}'이어야 합니다.",
                    severity="error",
                ))
            return issues
        
        location = (location or "").strip()
        if not location:
            issues.append(ValidationIssue(
                field="location",
                issue_type="missing",
                message="현장을 입력해주세요.",
                severity="error",
            ))
        elif location == DAY_OFF_LOCATION:
            issues.append(ValidationIssue(
                field="location",
                issue_type="reserved",
                message=f"'{DAY_OFF_LOCATION}'는 휴무 기록에만 사용할 수 있습니다.",
                severity="error",
                suggested_fix="휴무는 휴무 기록으로 저장해주세요",
            ))
        
        if amount is None or amount == "":
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="금액을 입력해주세요.",
                severity="error",
            ))
        elif isinstance(amount, bool) or not isinstance(amount, int):
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="금액은 정수여야 합니다.",
                severity="error",
            ))
        elif amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="금액은 0보다 커야 합니다.",
                severity="error",
            ))
        
        return issues
    
    def _validate_plausibility(self, work_date: Any, amount: Any) -> list[ValidationIssue]:
        issues = []
        
        if isinstance(work_date, str):
            work_date = date.fromisoformat(work_date)
        max_future = date.today() + timedelta(days=self._settings.future_date_tolerance_days)
        if work_date > max_future:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"먼 미래의 날짜입니다: {work_date}",
                severity="warning",
                suggested_fix="날짜를 다시 확인해주세요",
            ))
        
        if isinstance(amount, int) and amount > self._settings.max_daily_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"하루 금액으로는 너무 큽니다: {amount:,}원",
                severity="warning",
                suggested_fix="0이 하나 더 들어가지 않았는지 확인해주세요",
            ))
        
        return issues
    
    def validate_entry(
        self,
        work_date: Any,
        location: Optional[str],
        amount: Any,
        is_day_off: bool = False,
        task: Optional[str] = None,
        memo: Optional[str] = None,
    ) -> ValidationResult:
        """
        Run both stages. Stage 2 is skipped if stage 1 found errors.
        """
        issues = self._validate_required(work_date, location, amount, is_day_off)
        issues.extend(length_issues(WorkLog, {"location": location, "task": task, "memo": memo}))
        if not any(issue.severity == "error" for issue in issues):
            issues.extend(self._validate_plausibility(work_date, amount))
        return ValidationResult(issues=issues)
    
    def validate_patch(self, existing: WorkLog, patch: dict[str, Any]) -> ValidationResult:
        """Validate an edit by checking the record as it would look afterwards."""
        merged = {**existing.model_dump(), **patch}
        return self.validate_entry(
            merged.get("date"),
            merged.get("location"),
            merged.get("amount"),
            is_day_off=bool(merged.get("is_day_off")),
            task=merged.get("task"),
            memo=merged.get("memo"),
        )

    def validate_settings(self, patch: dict[str, Any]) -> ValidationResult:
        """Check a settings patch against the field lengths UserSettings accepts."""
        return ValidationResult(issues=length_issues(UserSettings, patch))

    def require_valid(self, result: ValidationResult) -> ValidationResult:
        """
        Raises:
            ValidationError: If the result has error-level issues
        """
        if result.has_errors:
            raise ValidationError(result)
        return result
