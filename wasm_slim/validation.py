"""
Configuration validators.

A ValidatorRegistry is built explicitly (see default_registry) and handed to
ConfigLoader. Validators run in ascending priority order and report
ValidationIssue objects; the loader turns errors into InvalidConfiguration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

VALID_OPT_LEVELS = ("0", "1", "2", "3", "s", "z")
VALID_LTO = ("fat", "thin", "off", "true", "false")
VALID_PANIC = ("abort", "unwind")

# opt-level 0 cannot meet a max budget below this many KB
SMALL_BUDGET_KB = 100


class ValidationSeverity(Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class ValidationIssue:
    severity: ValidationSeverity
    field: str
    message: str
    suggestion: Optional[str] = None

    @classmethod
    def error(cls, field: str, message: str, suggestion: Optional[str] = None) -> "ValidationIssue":
        return cls(ValidationSeverity.ERROR, field, message, suggestion)

    @classmethod
    def warning(cls, field: str, message: str, suggestion: Optional[str] = None) -> "ValidationIssue":
        return cls(ValidationSeverity.WARNING, field, message, suggestion)

    @classmethod
    def info(cls, field: str, message: str, suggestion: Optional[str] = None) -> "ValidationIssue":
        return cls(ValidationSeverity.INFO, field, message, suggestion)

    def __str__(self):
        text = f"[{self.severity.value}] {self.field}: {self.message}"
        if self.suggestion:
            text += f" ({self.suggestion})"
        return text


@dataclass
class ValidationResult:
    issues: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors()

    def errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is ValidationSeverity.ERROR]

    def warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity is ValidationSeverity.WARNING]


class Validator:
    """Base class: subclasses set `name`/`priority` and implement validate."""

    name = "validator"
    priority = 100

    def validate(self, config) -> List[ValidationIssue]:
        raise NotImplementedError


class ValidatorRegistry:
    def __init__(self, validators: Optional[List[Validator]] = None):
        self._validators: List[Validator] = []
        for validator in validators or []:
            self.register(validator)

    def register(self, validator: Validator) -> None:
        if any(v.name == validator.name for v in self._validators):
            raise ValueError(f"Validator '{validator.name}' is already registered")
        self._validators.append(validator)
        # sort is stable: equal priorities keep registration order
        self._validators.sort(key=lambda v: v.priority)

    def names(self) -> List[str]:
        return [v.name for v in self._validators]

    def __len__(self):
        return len(self._validators)

    def validate(self, config) -> ValidationResult:
        result = ValidationResult()
        for validator in self._validators:
            result.issues.extend(validator.validate(config))
        return result


########################################################################
# Built-in validators
########################################################################

class BudgetOrderValidator(Validator):
    """Budget thresholds must satisfy target <= warn <= max."""

    name = "size-budget-order"
    priority = 0

    def validate(self, config) -> List[ValidationIssue]:
        budget = config.size_budget
        if budget is None:
            return []
        issues = []
        target, warn, max_kb = budget.target_kb, budget.warn_kb, budget.max_kb
        if target is not None and warn is not None and target > warn:
            issues.append(ValidationIssue.error(
                "size_budget",
                f"Target size ({target} KB) cannot exceed warning threshold ({warn} KB)",
            ))
        if warn is not None and max_kb is not None and warn > max_kb:
            issues.append(ValidationIssue.error(
                "size_budget",
                f"Warning threshold ({warn} KB) cannot exceed max size ({max_kb} KB)",
            ))
        if target is not None and max_kb is not None and target > max_kb:
            issues.append(ValidationIssue.error(
                "size_budget",
                f"Target size ({target} KB) cannot exceed max size ({max_kb} KB)",
            ))
        return issues


class ProfileValuesValidator(Validator):
    name = "profile-values"
    priority = 10

    def validate(self, config) -> List[ValidationIssue]:
        o = config.overrides
        issues = []
        if o.opt_level is not None and str(o.opt_level) not in VALID_OPT_LEVELS:
            issues.append(ValidationIssue.error(
                "profile.opt-level",
                f"Invalid optimization level '{o.opt_level}'",
                f"Use one of: {', '.join(VALID_OPT_LEVELS)}",
            ))
        if o.lto is not None and str(o.lto).lower() not in VALID_LTO:
            issues.append(ValidationIssue.error(
                "profile.lto", f"Invalid LTO mode '{o.lto}'", "Use 'fat' for smallest output"
            ))
        elif o.lto is not None and str(o.lto).lower() in ("off", "false"):
            issues.append(ValidationIssue.warning(
                "profile.lto", "LTO is disabled", "Set lto = \"fat\" for 15-30% smaller binaries"
            ))
        if o.codegen_units is not None:
            if o.codegen_units < 1:
                issues.append(ValidationIssue.error(
                    "profile.codegen-units", f"codegen-units must be at least 1, got {o.codegen_units}"
                ))
            elif o.codegen_units > 1:
                issues.append(ValidationIssue.warning(
                    "profile.codegen-units",
                    f"codegen-units = {o.codegen_units} limits cross-unit optimization",
                    "Set codegen-units = 1 for better optimization",
                ))
        if o.panic is not None and o.panic not in VALID_PANIC:
            issues.append(ValidationIssue.error(
                "profile.panic", f"Invalid panic strategy '{o.panic}'", "Use 'abort' or 'unwind'"
            ))
        return issues


class CrossFieldValidator(Validator):
    name = "cross-field"
    priority = 20

    def validate(self, config) -> List[ValidationIssue]:
        issues = []
        opt_level = config.overrides.opt_level
        budget = config.size_budget
        if (
            opt_level is not None
            and str(opt_level) == "0"
            and budget is not None
            and budget.max_kb is not None
            and budget.max_kb < SMALL_BUDGET_KB
        ):
            issues.append(ValidationIssue.error(
                "profile.opt-level + size_budget",
                "opt-level=0 with small size budget is incompatible",
                "Use opt-level='z' or 's' for size optimization",
            ))
        flags = config.overrides.wasm_opt_flags or []
        if "--enable-simd" in flags:
            issues.append(ValidationIssue.warning(
                "wasm_opt.flags",
                "SIMD flags enabled but the wasm target may not support SIMD",
                "Verify target architecture supports SIMD or remove --enable-simd flag",
            ))
        return issues


def default_registry() -> ValidatorRegistry:
    return ValidatorRegistry([
        BudgetOrderValidator(),
        ProfileValuesValidator(),
        CrossFieldValidator(),
    ])
