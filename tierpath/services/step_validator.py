"""
TierPath Onboarding - Step Validator

Rule-based validation for each onboarding step, the step dependency
graph, and progress / time-remaining estimates.

Rule kinds:
- required: value present and non-empty
- min / max: numeric bound, or string length bound for text
- pattern: regular expression match on the text value
- custom: predicate over the whole partial payload (cross-field checks)

Failed custom rules with advisory wording ("seems", "unusual") become
warnings. Everything else is a blocking error.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Collection, Dict, List, Mapping, Optional, Union

from tierpath.models.onboarding import (
    OnboardingStep,
    STEP_ORDER,
    BusinessSize,
    BUSINESS_NAME,
    BUSINESS_INDUSTRY,
    BUSINESS_SIZE,
    BUSINESS_TYPE,
    EXPECTED_EMPLOYEES,
    EXPECTED_LOCATIONS,
    EXPECTED_TRANSACTIONS,
    EXPECTED_REVENUE,
    SELECTED_PLAN,
)

ADVISORY_MARKERS = ("seems", "unusual")

NUMERIC_FIELDS = frozenset({
    EXPECTED_EMPLOYEES,
    EXPECTED_LOCATIONS,
    EXPECTED_TRANSACTIONS,
    EXPECTED_REVENUE,
})


class RuleKind(str, Enum):
    REQUIRED = "required"
    MIN = "min"
    MAX = "max"
    PATTERN = "pattern"
    CUSTOM = "custom"


@dataclass(frozen=True)
class ValidationRule:
    """A single check on one field of a step payload."""
    field: str
    kind: RuleKind
    message: str
    value: Union[int, float, str, None] = None
    # custom rules only: (field value, whole payload) -> passes
    check: Optional[Callable[[Any, Mapping[str, Any]], bool]] = None

    @property
    def is_advisory(self) -> bool:
        if self.kind != RuleKind.CUSTOM:
            return False
        text = self.message.lower()
        return any(marker in text for marker in ADVISORY_MARKERS)


@dataclass(frozen=True)
class StepDefinition:
    """Static description of a wizard step."""
    step: OnboardingStep
    title: str
    description: str
    required: bool
    dependencies: List[OnboardingStep]
    estimated_minutes: int
    rules: List[ValidationRule] = field(default_factory=list)


@dataclass
class ValidationResult:
    """Errors block progress; warnings are advisory only."""
    errors: Dict[str, List[str]] = field(default_factory=dict)
    warnings: Dict[str, List[str]] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, field_name: str, message: str) -> None:
        self.errors.setdefault(field_name, []).append(message)

    def add_warning(self, field_name: str, message: str) -> None:
        self.warnings.setdefault(field_name, []).append(message)


# =============================================================================
# CROSS-FIELD CHECKS
# =============================================================================

# Highest monthly revenue that looks plausible for each size bucket
PLAUSIBLE_REVENUE_BY_SIZE: Dict[BusinessSize, float] = {
    BusinessSize.SOLO: 50_000,
    BusinessSize.SMALL: 500_000,
    BusinessSize.MEDIUM: 5_000_000,
    BusinessSize.LARGE: 50_000_000,
}

# Headcount above which a solo business looks misreported
SOLO_MAX_EMPLOYEES = 5


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _size_of(data: Mapping[str, Any]) -> Optional[BusinessSize]:
    try:
        return BusinessSize(data.get(BUSINESS_SIZE))
    except ValueError:
        return None


def revenue_plausible_for_size(value: Any, data: Mapping[str, Any]) -> bool:
    revenue = _as_number(value)
    size = _size_of(data)
    if revenue is None or size is None or size not in PLAUSIBLE_REVENUE_BY_SIZE:
        return True
    return revenue <= PLAUSIBLE_REVENUE_BY_SIZE[size]


def employees_plausible_for_size(value: Any, data: Mapping[str, Any]) -> bool:
    employees = _as_number(value)
    if employees is None or _size_of(data) != BusinessSize.SOLO:
        return True
    return employees <= SOLO_MAX_EMPLOYEES


def transactions_reported_with_revenue(value: Any, data: Mapping[str, Any]) -> bool:
    transactions = _as_number(value)
    revenue = _as_number(data.get(EXPECTED_REVENUE))
    if transactions is None or revenue is None:
        return True
    return not (revenue > 0 and transactions == 0)


# =============================================================================
# STEP DEFINITIONS
# =============================================================================

STEP_DEFINITIONS: Dict[OnboardingStep, StepDefinition] = {
    OnboardingStep.BUSINESS_PROFILE: StepDefinition(
        step=OnboardingStep.BUSINESS_PROFILE,
        title="Business Profile",
        description="Tell us about your business",
        required=True,
        dependencies=[],
        estimated_minutes=3,
        rules=[
            ValidationRule(BUSINESS_NAME, RuleKind.REQUIRED, "Business name is required"),
            ValidationRule(BUSINESS_NAME, RuleKind.MIN, "Business name must be at least 2 characters", 2),
            ValidationRule(BUSINESS_NAME, RuleKind.MAX, "Business name must be at most 100 characters", 100),
            ValidationRule(
                BUSINESS_NAME, RuleKind.PATTERN,
                "Business name contains invalid characters",
                r"^[A-Za-z0-9 &'.,\-]+$",
            ),
            ValidationRule(BUSINESS_INDUSTRY, RuleKind.REQUIRED, "Business industry is required"),
            ValidationRule(BUSINESS_INDUSTRY, RuleKind.MAX, "Business industry must be at most 100 characters", 100),
            ValidationRule(BUSINESS_SIZE, RuleKind.REQUIRED, "Business size is required"),
            ValidationRule(
                BUSINESS_SIZE, RuleKind.PATTERN,
                "Business size must be one of: solo, small, medium, large, enterprise",
                r"^(solo|small|medium|large|enterprise)$",
            ),
        ],
    ),
    OnboardingStep.BUSINESS_TYPE: StepDefinition(
        step=OnboardingStep.BUSINESS_TYPE,
        title="Business Type",
        description="What type of business do you run?",
        required=True,
        dependencies=[OnboardingStep.BUSINESS_PROFILE],
        estimated_minutes=2,
        rules=[
            ValidationRule(BUSINESS_TYPE, RuleKind.REQUIRED, "Business type is required"),
            ValidationRule(
                BUSINESS_TYPE, RuleKind.PATTERN,
                "Business type must be one of: free, renewables, retail, wholesale, industry",
                r"^(free|renewables|retail|wholesale|industry)$",
            ),
        ],
    ),
    OnboardingStep.USAGE_EXPECTATIONS: StepDefinition(
        step=OnboardingStep.USAGE_EXPECTATIONS,
        title="Usage Expectations",
        description="Help us understand your needs",
        required=True,
        dependencies=[OnboardingStep.BUSINESS_PROFILE, OnboardingStep.BUSINESS_TYPE],
        estimated_minutes=4,
        rules=[
            ValidationRule(EXPECTED_EMPLOYEES, RuleKind.REQUIRED, "Expected employees is required"),
            ValidationRule(EXPECTED_EMPLOYEES, RuleKind.MIN, "Expected employees must be at least 1", 1),
            ValidationRule(EXPECTED_EMPLOYEES, RuleKind.MAX, "Expected employees must be at most 100000", 100_000),
            ValidationRule(
                EXPECTED_EMPLOYEES, RuleKind.CUSTOM,
                "Employee count seems unusual for a solo business",
                check=employees_plausible_for_size,
            ),
            ValidationRule(EXPECTED_LOCATIONS, RuleKind.REQUIRED, "Expected locations is required"),
            ValidationRule(EXPECTED_LOCATIONS, RuleKind.MIN, "Expected locations must be at least 1", 1),
            ValidationRule(EXPECTED_LOCATIONS, RuleKind.MAX, "Expected locations must be at most 10000", 10_000),
            ValidationRule(EXPECTED_TRANSACTIONS, RuleKind.REQUIRED, "Expected monthly transactions is required"),
            ValidationRule(EXPECTED_TRANSACTIONS, RuleKind.MIN, "Expected monthly transactions cannot be negative", 0),
            ValidationRule(
                EXPECTED_TRANSACTIONS, RuleKind.MAX,
                "Expected monthly transactions must be at most 10000000", 10_000_000,
            ),
            ValidationRule(
                EXPECTED_TRANSACTIONS, RuleKind.CUSTOM,
                "Monthly transactions must be greater than zero when monthly revenue is reported",
                check=transactions_reported_with_revenue,
            ),
            ValidationRule(EXPECTED_REVENUE, RuleKind.REQUIRED, "Expected monthly revenue is required"),
            ValidationRule(EXPECTED_REVENUE, RuleKind.MIN, "Expected monthly revenue cannot be negative", 0),
            ValidationRule(
                EXPECTED_REVENUE, RuleKind.MAX,
                "Expected monthly revenue must be at most 10000000000", 10_000_000_000,
            ),
            ValidationRule(
                EXPECTED_REVENUE, RuleKind.CUSTOM,
                "Revenue seems unusually high for the selected business size",
                check=revenue_plausible_for_size,
            ),
        ],
    ),
    OnboardingStep.PLAN_SELECTION: StepDefinition(
        step=OnboardingStep.PLAN_SELECTION,
        title="Select Plan",
        description="Choose the best plan for your business",
        required=True,
        dependencies=[
            OnboardingStep.BUSINESS_PROFILE,
            OnboardingStep.BUSINESS_TYPE,
            OnboardingStep.USAGE_EXPECTATIONS,
        ],
        estimated_minutes=2,
        rules=[
            ValidationRule(SELECTED_PLAN, RuleKind.REQUIRED, "Please select a plan"),
            ValidationRule(
                SELECTED_PLAN, RuleKind.PATTERN,
                "Selected plan must be one of: micro, small, medium, enterprise",
                r"^(micro|small|medium|enterprise)$",
            ),
        ],
    ),
    OnboardingStep.WELCOME: StepDefinition(
        step=OnboardingStep.WELCOME,
        title="Welcome",
        description="You're all set!",
        required=False,
        dependencies=[
            OnboardingStep.BUSINESS_PROFILE,
            OnboardingStep.BUSINESS_TYPE,
            OnboardingStep.USAGE_EXPECTATIONS,
            OnboardingStep.PLAN_SELECTION,
        ],
        estimated_minutes=1,
    ),
}


# =============================================================================
# VALIDATOR
# =============================================================================

class StepValidator:
    """
    Validates step payloads and answers navigation questions.

    Never raises for bad input; problems come back in a ValidationResult.
    """

    def __init__(self, definitions: Optional[Dict[OnboardingStep, StepDefinition]] = None):
        self.definitions = definitions or STEP_DEFINITIONS
        self.order = [step for step in STEP_ORDER if step in self.definitions]

    def step_definition(self, step: OnboardingStep) -> StepDefinition:
        return self.definitions[step]

    def validate_step(self, step: OnboardingStep, data: Mapping[str, Any]) -> ValidationResult:
        """Run every rule of a step against a (possibly partial) payload."""
        result = ValidationResult()
        definition = self.definitions.get(step)
        if definition is None:
            return result

        missing = set()
        for rule in definition.rules:
            value = data.get(rule.field)

            if rule.kind == RuleKind.REQUIRED:
                if self._is_empty(value):
                    missing.add(rule.field)
                    result.add_error(rule.field, rule.message)
                continue

            # Other rules only judge values that are present
            if rule.field in missing or self._is_empty(value):
                continue

            if self._passes(rule, value, data):
                continue

            if rule.is_advisory:
                result.add_warning(rule.field, rule.message)
            else:
                result.add_error(rule.field, rule.message)

        return result

    def can_access_step(self, step: OnboardingStep, completed_steps: Collection[OnboardingStep]) -> bool:
        """True when every dependency of `step` is already completed."""
        definition = self.definitions.get(step)
        if definition is None:
            return False
        completed = set(completed_steps)
        return all(dependency in completed for dependency in definition.dependencies)

    def next_step(self, completed_steps: Collection[OnboardingStep]) -> Optional[OnboardingStep]:
        """First step, in wizard order, that is incomplete and reachable."""
        completed = set(completed_steps)
        for step in self.order:
            if step not in completed and self.can_access_step(step, completed):
                return step
        return None

    def available_steps(self, completed_steps: Collection[OnboardingStep]) -> List[OnboardingStep]:
        """Every step whose dependencies are satisfied, completed or not."""
        return [step for step in self.order if self.can_access_step(step, completed_steps)]

    def progress(self, completed_steps: Collection[OnboardingStep]) -> int:
        """Completed required steps as a rounded percentage."""
        required = [step for step in self.order if self.definitions[step].required]
        if not required:
            return 100
        completed = set(completed_steps)
        done = sum(1 for step in required if step in completed)
        return round(done / len(required) * 100)

    def estimate_remaining(self, completed_steps: Collection[OnboardingStep]) -> int:
        """Minutes left across incomplete required steps."""
        completed = set(completed_steps)
        return sum(
            self.definitions[step].estimated_minutes
            for step in self.order
            if self.definitions[step].required and step not in completed
        )

    @staticmethod
    def _is_empty(value: Any) -> bool:
        if value is None:
            return True
        if isinstance(value, str):
            return not value.strip()
        if isinstance(value, (list, tuple, set, dict)):
            return len(value) == 0
        return False

    @staticmethod
    def _passes(rule: ValidationRule, value: Any, data: Mapping[str, Any]) -> bool:
        if isinstance(value, Enum):
            value = value.value

        if rule.kind == RuleKind.CUSTOM:
            return rule.check is None or bool(rule.check(value, data))

        if rule.kind == RuleKind.PATTERN:
            return re.fullmatch(str(rule.value), str(value)) is not None

        # min / max: numeric value for metrics, string length for text
        if rule.field in NUMERIC_FIELDS:
            measured = _as_number(value)
            if measured is None:
                return False
        else:
            measured = len(str(value).strip())

        if rule.kind == RuleKind.MIN:
            return measured >= rule.value
        return measured <= rule.value
