"""
TierPath Onboarding - Onboarding Models

Wizard steps, business classification enums and the business profile
snapshot used as scoring input.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class OnboardingStep(str, Enum):
    """Wizard steps in their fixed order."""
    BUSINESS_PROFILE = "business_profile"
    BUSINESS_TYPE = "business_type"
    USAGE_EXPECTATIONS = "usage_expectations"
    PLAN_SELECTION = "plan_selection"
    WELCOME = "welcome"


STEP_ORDER: List[OnboardingStep] = [
    OnboardingStep.BUSINESS_PROFILE,
    OnboardingStep.BUSINESS_TYPE,
    OnboardingStep.USAGE_EXPECTATIONS,
    OnboardingStep.PLAN_SELECTION,
    OnboardingStep.WELCOME,
]


class BusinessType(str, Enum):
    """Business category chosen in the business type step."""
    FREE = "free"
    RENEWABLES = "renewables"
    RETAIL = "retail"
    WHOLESALE = "wholesale"
    INDUSTRY = "industry"


class BusinessSize(str, Enum):
    """Self-reported business size bucket."""
    SOLO = "solo"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    ENTERPRISE = "enterprise"


# Wizard payload keys (camelCase, as exchanged with the onboarding API)
BUSINESS_NAME = "businessName"
BUSINESS_INDUSTRY = "businessIndustry"
BUSINESS_SIZE = "businessSize"
BUSINESS_TYPE = "businessType"
EXPECTED_EMPLOYEES = "expectedEmployees"
EXPECTED_LOCATIONS = "expectedLocations"
EXPECTED_TRANSACTIONS = "expectedMonthlyTransactions"
EXPECTED_REVENUE = "expectedMonthlyRevenue"
SELECTED_PLAN = "selectedPlan"
RECOMMENDED_PLAN = "recommendedPlan"

ONBOARDING_FIELDS: List[str] = [
    BUSINESS_NAME,
    BUSINESS_INDUSTRY,
    BUSINESS_SIZE,
    BUSINESS_TYPE,
    EXPECTED_EMPLOYEES,
    EXPECTED_LOCATIONS,
    EXPECTED_TRANSACTIONS,
    EXPECTED_REVENUE,
    SELECTED_PLAN,
    RECOMMENDED_PLAN,
]


def step_index(step: OnboardingStep) -> int:
    """Position of a step in the wizard."""
    return STEP_ORDER.index(step)


def parse_step(value: Any) -> Optional[OnboardingStep]:
    """
    Parse a step from its id or its zero-based index.

    The onboarding API reports the current step as an index; everything
    else uses the step id.
    """
    if isinstance(value, OnboardingStep):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value < len(STEP_ORDER):
            return STEP_ORDER[value]
        return None
    try:
        return OnboardingStep(str(value))
    except ValueError:
        return None


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _coerce_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return number


@dataclass(frozen=True)
class BusinessProfile:
    """
    Immutable snapshot of a business's self-reported scale and category.

    Missing or zero counts fall back to defaults instead of being rejected.
    """
    employees: int = 1
    locations: int = 1
    monthly_transactions: int = 0
    monthly_revenue: float = 0.0
    business_type: BusinessType = BusinessType.RETAIL
    business_size: Optional[BusinessSize] = BusinessSize.SMALL
    industry: str = ""

    @classmethod
    def from_onboarding_data(cls, data: Mapping[str, Any]) -> "BusinessProfile":
        """
        Build a profile from wizard data.

        Raises:
            ValueError: if a metric is present but not numeric
        """
        employees = data.get(EXPECTED_EMPLOYEES)
        locations = data.get(EXPECTED_LOCATIONS)
        transactions = data.get(EXPECTED_TRANSACTIONS)
        revenue = data.get(EXPECTED_REVENUE)

        try:
            employee_count = 0 if _is_blank(employees) else int(_coerce_number(employees))
            location_count = 0 if _is_blank(locations) else int(_coerce_number(locations))
            transaction_count = 0 if _is_blank(transactions) else int(_coerce_number(transactions))
            revenue_amount = 0.0 if _is_blank(revenue) else _coerce_number(revenue)
        except (TypeError, OverflowError) as e:
            raise ValueError(str(e)) from e

        raw_type = data.get(BUSINESS_TYPE)
        try:
            business_type = BusinessType(raw_type) if raw_type else BusinessType.RETAIL
        except ValueError:
            business_type = BusinessType.RETAIL

        raw_size = data.get(BUSINESS_SIZE)
        if _is_blank(raw_size):
            business_size: Optional[BusinessSize] = BusinessSize.SMALL
        else:
            try:
                business_size = BusinessSize(raw_size)
            except ValueError:
                # Unknown bucket: scored with a neutral multiplier
                business_size = None

        return cls(
            employees=employee_count if employee_count > 0 else 1,
            locations=location_count if location_count > 0 else 1,
            monthly_transactions=max(transaction_count, 0),
            monthly_revenue=max(revenue_amount, 0.0),
            business_type=business_type,
            business_size=business_size,
            industry=str(data.get(BUSINESS_INDUSTRY) or ""),
        )

    def to_onboarding_data(self) -> Dict[str, Any]:
        """Render the profile back into wizard payload keys."""
        data: Dict[str, Any] = {
            EXPECTED_EMPLOYEES: self.employees,
            EXPECTED_LOCATIONS: self.locations,
            EXPECTED_TRANSACTIONS: self.monthly_transactions,
            EXPECTED_REVENUE: self.monthly_revenue,
            BUSINESS_TYPE: self.business_type.value,
        }
        if self.business_size is not None:
            data[BUSINESS_SIZE] = self.business_size.value
        if self.industry:
            data[BUSINESS_INDUSTRY] = self.industry
        return data
