"""
Static per-jurisdiction rule table.

Holds the formation template (steps, dependencies, nominal durations and
costs), entity requirements, and recurring obligation rules for every
supported jurisdiction, plus the national (federal) obligations that
apply everywhere. Pure data: no I/O and no dependencies beyond models.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from pyformation.errors import ValidationError
from pyformation.models import (
    AnniversaryRule,
    FixedDateRule,
    Frequency,
    ObligationRule,
    ObligationTerms,
    ObligationType,
    PeriodicRule,
    StepKind,
    StepSpec,
    WorkflowDefinition,
)

# Service fees charged when an obligation is prepared automatically.
ANNUAL_REPORT_FEE = Decimal("149")
TAX_PREPARATION_FEE = Decimal("299")
LICENSE_RENEWAL_FEE = Decimal("149")
REGISTERED_AGENT_FEE = Decimal("199")

SERVICE_FEES: dict[ObligationType, Decimal] = {
    ObligationType.ANNUAL_REPORT: ANNUAL_REPORT_FEE,
    ObligationType.TAX_FILING: TAX_PREPARATION_FEE,
    ObligationType.LICENSE_RENEWAL: LICENSE_RENEWAL_FEE,
    ObligationType.REGISTERED_AGENT_RENEWAL: REGISTERED_AGENT_FEE,
}


@dataclass(frozen=True)
class EntityRequirements:
    registered_agent: bool = True
    purpose: bool = False
    members: bool = False


@dataclass(frozen=True)
class JurisdictionRules:
    code: str
    name: str
    workflow: WorkflowDefinition
    requirements: EntityRequirements
    obligations: tuple[ObligationRule, ...]


def _formation_steps(filing_office: str, filing_days: int, filing_fee: float, license_days: int):
    K = StepKind
    return (
        StepSpec(K.NAME_CHECK, "Business Name Availability Check", (), 1, 0.0, True, True, "api_call"),
        StepSpec(
            K.NAME_RESERVATION, "Name Reservation (Optional)", (K.NAME_CHECK,), 1, 25.0,
            False, False, "api_call",
        ),
        StepSpec(K.REGISTERED_AGENT, "Secure Registered Agent", (K.NAME_CHECK,), 1, 99.0, False, True, "api_call"),
        StepSpec(
            K.ARTICLES_PREP, "Prepare Articles of Organization", (K.NAME_CHECK, K.REGISTERED_AGENT),
            1, 0.0, True, True, "document_generation",
        ),
        StepSpec(
            K.ARTICLES_FILING, f"File Articles with {filing_office}", (K.ARTICLES_PREP,),
            filing_days, filing_fee, False, True, "api_call",
        ),
        StepSpec(
            K.EIN_APPLICATION, "Apply for Federal EIN", (K.ARTICLES_FILING,), 1, 0.0,
            True, True, "document_generation",
        ),
        StepSpec(
            K.OPERATING_AGREEMENT, "Create Operating Agreement", (K.EIN_APPLICATION,), 2, 0.0,
            True, False, "document_generation",
        ),
        StepSpec(
            K.BUSINESS_LICENSES, "Identify Business Licenses", (K.ARTICLES_FILING,), license_days, 0.0,
            True, False, "research",
        ),
        StepSpec(
            K.COMPLIANCE_SETUP, "Setup Compliance Calendar", (K.ARTICLES_FILING,), 1, 0.0,
            True, True, "calendar_generation",
        ),
    )


def _terms(
    key: str,
    type: ObligationType,
    title: str,
    *,
    cost: str = "0",
    penalty: str,
    critical: bool,
    trigger: int,
    revenue: str | Decimal,
    automatable: bool = True,
    **details: str,
) -> ObligationTerms:
    return ObligationTerms(
        key=key,
        type=type,
        title=title,
        cost=Decimal(cost),
        penalty=Decimal(penalty),
        critical=critical,
        automatable=automatable,
        automation_trigger_days=trigger,
        revenue_opportunity=Decimal(revenue),
        details=tuple(sorted(details.items())),
    )


def _monthly_tax(key: str, tax_type: str, rate: str) -> PeriodicRule:
    return PeriodicRule(
        _terms(
            key, ObligationType.TAX_FILING, f"{tax_type} Filing",
            penalty="50", critical=True, trigger=30,
            revenue=(TAX_PREPARATION_FEE / 12).quantize(Decimal("0.01")),
            tax_type=tax_type, period="monthly", rate=rate,
        ),
        Frequency.MONTHLY, due_day=20, lag_months=1,
    )


def _quarterly_tax(key: str, tax_type: str, rate: str) -> PeriodicRule:
    return PeriodicRule(
        _terms(
            key, ObligationType.TAX_FILING, f"{tax_type} Quarterly Filing",
            penalty="100", critical=True, trigger=45,
            revenue=(TAX_PREPARATION_FEE / 4).quantize(Decimal("0.01")),
            tax_type=tax_type, period="quarterly", rate=rate,
        ),
        Frequency.QUARTERLY, due_day=15, lag_months=1,
    )


def _annual_tax(key: str, tax_type: str, rate: str) -> PeriodicRule:
    return PeriodicRule(
        _terms(
            key, ObligationType.TAX_FILING, f"{tax_type} Annual Return",
            penalty="200", critical=True, trigger=60, revenue=TAX_PREPARATION_FEE,
            tax_type=tax_type, period="annual", rate=rate,
        ),
        Frequency.ANNUAL, due_day=15, lag_months=3,
    )


def _license_renewal(code: str, fee: str, renewal: str) -> FixedDateRule:
    return FixedDateRule(
        _terms(
            f"{code.lower()}_business_license", ObligationType.LICENSE_RENEWAL,
            "Business License Renewal", cost=fee, penalty="25", critical=False, trigger=60,
            revenue=LICENSE_RENEWAL_FEE, license_type="general_business", renewal=renewal,
        ),
        month=12, day=31,
    )


def _registered_agent(code: str, annual_cost: str) -> AnniversaryRule:
    return AnniversaryRule(
        _terms(
            f"{code.lower()}_registered_agent", ObligationType.REGISTERED_AGENT_RENEWAL,
            "Registered Agent Service Renewal", cost=annual_cost, penalty="0", critical=True,
            trigger=30, revenue=REGISTERED_AGENT_FEE,
            agent_name="CloudEsq Registered Agent Services", state=code,
        ),
    )


def _annual_report_terms(code: str, fee: str, penalty: str) -> ObligationTerms:
    return _terms(
        f"{code.lower()}_annual_report", ObligationType.ANNUAL_REPORT,
        f"{code} Annual Report Filing", cost=fee, penalty=penalty, critical=True,
        trigger=45, revenue=ANNUAL_REPORT_FEE,
        filing_office=f"{code} Secretary of State",
    )


FEDERAL_OBLIGATIONS: tuple[ObligationRule, ...] = (
    PeriodicRule(
        _terms(
            "federal_income", ObligationType.TAX_FILING, "Federal Income Tax Return",
            penalty="195", critical=True, trigger=60, revenue=TAX_PREPARATION_FEE,
            tax_type="federal_income", period="annual", form="1065",
        ),
        Frequency.ANNUAL, due_day=15, lag_months=3,
    ),
    PeriodicRule(
        _terms(
            "federal_estimated", ObligationType.TAX_FILING, "Federal Estimated Tax Payment",
            penalty="50", critical=False, trigger=30, revenue="75",
            tax_type="estimated_tax", period="quarterly",
        ),
        Frequency.QUARTERLY, due_day=15, lag_months=1,
    ),
)


def _rules(
    code: str,
    name: str,
    *,
    filing_office: str,
    filing_days: int,
    filing_fee: float,
    license_days: int,
    advantages: tuple[str, ...],
    requirements: EntityRequirements,
    obligations: tuple[ObligationRule, ...],
) -> JurisdictionRules:
    workflow = WorkflowDefinition(
        jurisdiction=code,
        name=f"{name} LLC Formation",
        steps=_formation_steps(filing_office, filing_days, filing_fee, license_days),
        filing_fee=filing_fee,
        advantages=advantages,
    )
    return JurisdictionRules(code, name, workflow, requirements, obligations + FEDERAL_OBLIGATIONS)


JURISDICTIONS: dict[str, JurisdictionRules] = {
    "FL": _rules(
        "FL", "Florida",
        filing_office="Florida DOS", filing_days=5, filing_fee=125.0, license_days=3,
        advantages=("No state income tax", "Business-friendly laws", "No publication requirement"),
        requirements=EntityRequirements(registered_agent=True, purpose=False, members=True),
        obligations=(
            FixedDateRule(_annual_report_terms("FL", "138.75", "400"), month=5, day=1),
            _license_renewal("FL", "50", "Annual"),
            _monthly_tax("fl_sales_tax", "Sales Tax", "6%"),
            _quarterly_tax("fl_reemployment_tax", "Reemployment Tax", "Variable"),
            _registered_agent("FL", "199"),
        ),
    ),
    "WY": _rules(
        "WY", "Wyoming",
        filing_office="Wyoming SOS", filing_days=3, filing_fee=100.0, license_days=2,
        advantages=("No state income tax", "Strong privacy protection", "Low fees", "Fast processing"),
        requirements=EntityRequirements(registered_agent=True, purpose=False, members=False),
        obligations=(
            # Due by the last day of the anniversary month.
            AnniversaryRule(_annual_report_terms("WY", "60", "25"), day=31),
            _quarterly_tax("wy_sales_tax", "Sales Tax", "4%"),
            _registered_agent("WY", "149"),
        ),
    ),
    "IL": _rules(
        "IL", "Illinois",
        filing_office="Illinois SOS", filing_days=7, filing_fee=150.0, license_days=5,
        advantages=("Central location", "Established business laws", "No publication requirement"),
        requirements=EntityRequirements(registered_agent=True, purpose=True, members=True),
        obligations=(
            AnniversaryRule(_annual_report_terms("IL", "75", "100"), day=15),
            _license_renewal("IL", "75", "Annual"),
            _annual_tax("il_income_tax", "Income Tax", "9.5%"),
            _monthly_tax("il_sales_tax", "Sales Tax", "6.25%"),
            _registered_agent("IL", "199"),
        ),
    ),
}


def get_rules(jurisdiction: str) -> JurisdictionRules:
    """Look up a jurisdiction's rules.

    Raises:
        ValidationError: If the jurisdiction is not supported
    """
    rules = JURISDICTIONS.get(jurisdiction.upper()) if jurisdiction else None
    if rules is None:
        supported = ", ".join(sorted(JURISDICTIONS))
        raise ValidationError(f"Unsupported jurisdiction: {jurisdiction!r}. Supported: {supported}")
    return rules


def supported_jurisdictions() -> list[str]:
    return sorted(JURISDICTIONS)
