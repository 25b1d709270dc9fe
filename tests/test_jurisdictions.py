"""Tests for the jurisdiction rule table."""

from decimal import Decimal

import pytest

from pyformation.errors import ValidationError
from pyformation.jurisdictions import (
    FEDERAL_OBLIGATIONS,
    SERVICE_FEES,
    get_rules,
    supported_jurisdictions,
)
from pyformation.models import ObligationType, StepKind


def test_supported_jurisdictions():
    assert supported_jurisdictions() == ["FL", "IL", "WY"]


def test_lookup_is_case_insensitive():
    assert get_rules("wy").code == "WY"


@pytest.mark.parametrize("code", ["TX", "", "XX"])
def test_unknown_jurisdiction_rejected(code):
    with pytest.raises(ValidationError, match="Unsupported jurisdiction"):
        get_rules(code)


@pytest.mark.parametrize("code", ["FL", "WY", "IL"])
def test_template_is_a_dag_over_all_steps(code):
    workflow = get_rules(code).workflow
    ids = [spec.id for spec in workflow.steps]

    assert ids == list(StepKind)
    seen = set()
    for spec in workflow.steps:
        assert set(spec.dependency_ids) <= seen
        seen.add(spec.id)


def test_template_dependencies():
    workflow = get_rules("WY").workflow

    assert workflow.spec(StepKind.ARTICLES_PREP).dependency_ids == (
        StepKind.NAME_CHECK,
        StepKind.REGISTERED_AGENT,
    )
    assert workflow.spec(StepKind.EIN_APPLICATION).dependency_ids == (StepKind.ARTICLES_FILING,)
    assert workflow.spec(StepKind.COMPLIANCE_SETUP).dependency_ids == (StepKind.ARTICLES_FILING,)
    assert not workflow.spec(StepKind.NAME_RESERVATION).critical
    assert not workflow.spec(StepKind.OPERATING_AGREEMENT).critical


def test_template_totals():
    workflow = get_rules("WY").workflow

    assert workflow.filing_fee == 100.0
    assert workflow.total_days == 13
    assert workflow.total_cost == 224.0
    assert "Wyoming SOS" in workflow.spec(StepKind.ARTICLES_FILING).name


def test_entity_requirements():
    assert get_rules("IL").requirements.purpose
    assert get_rules("IL").requirements.members
    assert get_rules("FL").requirements.members
    assert not get_rules("WY").requirements.members


def test_federal_obligations_apply_everywhere():
    for code in supported_jurisdictions():
        keys = {rule.terms.key for rule in get_rules(code).obligations}
        assert {rule.terms.key for rule in FEDERAL_OBLIGATIONS} <= keys


def test_service_fees():
    assert SERVICE_FEES == {
        ObligationType.ANNUAL_REPORT: Decimal("149"),
        ObligationType.TAX_FILING: Decimal("299"),
        ObligationType.LICENSE_RENEWAL: Decimal("149"),
        ObligationType.REGISTERED_AGENT_RENEWAL: Decimal("199"),
    }
