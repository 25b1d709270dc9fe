"""Jurisdiction rule table: fees, deadlines, required steps, recurrence rules."""

from pyformation.jurisdictions.rules import (
    FEDERAL_OBLIGATIONS,
    JURISDICTIONS,
    SERVICE_FEES,
    EntityRequirements,
    JurisdictionRules,
    get_rules,
    supported_jurisdictions,
)

__all__ = [
    "FEDERAL_OBLIGATIONS",
    "JURISDICTIONS",
    "SERVICE_FEES",
    "EntityRequirements",
    "JurisdictionRules",
    "get_rules",
    "supported_jurisdictions",
]
