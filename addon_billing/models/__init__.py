"""
SQLAlchemy Models for the Add-on Calculation Engine.

This module exports all database models for the application.
"""

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel
from addon_billing.models.facility import Facility
from addon_billing.models.patient import Patient
from addon_billing.models.staff import StaffMember
from addon_billing.models.visit import VisitRecord
from addon_billing.models.billing_code import BillingCode, SpecialManagementDefinition
from addon_billing.models.addon_definition import AddOnDefinition
from addon_billing.models.calculation_history import CalculationHistory

__all__ = [
    "Base",
    "TimeStampedModel",
    "UUIDModel",
    "Facility",
    "Patient",
    "StaffMember",
    "VisitRecord",
    "BillingCode",
    "SpecialManagementDefinition",
    "AddOnDefinition",
    "CalculationHistory",
]
