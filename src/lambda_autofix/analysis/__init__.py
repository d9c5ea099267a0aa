"""
Error analysis for lambda-autofix.

Classes:
    RemediationCatalog: Category to remediation policy table
    StaticGuidance: Human-readable guidance per category
"""

from .classifier import classify, match_category
from .catalog import RemediationCatalog, confidence, priority
from .guidance import StaticGuidance

__all__ = [
    "classify",
    "match_category",
    "RemediationCatalog",
    "confidence",
    "priority",
    "StaticGuidance",
]
