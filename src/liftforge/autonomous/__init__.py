"""Autonomous optimization pipeline.

Turns page signals into ranked opportunities, opportunities into test
hypotheses and hypotheses into draft experiments.
"""

from liftforge.autonomous.builder import ExperimentBuilder
from liftforge.autonomous.hypotheses import HypothesisGenerator, classify_element
from liftforge.autonomous.models import (
    ElementCategory,
    HypothesisChange,
    OptimizationOpportunity,
    PageSignals,
    Severity,
    TestHypothesis,
)
from liftforge.autonomous.opportunities import OpportunityAnalyzer

__all__ = [
    "ElementCategory",
    "ExperimentBuilder",
    "HypothesisChange",
    "HypothesisGenerator",
    "OpportunityAnalyzer",
    "OptimizationOpportunity",
    "PageSignals",
    "Severity",
    "TestHypothesis",
    "classify_element",
]
