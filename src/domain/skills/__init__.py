"""AI Skills.

Model-assisted clinical and operational skills built on ``BaseSkill``.
Each skill keeps a rule-based path so callers get a result, marked for
review, when the model is unavailable.
"""

from src.domain.skills.accuracy_tracking import AccuracyTracker
from src.domain.skills.base import BaseSkill
from src.domain.skills.bed_optimizer import BedOptimizer
from src.domain.skills.billing_codes import BillingCodeSuggester
from src.domain.skills.care_plan import CarePlanGenerator
from src.domain.skills.fall_risk import FallRiskPredictor
from src.domain.skills.hl7_interpreter import HL7Interpreter
from src.domain.skills.welfare_dispatch import WelfareCheckDispatcher

__all__ = [
    'AccuracyTracker',
    'BaseSkill',
    'BedOptimizer',
    'BillingCodeSuggester',
    'CarePlanGenerator',
    'FallRiskPredictor',
    'HL7Interpreter',
    'WelfareCheckDispatcher',
]
