from .classifier import (
    Classifier,
    PydanticAIClassifier,
    StaticClassifier,
    TextClassifier,
    parse_ai_response,
)
from .models import AnalysisSession, Assignment, AssignmentResult, Decision
from .orchestrator import AnalysisOrchestrator, expected_payout_for

__all__ = [
    "Classifier",
    "PydanticAIClassifier",
    "StaticClassifier",
    "TextClassifier",
    "parse_ai_response",
    "AnalysisSession",
    "Assignment",
    "AssignmentResult",
    "Decision",
    "AnalysisOrchestrator",
    "expected_payout_for",
]
