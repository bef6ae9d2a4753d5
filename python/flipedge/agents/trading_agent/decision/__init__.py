from .interfaces import DecisionOracle
from .oracle import LlmDecisionOracle

__all__ = ["DecisionOracle", "LlmDecisionOracle"]
