"""History budgeting, pairing validation and summarization."""

from .context_policy import BudgetDecision, ContextBudgetPolicy, estimate_message_tokens
from .pairing import PairingReport, ProtocolViolation, validate_invocation_pairs
from .summarizer import HistorySummarizer, SummaryResult

__all__ = [
    "BudgetDecision",
    "ContextBudgetPolicy",
    "estimate_message_tokens",
    "PairingReport",
    "ProtocolViolation",
    "validate_invocation_pairs",
    "HistorySummarizer",
    "SummaryResult",
]
