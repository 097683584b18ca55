"""Custom exception hierarchy for the RAG decision engine."""


class RAGDecisionError(Exception):
    """Base exception for all decision engine errors."""


class ClassificationError(RAGDecisionError):
    """Error while classifying a query."""


class BudgetError(RAGDecisionError):
    """Error while calculating a token budget."""


class RetrievalFailure(RAGDecisionError):
    """The retrieval collaborator failed or returned an unusable payload."""


class GenerationFailure(RAGDecisionError):
    """The generation collaborator failed (network, quota, malformed reply)."""


class GenerationTimeout(GenerationFailure):
    """The generation call exceeded its timeout."""


class ConfidenceComputationError(RAGDecisionError):
    """Error while computing a confidence assessment."""


class ConfigurationError(RAGDecisionError):
    """Error in system configuration."""


class AuditError(RAGDecisionError):
    """Error writing to the audit trail."""
