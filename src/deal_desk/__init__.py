"""
Deal Desk Engine

Quote pricing, gated multi-party approval workflows and explainable
similar-deal ranking over a relational store.
"""

__version__ = '0.1.0'

# Re-export key classes for convenience
from .service import QuoteService, CreateQuoteResult
from .engine import (
    ChainRule,
    PricingResult,
    SimilarityRanker,
    WorkflowEngine,
    build_chain,
    calculate_pricing,
)
from .clients import DatabaseClient, SqlCatalog, StaticCatalog
from .documents import ContractGenerator
from .logging import (
    configure_logging,
    get_logger,
    logging_context,
    OperationTimer,
)
from .errors import (
    DealDeskError,
    ValidationError,
    ResolutionError,
    WorkflowError,
    NotFoundError,
    PersonaMismatchError,
    AuthorizationError,
    InvalidEditError,
    QuoteStateError,
    ExternalServiceError,
    CatalogError,
    OpenAIError,
    DatabaseError,
)

__all__ = [
    # Version
    '__version__',
    # Service
    'QuoteService',
    'CreateQuoteResult',
    # Engine
    'WorkflowEngine',
    'SimilarityRanker',
    'ChainRule',
    'PricingResult',
    'build_chain',
    'calculate_pricing',
    # Clients
    'DatabaseClient',
    'SqlCatalog',
    'StaticCatalog',
    'ContractGenerator',
    # Logging
    'configure_logging',
    'get_logger',
    'logging_context',
    'OperationTimer',
    # Errors
    'DealDeskError',
    'ValidationError',
    'ResolutionError',
    'WorkflowError',
    'NotFoundError',
    'PersonaMismatchError',
    'AuthorizationError',
    'InvalidEditError',
    'QuoteStateError',
    'ExternalServiceError',
    'CatalogError',
    'OpenAIError',
    'DatabaseError',
]
