"""
Data models for the Deal Desk engine.

Provides the quote and approval workflow domain models, the priced catalog
entities consumed from the catalog collaborator, and the boundary inputs.
"""

from .catalog import AddOn, Package
from .quote import PaymentKind, Quote, QuoteAddOn, QuoteStatus
from .requests import Actor, CreateQuoteInput, SimilarQuoteQuery
from .workflow import Persona, Step, StepEdit, StepStatus, Workflow

__all__ = [
    # Quote
    'Quote',
    'QuoteAddOn',
    'QuoteStatus',
    'PaymentKind',
    # Workflow
    'Workflow',
    'Step',
    'StepEdit',
    'StepStatus',
    'Persona',
    # Catalog
    'Package',
    'AddOn',
    # Boundary inputs
    'Actor',
    'CreateQuoteInput',
    'SimilarQuoteQuery',
]
