"""
Deal desk engine components.

Pure rules (pricing, chain building, gating, similarity ranking) and the
transactional WorkflowEngine that applies them.
"""

from .chain import ChainRule, build_chain, is_bespoke
from .gating import apply_edit, derive_quote_status, gate, initialize_steps
from .pricing import PricingResult, calculate_pricing
from .similarity import SimilarityRanker, SimilarityScore, SimilarQuote
from .workflow import WorkflowEngine, WorkflowResult

__all__ = [
    # Pricing
    'PricingResult',
    'calculate_pricing',
    # Chain
    'ChainRule',
    'build_chain',
    'is_bespoke',
    # Gating
    'initialize_steps',
    'gate',
    'derive_quote_status',
    'apply_edit',
    # Workflow
    'WorkflowEngine',
    'WorkflowResult',
    # Similarity
    'SimilarityRanker',
    'SimilarityScore',
    'SimilarQuote',
]
