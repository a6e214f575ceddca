"""
Similar-quote ranking.

Scores historical quotes against a partially specified deal with a fixed,
additive rule table. Each rule that fires contributes points and a reason
label, so every result explains itself:

    package id match                        +4  "same packageId"
    package name, exact (no id in query)    +3  "same package name"
    package name, substring                 +2  "similar package name"
    seats exact / within 10 / within 20     +3 / +2 / +1
    discount exact / within tolerance       +2 / +1
    overlapping add-ons                     +1 each, at most +3
    same payment kind                       +1
    created within the recent window        +1  "recent"

Tolerance for the discount rule is max(1, round(10% of the query discount)).
Candidates scoring 0 are dropped; the rest sort by score, newest first on
ties.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Sequence

from ..config import config
from ..models.quote import Quote
from ..models.requests import SimilarQuoteQuery
from ..utils import round_half_up

MAX_ADD_ON_POINTS = 3
SEAT_CLOSE_DIFF = 10
SEAT_SIMILAR_DIFF = 20


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class SimilarityScore:
    """Points and fired-rule labels for one candidate."""

    score: int = 0
    reasons: list[str] = field(default_factory=list)

    def add(self, points: int, reason: str) -> None:
        self.score += points
        self.reasons.append(reason)

    def to_dict(self) -> dict[str, Any]:
        return {'score': self.score, 'reasons': list(self.reasons)}


@dataclass
class SimilarQuote:
    """A ranked candidate with its explanation."""

    quote: Quote
    similarity: SimilarityScore

    @property
    def score(self) -> int:
        return self.similarity.score

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.quote.to_summary(),
            'similarity': self.similarity.to_dict(),
        }


# =============================================================================
# Rules
# =============================================================================


def discount_tolerance(query_discount: Decimal) -> int:
    """max(1, round(10% of the query discount))."""
    return max(1, round_half_up(query_discount * Decimal('0.1')))


def _score_package(query: SimilarQuoteQuery, candidate: Quote, result: SimilarityScore) -> None:
    if query.package_id:
        if candidate.package_id == query.package_id:
            result.add(4, 'same packageId')
        return
    if query.product_name:
        wanted = query.product_name.lower()
        name = candidate.package_name.lower()
        if name == wanted:
            result.add(3, 'same package name')
        elif wanted in name:
            result.add(2, 'similar package name')


def _score_seats(query: SimilarQuoteQuery, candidate: Quote, result: SimilarityScore) -> None:
    if query.seats is None:
        return
    diff = abs(candidate.seats - query.seats)
    if diff == 0:
        result.add(3, 'exact seat count')
    elif diff <= SEAT_CLOSE_DIFF:
        result.add(2, 'close seat count')
    elif diff <= SEAT_SIMILAR_DIFF:
        result.add(1, 'similar seat count')


def _score_discount(query: SimilarQuoteQuery, candidate: Quote, result: SimilarityScore) -> None:
    if query.discount_percent is None:
        return
    diff = abs(candidate.discount_percent - query.discount_percent)
    if diff == 0:
        result.add(2, 'exact discount')
    elif diff <= discount_tolerance(query.discount_percent):
        result.add(1, 'close discount')


def _score_add_ons(query: SimilarQuoteQuery, candidate: Quote, result: SimilarityScore) -> None:
    if not (query.add_on_ids or query.add_on_names):
        return
    wanted_ids = set(query.add_on_ids)
    wanted_names = [n.lower() for n in query.add_on_names]
    overlap = sum(
        1
        for add_on in candidate.add_ons
        if add_on.add_on_id in wanted_ids
        or any(n in add_on.name.lower() for n in wanted_names)
    )
    if overlap:
        points = min(overlap, MAX_ADD_ON_POINTS)
        result.add(points, f'shared add-ons ({overlap})')


def _score_payment(query: SimilarQuoteQuery, candidate: Quote, result: SimilarityScore) -> None:
    if query.payment_kind is not None and candidate.payment_kind == query.payment_kind:
        result.add(1, 'same payment terms')


# =============================================================================
# SimilarityRanker
# =============================================================================


class SimilarityRanker:
    """
    Ranks candidate quotes for a query.

    Pure: the candidate set is fetched by the caller (approved or sold quotes
    from the lookback window, newest first, capped).
    """

    def __init__(
        self,
        result_limit: int | None = None,
        recent_days: int | None = None,
    ):
        """
        Args:
            result_limit: Maximum results returned (default: 10)
            recent_days: Window for the recency bonus (default: 90)
        """
        self.result_limit = (
            result_limit if result_limit is not None else config.SIMILARITY_RESULT_LIMIT
        )
        self.recent_days = (
            recent_days if recent_days is not None else config.SIMILARITY_RECENT_DAYS
        )

    def score(self, query: SimilarQuoteQuery, candidate: Quote, now: datetime) -> SimilarityScore:
        """Apply every rule to one candidate."""
        result = SimilarityScore()
        _score_package(query, candidate, result)
        _score_seats(query, candidate, result)
        _score_discount(query, candidate, result)
        _score_add_ons(query, candidate, result)
        _score_payment(query, candidate, result)
        if now - candidate.created_at <= timedelta(days=self.recent_days):
            result.add(1, 'recent')
        return result

    def rank(
        self,
        query: SimilarQuoteQuery,
        candidates: Sequence[Quote],
        now: datetime,
    ) -> list[SimilarQuote]:
        """
        Score, drop zero scores, sort by score then recency, truncate.
        """
        scored = [SimilarQuote(quote=c, similarity=self.score(query, c, now)) for c in candidates]
        matches = [m for m in scored if m.score > 0]
        matches.sort(key=lambda m: (m.score, m.quote.created_at), reverse=True)
        return matches[: self.result_limit]
