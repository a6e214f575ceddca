"""
Quote service: the engine's public surface.

Provides:
1. Quote creation (catalog lookup, pricing, chain building, workflow
   initialization in one transaction, best-effort contract drafting)
2. Approval actions and workflow edits (delegated to WorkflowEngine)
3. Similar-quote search and autofill for the copilot
4. Quote lookup and listing

Input problems on creation and search come back as structured results
({status: 'error', code, message}) so a conversational caller can correct
and resubmit. Workflow errors are raised.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Sequence
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from .clients.catalog import Catalog
from .clients.database import DatabaseClient
from .config import config
from .documents import DocumentGenerator
from .engine.chain import ChainRule, build_chain
from .engine.pricing import PricingResult, calculate_pricing
from .engine.similarity import SimilarityRanker, SimilarQuote
from .engine.validation import normalize_payment_terms, validate_discount, validate_seats
from .engine.workflow import WorkflowEngine
from .errors import (
    CatalogError,
    DealDeskError,
    NotFoundError,
    ResolutionError,
    ValidationError,
)
from .logging import OperationTimer, get_logger, logging_context
from .models.catalog import AddOn, Package
from .models.quote import Quote, QuoteAddOn, QuoteStatus
from .models.requests import Actor, CreateQuoteInput, SimilarQuoteQuery
from .models.workflow import Persona, StepEdit
from .repository import QuoteRepository
from .utils import utcnow

logger = get_logger(__name__)


# =============================================================================
# Result Models
# =============================================================================


@dataclass
class CreateQuoteResult:
    """Outcome of create_quote."""

    quote_id: UUID | None = None
    pricing: PricingResult | None = None
    chain: list[Persona] = field(default_factory=list)
    quote_status: QuoteStatus | None = None
    contract_generated: bool = False
    error: DealDeskError | None = None
    stage_timings: dict[str, float] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        if self.error is not None:
            return {'status': 'error', 'code': self.error.code, 'message': self.error.message}
        return {
            'status': 'ok',
            'quote_id': str(self.quote_id),
            'pricing': self.pricing.to_dict() if self.pricing else None,
            'chain': [p.value for p in self.chain],
            'quote_status': self.quote_status.value if self.quote_status else None,
            'contract_generated': self.contract_generated,
        }


def _error_result(error: DealDeskError) -> dict[str, Any]:
    return {'status': 'error', 'code': error.code, 'message': error.message}


def _pydantic_to_validation_error(exc: PydanticValidationError) -> ValidationError:
    first = exc.errors()[0] if exc.errors() else {}
    field_name = '.'.join(str(p) for p in first.get('loc', ()))
    message = first.get('msg', 'invalid input')
    return ValidationError(
        f'{field_name}: {message}' if field_name else message,
        context={'field': field_name},
    )


# =============================================================================
# QuoteService
# =============================================================================


class QuoteService:
    """
    Orchestrates quote creation, approvals and similarity lookups.

    Usage:
        db = DatabaseClient(config.DATABASE_URL)
        await db.connect()
        service = QuoteService(db, SqlCatalog(db))
        result = await service.create_quote({...}, actor=actor)
    """

    def __init__(
        self,
        db: DatabaseClient,
        catalog: Catalog,
        document_generator: DocumentGenerator | None = None,
        clock: Callable[[], datetime] = utcnow,
        chain_rule: ChainRule = ChainRule.CANONICAL,
        ranker: SimilarityRanker | None = None,
        workflow_engine: WorkflowEngine | None = None,
    ):
        """
        Args:
            db: Connected DatabaseClient
            catalog: Package/add-on resolver
            document_generator: Optional contract drafter; None (or
                CONTRACT_GENERATION_ENABLED=false) disables drafting
            clock: Source of "now" (injectable for tests)
            chain_rule: Approval chain rule for new quotes
            ranker: Similarity ranker (default: configured limits)
            workflow_engine: Workflow engine (default: one sharing db and clock)
        """
        self.db = db
        self.catalog = catalog
        self.documents = document_generator
        self.clock = clock
        self.chain_rule = chain_rule
        self.ranker = ranker or SimilarityRanker()
        self.workflow = workflow_engine or WorkflowEngine(db, clock=clock)

    # =========================================================================
    # Quote Creation
    # =========================================================================

    async def create_quote(
        self,
        data: CreateQuoteInput | dict[str, Any],
        actor: Actor | None = None,
    ) -> CreateQuoteResult:
        """
        Create a priced quote with its approval workflow.

        The quote row and the workflow are written in one transaction. The
        contract document is requested afterwards and a failure there only
        leaves the document empty.

        Returns:
            CreateQuoteResult; `error` is set for validation, resolution and
            catalog failures

        Raises:
            DatabaseError: the store is unavailable
        """
        timer = OperationTimer()
        actor_id = actor.user_id if actor else None

        try:
            if not isinstance(data, CreateQuoteInput):
                data = CreateQuoteInput.model_validate(data)
        except PydanticValidationError as exc:
            error = _pydantic_to_validation_error(exc)
            logger.info('quote_service.create_rejected', code=error.code, message=error.message)
            return CreateQuoteResult(error=error)

        org_id = self._resolve_org(data.org_id, actor)

        with logging_context(org_id=org_id, actor_id=actor_id):
            try:
                with timer.stage('validate'):
                    self._require_fields(data, org_id)
                    seats = validate_seats(data.seats)
                    discount = validate_discount(
                        data.discount_percent if data.discount_percent is not None else 0
                    )
                    payment_kind, net_days, prepay = normalize_payment_terms(
                        data.payment_kind, data.net_days, data.prepay_percent
                    )

                with timer.stage('resolve'):
                    package, add_ons = await self._resolve_catalog(data, org_id)

                with timer.stage('price'):
                    pricing = calculate_pricing(
                        package.unit_price,
                        seats,
                        [a.unit_price for a in add_ons],
                        discount,
                    )
                    chain = build_chain(discount, payment_kind, net_days, rule=self.chain_rule)
            except (ValidationError, ResolutionError, CatalogError) as exc:
                logger.info(
                    'quote_service.create_rejected',
                    code=exc.code,
                    message=exc.message,
                    context=exc.context,
                    **timer.summary(),
                )
                return CreateQuoteResult(error=exc, stage_timings=timer.stages)

            now = self.clock()
            quote = Quote(
                org_id=org_id,
                org_name=actor.org_name if actor else None,
                package_id=package.id,
                package_name=package.name,
                seats=seats,
                customer_name=data.customer_name,
                add_ons=[
                    QuoteAddOn(add_on_id=a.id, name=a.name, unit_price=a.unit_price)
                    for a in add_ons
                ],
                payment_kind=payment_kind,
                net_days=net_days,
                prepay_percent=prepay,
                subtotal=pricing.subtotal,
                discount_percent=pricing.discount_percent,
                total=pricing.total,
                created_by=actor_id,
                created_at=now,
                updated_at=now,
            )

            with timer.stage('persist'):
                async with self.db.transaction() as conn:
                    await QuoteRepository(conn).insert_quote(quote)
                    await self.workflow.initialize(conn, quote, chain, submitter_id=actor_id)

            contract_generated = False
            if self.documents is not None and config.CONTRACT_GENERATION_ENABLED:
                with timer.stage('contract'):
                    contract_generated = await self._attach_contract(quote, package)

            logger.info(
                'quote_service.quote_created',
                quote_id=str(quote.id),
                total=str(pricing.total),
                chain=[p.value for p in chain],
                status=quote.status.value,
                **timer.summary(),
            )
            return CreateQuoteResult(
                quote_id=quote.id,
                pricing=pricing,
                chain=chain,
                quote_status=quote.status,
                contract_generated=contract_generated,
                stage_timings=timer.stages,
            )

    def _resolve_org(self, requested: str | None, actor: Actor | None) -> str | None:
        return requested or (actor.org_id if actor else None) or config.DEFAULT_ORG_ID or None

    @staticmethod
    def _require_fields(data: CreateQuoteInput, org_id: str | None) -> None:
        if not org_id:
            raise ValidationError('organization could not be determined', context={'field': 'org_id'})
        if not data.package_ref:
            raise ValidationError(
                'package_id or product_name is required',
                context={'field': 'package_id'},
            )
        if not data.customer_name:
            raise ValidationError('customer_name is required', context={'field': 'customer_name'})

    async def _resolve_catalog(
        self,
        data: CreateQuoteInput,
        org_id: str,
    ) -> tuple[Package, list[AddOn]]:
        """
        Resolve the package and add-ons.

        Raises:
            ResolutionError: a reference matched nothing, or was ambiguous
            CatalogError: the catalog itself failed
        """
        refs = data.add_on_refs
        try:
            package = await self.catalog.resolve_package(data.package_ref, org_id=org_id)
            resolved = await self.catalog.resolve_add_ons(refs, org_id=org_id) if refs else []
        except DealDeskError:
            raise
        except Exception as exc:
            raise CatalogError(
                f'Catalog lookup failed: {exc}',
                context={'error_type': type(exc).__name__},
            ) from exc

        if package is None:
            raise ResolutionError(
                f'No package matches "{data.package_ref}"',
                context={'reference': data.package_ref},
            )
        missing = [ref for ref, add_on in zip(refs, resolved) if add_on is None]
        if missing:
            raise ResolutionError(
                f'No add-on matches {", ".join(missing)}',
                context={'references': missing},
            )

        # The same add-on named twice (by id and by name) is charged once
        unique: dict[str, AddOn] = {}
        for add_on in resolved:
            unique.setdefault(add_on.id, add_on)
        return package, list(unique.values())

    async def _attach_contract(self, quote: Quote, package: Package) -> bool:
        try:
            document = await self.documents.generate(quote, unit_price=str(package.unit_price))
            if not document:
                return False
            async with self.db.transaction() as conn:
                await QuoteRepository(conn).update_contract_document(
                    quote.id, document, self.clock()
                )
        except Exception as exc:
            logger.warning(
                'quote_service.contract_failed',
                quote_id=str(quote.id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        quote.contract_document = document
        return True

    # =========================================================================
    # Approval Actions and Edits
    # =========================================================================

    async def approve_as_role(
        self,
        quote_id: UUID | str,
        role: Persona | str,
        actor: Actor | None = None,
    ) -> dict[str, Any]:
        """Approve the pending step. Raises NotFoundError, PersonaMismatchError, AuthorizationError."""
        with logging_context(actor_id=actor.user_id if actor else None, quote_id=str(quote_id)):
            result = await self.workflow.approve_as_role(quote_id, role, actor=actor)
        return result.to_dict()

    async def reject_as_role(
        self,
        quote_id: UUID | str,
        role: Persona | str,
        actor: Actor | None = None,
    ) -> dict[str, Any]:
        """Reject the pending step, freezing the workflow."""
        with logging_context(actor_id=actor.user_id if actor else None, quote_id=str(quote_id)):
            result = await self.workflow.reject_as_role(quote_id, role, actor=actor)
        return result.to_dict()

    async def replace_workflow(
        self,
        quote_id: UUID | str,
        steps: Sequence[StepEdit | dict[str, Any]],
    ) -> dict[str, Any]:
        """Full-replace edit of the step list. Raises InvalidEditError."""
        with logging_context(quote_id=str(quote_id)):
            result = await self.workflow.replace_steps(quote_id, steps)
        return result.to_dict()

    async def delete_step(self, quote_id: UUID | str, step_id: UUID | str) -> dict[str, Any]:
        with logging_context(quote_id=str(quote_id)):
            result = await self.workflow.delete_step(quote_id, step_id)
        return result.to_dict()

    async def mark_sold(self, quote_id: UUID | str) -> dict[str, Any]:
        with logging_context(quote_id=str(quote_id)):
            result = await self.workflow.mark_sold(quote_id)
        return result.to_dict()

    # =========================================================================
    # Similarity
    # =========================================================================

    async def _rank(self, query: SimilarQuoteQuery, org_id: str | None) -> list[SimilarQuote]:
        now = self.clock()
        since = now - timedelta(days=config.SIMILARITY_LOOKBACK_DAYS)
        async with self.db.connection() as conn:
            candidates = await QuoteRepository(conn).list_similarity_candidates(
                since, config.SIMILARITY_CANDIDATE_LIMIT, org_id=org_id
            )
        return self.ranker.rank(query, candidates, now)

    async def find_similar_quotes(
        self,
        query: SimilarQuoteQuery | dict[str, Any],
        actor: Actor | None = None,
    ) -> dict[str, Any]:
        """
        Rank approved and sold quotes against partial deal attributes.

        Returns:
            {status: 'ok', results: [...]} or {status: 'error', code, message}
        """
        try:
            if not isinstance(query, SimilarQuoteQuery):
                query = SimilarQuoteQuery.model_validate(query)
        except PydanticValidationError as exc:
            return _error_result(_pydantic_to_validation_error(exc))

        if not query.has_criteria:
            return _error_result(ValidationError('at least one search criterion is required'))

        org_id = self._resolve_org(None, actor)
        timer = OperationTimer()
        with timer.stage('rank'):
            ranked = await self._rank(query, org_id)

        logger.info(
            'quote_service.similar_quotes',
            org_id=org_id,
            results=len(ranked),
            top_score=ranked[0].score if ranked else None,
            **timer.summary(),
        )
        return {'status': 'ok', 'results': [r.to_dict() for r in ranked]}

    async def autofill(
        self,
        data: CreateQuoteInput | dict[str, Any],
        actor: Actor | None = None,
    ) -> dict[str, Any]:
        """
        Fill the missing fields of a partial create-quote input from the
        closest historical match. Supplied fields are never overwritten.

        Returns:
            {status: 'ok', input, filled, source_quote_id} or an error result
        """
        try:
            if not isinstance(data, CreateQuoteInput):
                data = CreateQuoteInput.model_validate(data)
        except PydanticValidationError as exc:
            return _error_result(_pydantic_to_validation_error(exc))

        query = SimilarQuoteQuery.from_create_input(data)
        if not query.has_criteria:
            return _error_result(ValidationError('at least one deal attribute is required'))

        org_id = self._resolve_org(data.org_id, actor)
        ranked = await self._rank(query, org_id)
        if not ranked:
            return {
                'status': 'ok',
                'input': data.model_dump(mode='json'),
                'filled': [],
                'source_quote_id': None,
            }

        source = ranked[0].quote
        updates: dict[str, Any] = {}
        if not data.package_ref:
            updates['package_id'] = source.package_id
        if data.seats is None:
            updates['seats'] = source.seats
        if data.discount_percent is None:
            updates['discount_percent'] = source.discount_percent
        if not data.add_on_refs and source.add_ons:
            updates['add_on_ids'] = source.add_on_ids
        if data.payment_kind is None:
            updates['payment_kind'] = source.payment_kind
            if data.net_days is None and source.net_days is not None:
                updates['net_days'] = source.net_days
            if data.prepay_percent is None and source.prepay_percent is not None:
                updates['prepay_percent'] = source.prepay_percent

        filled = data.model_copy(update=updates)
        logger.info(
            'quote_service.autofilled',
            source_quote_id=str(source.id),
            filled=sorted(updates),
        )
        return {
            'status': 'ok',
            'input': filled.model_dump(mode='json'),
            'filled': sorted(updates),
            'source_quote_id': str(source.id),
            'similarity': ranked[0].similarity.to_dict(),
        }

    # =========================================================================
    # Lookup
    # =========================================================================

    async def get_quote(self, quote_id: UUID | str) -> dict[str, Any]:
        """Deal summary with workflow steps. Raises NotFoundError."""
        try:
            quote_uuid = quote_id if isinstance(quote_id, UUID) else UUID(str(quote_id))
        except ValueError:
            raise NotFoundError('Quote not found', context={'quote_id': str(quote_id)}) from None

        async with self.db.connection() as conn:
            quote = await QuoteRepository(conn).get_quote(quote_uuid)
        if quote is None:
            raise NotFoundError('Quote not found', context={'quote_id': str(quote_uuid)})
        return quote.to_summary()

    async def list_quotes(self, search: str | None = None) -> list[dict[str, Any]]:
        """All quotes newest first, optionally filtered by customer or org name."""
        async with self.db.connection() as conn:
            quotes = await QuoteRepository(conn).list_quotes(search=search)
        return [q.to_summary() for q in quotes]
