"""Inbound extraction callback handling.

Order of work for one delivery:

1. authenticate (fields, HMAC, freshness) before reading anything else
2. parse the body and resolve every target bid; a structural problem
   rejects the whole delivery before any row is written
3. store the raw delivery for audit
4. normalize each document in its own transaction
5. write batch artifacts (FAQs, questions) with dedup keys
6. re-evaluate the project (aggregator, then notification gate)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from uuid import UUID

import pydantic
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.exceptions import CallbackValidationError, StructuralError
from bidsmart.database.models import BatchStatus, DocumentStatus
from bidsmart.repositories.artifact_repository import ArtifactRepository
from bidsmart.repositories.batch_repository import BatchRepository
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.extraction_log_repository import ExtractionLogRepository
from bidsmart.repositories.project_repository import ProjectRepository
from bidsmart.schemas.callback import CallbackEnvelope, CallbackOutcome, DocumentResult
from bidsmart.services.aggregator import BatchAggregator
from bidsmart.services.base_service import BaseService
from bidsmart.services.callback_verifier import CallbackVerifier
from bidsmart.services.normalizer import ResultNormalizer, numeric_confidence
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class _Target:
    bid_id: UUID
    document_id: UUID
    result: DocumentResult


class CallbackService(BaseService):
    """Applies one authenticated callback delivery end to end."""

    def __init__(
        self,
        session: AsyncSession,
        verifier: Optional[CallbackVerifier] = None,
        normalizer: Optional[ResultNormalizer] = None,
        aggregator: Optional[BatchAggregator] = None,
    ):
        super().__init__()
        self.session = session
        self.verifier = verifier or CallbackVerifier()
        self.normalizer = normalizer or ResultNormalizer(session)
        self.aggregator = aggregator or BatchAggregator(session)
        self.batches = BatchRepository(session)
        self.bids = BidRepository(session)
        self.artifacts = ArtifactRepository(session)
        self.logs = ExtractionLogRepository(session)
        self.projects = ProjectRepository(session)

    async def run(self, body: dict) -> CallbackOutcome:
        verified = self.verifier.verify(body)
        envelope = self._parse(verified.body)

        batch = await self.batches.get_by_request_id(verified.request_id)
        if batch is None:
            LOGGER.warning("Callback for unknown batch")
            raise StructuralError("Unknown request id")

        project_id = batch.project_id
        request_id = batch.request_id
        batch_document_ids = [UUID(str(d)) for d in batch.document_ids]

        bids_by_document = await self.bids.get_by_document_ids(batch_document_ids)
        bid_ids_by_document = {doc_id: bid.id for doc_id, bid in bids_by_document.items()}
        targets = await self._resolve_targets(envelope, project_id, batch_document_ids)

        log = await self.logs.log_delivery(request_id, project_id, envelope.status, verified.body)
        log_id = log.id
        await self.session.commit()

        LOGGER.info(
            "Processing extraction callback",
            extra={"request_id": request_id, "project_id": str(project_id), "documents": len(targets)}
        )

        outcomes = [
            await self.normalizer.apply(target.bid_id, target.document_id, target.result)
            for target in targets
        ]
        errors = [f"{o.document_id}: {o.error}" for o in outcomes if o.error]

        faqs_written = questions_written = duplicates = 0
        if not envelope.is_batch_failure and (envelope.faqs or envelope.questions):
            try:
                faqs_written, questions_written, duplicates = await self._write_artifacts(
                    envelope, project_id, request_id, bid_ids_by_document
                )
                await self.session.commit()
            except SQLAlchemyError as e:
                await self.session.rollback()
                LOGGER.error(
                    "Failed to store batch artifacts",
                    exc_info=True,
                    extra={"request_id": request_id}
                )
                errors.append(f"artifacts: {e}")
                faqs_written = questions_written = duplicates = 0

        failed = sum(1 for o in outcomes if o.document_status == DocumentStatus.FAILED)
        if failed == len(outcomes):
            batch_status = BatchStatus.FAILED
        elif failed:
            batch_status = BatchStatus.PARTIAL
        else:
            batch_status = BatchStatus.COMPLETED

        await self.batches.record_callback(request_id, batch_status)
        await self.logs.mark_processed(
            log_id,
            parsed_successfully=not errors,
            parsing_errors=errors,
            overall_confidence=self._overall_confidence(targets),
        )
        await self.session.commit()

        aggregation = await self.aggregator.evaluate(project_id)
        project = await self.projects.get_fresh(project_id)

        return CallbackOutcome(
            request_id=request_id,
            project_id=project_id,
            documents={str(o.document_id): o.document_status for o in outcomes},
            faqs_written=faqs_written,
            questions_written=questions_written,
            duplicate_questions_skipped=duplicates,
            project_status=project.status if project else "unknown",
            ready_to_compare=aggregation.ready_to_compare,
            notification=aggregation.notification.to_dict() if aggregation.notification else None,
        )

    @staticmethod
    def _parse(body: dict) -> CallbackEnvelope:
        try:
            return CallbackEnvelope.model_validate(body)
        except pydantic.ValidationError as e:
            LOGGER.warning(f"Malformed callback body: {e.error_count()} validation errors")
            raise CallbackValidationError(f"Malformed callback body: {e.error_count()} validation errors", original_error=e)

    async def _resolve_targets(
        self,
        envelope: CallbackEnvelope,
        project_id: UUID,
        batch_document_ids: List[UUID],
    ) -> List[_Target]:
        """Pair every result with its bid, or raise before anything is written.

        Raises:
            StructuralError: Unknown document, document outside the batch,
                bid of another project, or an ambiguous result
        """
        if envelope.is_batch_failure:
            failure = DocumentResult(status="failed", error=envelope.error)
            pairs = [(doc_id, failure) for doc_id in batch_document_ids]
        else:
            pairs = []
            for result in envelope.document_results():
                doc_id = result.document_id
                if doc_id is None:
                    if len(batch_document_ids) != 1:
                        raise StructuralError("Result without document_id in a multi-document batch")
                    doc_id = batch_document_ids[0]
                pairs.append((doc_id, result))

        seen = [doc_id for doc_id, _ in pairs]
        if len(set(seen)) != len(seen):
            raise StructuralError("Callback carries more than one result for the same document")

        bids = await self.bids.get_by_document_ids(seen)
        targets = []
        for doc_id, result in pairs:
            bid = bids.get(doc_id)
            if bid is None:
                LOGGER.warning("Callback result for unknown document", extra={"document_id": str(doc_id)})
                raise StructuralError(f"No bid found for document {doc_id}")
            if bid.project_id != project_id:
                LOGGER.warning(
                    "Callback result targets a bid of another project",
                    extra={"document_id": str(doc_id), "batch_project_id": str(project_id)}
                )
                raise StructuralError(f"Document {doc_id} does not belong to the batch's project")
            if doc_id not in batch_document_ids:
                raise StructuralError(f"Document {doc_id} was not part of this batch")
            targets.append(_Target(bid_id=bid.id, document_id=doc_id, result=result))

        return targets

    async def _write_artifacts(
        self,
        envelope: CallbackEnvelope,
        project_id: UUID,
        request_id: str,
        bid_ids_by_document: Dict[UUID, UUID],
    ) -> Tuple[int, int, int]:
        faqs_written = 0
        for faq in envelope.faqs:
            bid_id = bid_ids_by_document.get(faq.document_id) if faq.document_id else None
            if faq.document_id and bid_id is None:
                LOGGER.warning("Skipping FAQ for document outside the batch", extra={"request_id": request_id})
                continue
            await self.artifacts.upsert_faq(
                project_id,
                bid_id,
                faq.faq_key,
                {
                    "question_text": faq.question_text,
                    "answer_text": faq.answer_text,
                    "answer_confidence": faq.answer_confidence,
                    "is_answered": faq.is_answered,
                    "display_order": faq.display_order,
                    "request_id": request_id,
                },
            )
            faqs_written += 1

        questions_written = duplicates = 0
        for question in envelope.questions:
            bid_id = bid_ids_by_document.get(question.document_id)
            if bid_id is None:
                LOGGER.warning("Skipping question for document outside the batch", extra={"request_id": request_id})
                continue
            inserted = await self.artifacts.insert_question(
                bid_id,
                {
                    "question_text": question.question_text,
                    "question_category": question.question_category,
                    "priority": question.priority,
                    "missing_field": question.missing_field,
                    "display_order": question.display_order,
                    "auto_generated": question.auto_generated,
                    "request_id": request_id,
                },
            )
            if inserted:
                questions_written += 1
            else:
                duplicates += 1

        if duplicates:
            LOGGER.info(
                "Skipped duplicate contractor questions from redelivered callback",
                extra={"request_id": request_id, "duplicates": duplicates}
            )
        return faqs_written, questions_written, duplicates

    @staticmethod
    def _overall_confidence(targets: List[_Target]) -> Optional[float]:
        scores = [
            score for score in (numeric_confidence(t.result.overall_confidence) for t in targets)
            if score is not None
        ]
        return round(sum(scores) / len(scores), 2) if scores else None
