from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from bidsmart.core.exceptions import NormalizationError
from bidsmart.database.models import (
    Bid,
    BidContractor,
    BidEquipment,
    BidScope,
    BidStatus,
    DocumentRecord,
    DocumentStatus,
)
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.schemas.callback import DocumentResult
from bidsmart.services.normalizer import ResultNormalizer


async def load(session, model, id):
    stmt = select(model).where(model.id == id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one()


async def count(session, model, **filters):
    stmt = select(func.count()).select_from(model)
    for name, value in filters.items():
        stmt = stmt.where(getattr(model, name) == value)
    return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_high_confidence_result_populates_bid(db_session, make_project, sample_result):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate(sample_result(document_id, confidence=95))

    outcome = await ResultNormalizer(db_session).apply(bid_id, document_id, result)

    assert outcome.document_status == DocumentStatus.EXTRACTED
    assert outcome.confidence == "high"
    assert outcome.equipment_count == 2

    bid = await load(db_session, Bid, bid_id)
    assert bid.status == BidStatus.COMPLETED
    assert bid.contractor_name == "Comfort Air HVAC"
    assert bid.extraction_confidence == "high"
    assert bid.processing_attempts == 1

    document = await load(db_session, DocumentRecord, document_id)
    assert document.status == DocumentStatus.EXTRACTED
    assert document.extraction_confidence == "high"
    assert document.processing_completed_at is not None

    scope = (await db_session.execute(select(BidScope).where(BidScope.bid_id == bid_id))).scalar_one()
    assert scope.total_bid_amount == 18500.0
    assert scope.estimated_rebates == 3500.0
    assert scope.labor_warranty_years == 10
    assert scope.permit_included is True
    assert scope.extraction_notes == "[warning] Total not itemized"
    assert [item["item_type"] for item in scope.line_items] == ["labor", "other"]

    contractor = (await db_session.execute(
        select(BidContractor).where(BidContractor.bid_id == bid_id)
    )).scalar_one()
    assert contractor.license_number == "C20-123456"

    outdoor = (await db_session.execute(
        select(BidEquipment).where(BidEquipment.bid_id == bid_id, BidEquipment.line_order == 0)
    )).scalar_one()
    assert outdoor.stages == 99
    assert outdoor.refrigerant_type == "R-410A"
    assert outdoor.energy_star_certified is True


@pytest.mark.asyncio
async def test_duplicate_delivery_converges_to_same_rows(db_session, make_project, sample_result):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate(sample_result(document_id))
    normalizer = ResultNormalizer(db_session)

    await normalizer.apply(bid_id, document_id, result)
    await normalizer.apply(bid_id, document_id, result)

    assert await count(db_session, BidEquipment, bid_id=bid_id) == 2
    assert await count(db_session, BidScope, bid_id=bid_id) == 1
    assert await count(db_session, BidContractor, bid_id=bid_id) == 1
    bid = await load(db_session, Bid, bid_id)
    assert bid.status == BidStatus.COMPLETED
    assert bid.processing_attempts == 2


@pytest.mark.asyncio
async def test_low_confidence_and_missing_company_name(db_session, make_project):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate({"document_id": str(document_id), "overall_confidence": 55})

    outcome = await ResultNormalizer(db_session).apply(bid_id, document_id, result)

    assert outcome.document_status == DocumentStatus.REVIEW_NEEDED
    bid = await load(db_session, Bid, bid_id)
    assert bid.contractor_name == "Unknown Contractor"
    assert bid.extraction_confidence == "low"
    assert await count(db_session, BidEquipment, bid_id=bid_id) == 0


@pytest.mark.asyncio
async def test_missing_confidence_falls_back_to_manual(db_session, make_project):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate({"document_id": str(document_id)})

    outcome = await ResultNormalizer(db_session).apply(bid_id, document_id, result)

    assert outcome.confidence == "manual"
    assert outcome.document_status == DocumentStatus.REVIEW_NEEDED


@pytest.mark.asyncio
async def test_reported_failure_marks_bid_and_document_failed(db_session, make_project):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate({
        "document_id": str(document_id),
        "status": "failed",
        "error": {"code": "UNREADABLE", "message": "Scanned image too blurry"},
    })

    outcome = await ResultNormalizer(db_session).apply(bid_id, document_id, result)

    assert outcome.document_status == DocumentStatus.FAILED
    bid = await load(db_session, Bid, bid_id)
    assert bid.status == BidStatus.FAILED
    assert bid.last_error == "Scanned image too blurry"
    assert bid.processing_attempts == 1
    document = await load(db_session, DocumentRecord, document_id)
    assert document.status == DocumentStatus.FAILED
    assert document.error_message == "Scanned image too blurry"


@pytest.mark.asyncio
async def test_write_error_rolls_back_and_counts_attempt_once(db_session, make_project, sample_result):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate(sample_result(document_id))

    with patch.object(BidRepository, "upsert_scope", AsyncMock(side_effect=SQLAlchemyError("disk full"))):
        outcome = await ResultNormalizer(db_session).apply(bid_id, document_id, result)

    assert outcome.document_status == DocumentStatus.FAILED
    assert "disk full" in outcome.error

    bid = await load(db_session, Bid, bid_id)
    assert bid.status == BidStatus.FAILED
    assert bid.processing_attempts == 1
    # The partial write of the failed transaction is gone
    assert bid.contractor_name is None
    assert await count(db_session, BidContractor, bid_id=bid_id) == 0

    document = await load(db_session, DocumentRecord, document_id)
    assert document.status == DocumentStatus.FAILED


@pytest.mark.asyncio
async def test_failure_to_record_failure_raises(db_session, make_project, sample_result):
    seeded = await make_project()
    bid_id, document_id = seeded.bid_ids[0], seeded.document_ids[0]
    result = DocumentResult.model_validate(sample_result(document_id))

    with patch.object(BidRepository, "upsert_scope", AsyncMock(side_effect=SQLAlchemyError("disk full"))), \
            patch.object(DocumentRepository, "record_result", AsyncMock(side_effect=SQLAlchemyError("still full"))):
        with pytest.raises(NormalizationError):
            await ResultNormalizer(db_session).apply(bid_id, document_id, result)
