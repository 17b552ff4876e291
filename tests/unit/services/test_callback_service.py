from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select

from bidsmart.core.exceptions import (
    CallbackAuthenticationError,
    CallbackValidationError,
    StructuralError,
)
from bidsmart.database.models import (
    Bid,
    BidFaq,
    BidStatus,
    ContractorQuestion,
    DocumentRecord,
    DocumentStatus,
    ExtractionBatch,
    ExtractionLog,
    Project,
    ProjectStatus,
)
from bidsmart.services.aggregator import BatchAggregator
from bidsmart.services.callback_service import CallbackService
from bidsmart.services.notification_service import NotificationGate


@pytest.fixture
def callback_service(db_session, mock_email_service):
    gate = NotificationGate(db_session, email_service=mock_email_service)
    return CallbackService(db_session, aggregator=BatchAggregator(db_session, notification_gate=gate))


async def load(session, model, id):
    stmt = select(model).where(model.id == id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one()


async def count(session, model):
    return (await session.execute(select(func.count()).select_from(model))).scalar_one()


@pytest.mark.asyncio
async def test_full_batch_moves_project_to_comparing_and_notifies_once(
    db_session, make_project, signed_callback, sample_result, callback_service, mock_email_service
):
    seeded = await make_project(notify_on_completion=True, notification_email="home@example.com")
    doc_a, doc_b = seeded.document_ids
    body = signed_callback(
        seeded.request_id,
        results=[sample_result(doc_a, confidence=95), sample_result(doc_b, confidence=80, company="Bay Heating")],
    )

    outcome = await callback_service.execute(body)

    assert outcome.documents == {str(doc_a): DocumentStatus.EXTRACTED, str(doc_b): DocumentStatus.EXTRACTED}
    assert outcome.ready_to_compare is True
    assert outcome.project_status == ProjectStatus.COMPARING
    assert outcome.notification["status"] == "sent"
    mock_email_service.send_completion_email.assert_awaited_once()

    batch = (await db_session.execute(
        select(ExtractionBatch)
        .where(ExtractionBatch.request_id == seeded.request_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    assert batch.status == "completed"
    assert batch.callback_count == 1

    log = (await db_session.execute(select(ExtractionLog).execution_options(populate_existing=True))).scalar_one()
    assert log.parsed_successfully is True
    assert log.raw_json["request_id"] == seeded.request_id
    assert log.overall_confidence == 87.5


@pytest.mark.asyncio
async def test_redelivered_callback_is_idempotent(
    db_session, make_project, signed_callback, sample_result, callback_service, mock_email_service
):
    seeded = await make_project(notify_on_completion=True, notification_email="home@example.com")
    doc_a, doc_b = seeded.document_ids
    body = signed_callback(
        seeded.request_id,
        results=[sample_result(doc_a), sample_result(doc_b)],
        faqs=[{"faq_key": "best_value", "question_text": "Which bid is the best value?", "answer_text": "Bid A"}],
        questions=[
            {"document_id": str(doc_a), "question_text": "Is the permit fee included?"},
            {"document_id": str(doc_b), "question_text": "What is the SEER2 rating?"},
        ],
    )

    first = await callback_service.execute(body)
    second = await callback_service.execute(body)

    assert first.questions_written == 2
    assert second.questions_written == 0
    assert second.duplicate_questions_skipped == 2
    assert await count(db_session, ContractorQuestion) == 2
    assert await count(db_session, BidFaq) == 1
    assert second.notification["status"] == "skipped"
    mock_email_service.send_completion_email.assert_awaited_once()

    for bid_id in seeded.bid_ids:
        bid = await load(db_session, Bid, bid_id)
        assert bid.status == BidStatus.COMPLETED
        assert bid.processing_attempts == 2


@pytest.mark.asyncio
async def test_question_text_differing_in_case_and_spacing_is_a_duplicate(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project(doc_statuses=[DocumentStatus.PROCESSING])
    doc = seeded.document_ids[0]
    body = signed_callback(
        seeded.request_id,
        results=[sample_result(doc)],
        questions=[
            {"document_id": str(doc), "question_text": "Is the permit fee included?"},
            {"document_id": str(doc), "question_text": "  is the PERMIT   fee included?"},
        ],
    )

    outcome = await callback_service.execute(body)

    assert outcome.questions_written == 1
    assert outcome.duplicate_questions_skipped == 1


@pytest.mark.asyncio
async def test_faq_redelivery_overwrites_answer(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project(doc_statuses=[DocumentStatus.PROCESSING])
    doc = seeded.document_ids[0]
    faq = {"document_id": str(doc), "faq_key": "warranty", "question_text": "How long is the warranty?"}

    await callback_service.execute(signed_callback(
        seeded.request_id, results=[sample_result(doc)], faqs=[{**faq, "answer_text": "5 years"}]
    ))
    await callback_service.execute(signed_callback(
        seeded.request_id, results=[sample_result(doc)], faqs=[{**faq, "answer_text": "10 years"}]
    ))

    faqs = (await db_session.execute(
        select(BidFaq).execution_options(populate_existing=True)
    )).scalars().all()
    assert len(faqs) == 1
    assert faqs[0].answer_text == "10 years"
    assert faqs[0].scope_key == f"{seeded.bid_ids[0]}:warranty"


@pytest.mark.asyncio
async def test_result_for_other_projects_bid_is_rejected_without_writes(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    victim = await make_project(doc_statuses=[DocumentStatus.UPLOADED], request_id=None)
    attacker = await make_project(doc_statuses=[DocumentStatus.PROCESSING], request_id="req-attacker")
    body = signed_callback(
        attacker.request_id,
        results=[sample_result(attacker.document_ids[0]), sample_result(victim.document_ids[0])],
    )

    with pytest.raises(StructuralError):
        await callback_service.execute(body)

    assert await count(db_session, ExtractionLog) == 0
    for bid_id in attacker.bid_ids + victim.bid_ids:
        bid = await load(db_session, Bid, bid_id)
        assert bid.processing_attempts == 0
        assert bid.contractor_name is None
    victim_doc = await load(db_session, DocumentRecord, victim.document_ids[0])
    assert victim_doc.status == DocumentStatus.UPLOADED


@pytest.mark.asyncio
async def test_result_for_document_outside_batch_is_rejected(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project()
    late = DocumentRecord(
        project_id=seeded.project_id,
        file_name="late-bid.pdf",
        storage_path=f"{seeded.user_id}/{seeded.project_id}/late-bid.pdf",
        status=DocumentStatus.UPLOADED,
    )
    db_session.add(late)
    await db_session.flush()
    late_id = late.id
    db_session.add(Bid(project_id=seeded.project_id, document_id=late_id))
    await db_session.commit()

    body = signed_callback(seeded.request_id, results=[sample_result(late_id)])

    with pytest.raises(StructuralError, match="not part of this batch"):
        await callback_service.execute(body)


@pytest.mark.asyncio
async def test_unknown_document_and_unknown_batch_are_structural_errors(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project()

    with pytest.raises(StructuralError):
        await callback_service.execute(
            signed_callback(seeded.request_id, results=[sample_result("5d7f8a52-9c3f-4f1e-8d8e-3c1a9b2e4f60")])
        )
    with pytest.raises(StructuralError):
        await callback_service.execute(
            signed_callback("req-unknown", results=[sample_result(seeded.document_ids[0])])
        )
    assert await count(db_session, ExtractionLog) == 0


@pytest.mark.asyncio
async def test_tampered_signature_writes_nothing(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project()
    body = signed_callback(seeded.request_id, secret="wrong-secret", results=[sample_result(seeded.document_ids[0])])

    with pytest.raises(CallbackAuthenticationError):
        await callback_service.execute(body)

    assert await count(db_session, ExtractionLog) == 0
    bid = await load(db_session, Bid, seeded.bid_ids[0])
    assert bid.status == BidStatus.PROCESSING


@pytest.mark.asyncio
async def test_malformed_result_is_a_validation_error(
    db_session, make_project, signed_callback, callback_service
):
    seeded = await make_project()
    body = signed_callback(seeded.request_id, results=[{"document_id": "not-a-uuid"}])

    with pytest.raises(CallbackValidationError):
        await callback_service.execute(body)


@pytest.mark.asyncio
async def test_whole_batch_failure_fails_every_document(
    db_session, make_project, signed_callback, callback_service
):
    seeded = await make_project()
    body = signed_callback(seeded.request_id, status="failed", error={"message": "Workflow timed out"})

    outcome = await callback_service.execute(body)

    assert set(outcome.documents.values()) == {DocumentStatus.FAILED}
    assert outcome.ready_to_compare is False
    for document_id in seeded.document_ids:
        document = await load(db_session, DocumentRecord, document_id)
        assert document.status == DocumentStatus.FAILED
        assert document.error_message == "Workflow timed out"
    project = await load(db_session, Project, seeded.project_id)
    assert project.status == ProjectStatus.ANALYZING
    batch = (await db_session.execute(select(ExtractionBatch).execution_options(populate_existing=True))).scalar_one()
    assert batch.status == "failed"


@pytest.mark.asyncio
async def test_single_result_without_document_id_targets_only_document(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project(doc_statuses=[DocumentStatus.PROCESSING])
    result = sample_result(seeded.document_ids[0])
    result.pop("document_id")

    outcome = await callback_service.execute(signed_callback(seeded.request_id, result=result))

    assert outcome.documents == {str(seeded.document_ids[0]): DocumentStatus.EXTRACTED}


@pytest.mark.asyncio
async def test_single_result_without_document_id_is_ambiguous_for_larger_batch(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project()
    result = sample_result(seeded.document_ids[0])
    result.pop("document_id")

    with pytest.raises(StructuralError):
        await callback_service.execute(signed_callback(seeded.request_id, result=result))


@pytest.mark.asyncio
async def test_empty_results_list_falls_back_to_single_result(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project(doc_statuses=[DocumentStatus.PROCESSING])
    document_id = seeded.document_ids[0]

    outcome = await callback_service.execute(
        signed_callback(seeded.request_id, results=[], result=sample_result(document_id))
    )

    assert outcome.documents == {str(document_id): DocumentStatus.EXTRACTED}
    document = await load(db_session, DocumentRecord, document_id)
    assert document.status == DocumentStatus.EXTRACTED
    batch = (await db_session.execute(select(ExtractionBatch).execution_options(populate_existing=True))).scalar_one()
    assert batch.status == "completed"


@pytest.mark.asyncio
async def test_confidence_above_scale_is_high_not_review(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project(doc_statuses=[DocumentStatus.PROCESSING])
    document_id = seeded.document_ids[0]

    outcome = await callback_service.execute(
        signed_callback(seeded.request_id, results=[sample_result(document_id, confidence=101)])
    )

    assert outcome.documents == {str(document_id): DocumentStatus.EXTRACTED}
    bid = await load(db_session, Bid, seeded.bid_ids[0])
    assert bid.extraction_confidence == "high"


@pytest.mark.asyncio
async def test_partial_batch_does_not_trigger_comparison(
    db_session, make_project, signed_callback, sample_result, callback_service, mock_email_service
):
    seeded = await make_project(notify_on_completion=True, notification_email="home@example.com")
    body = signed_callback(seeded.request_id, results=[sample_result(seeded.document_ids[0])])

    outcome = await callback_service.execute(body)

    assert outcome.ready_to_compare is False
    assert outcome.project_status == ProjectStatus.ANALYZING
    mock_email_service.send_completion_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_normalization_failure_of_one_document_does_not_block_others(
    db_session, make_project, signed_callback, sample_result, callback_service
):
    seeded = await make_project()
    doc_a, doc_b = seeded.document_ids
    body = signed_callback(seeded.request_id, results=[sample_result(doc_a), sample_result(doc_b)])
    real_replace = callback_service.normalizer.bids.replace_equipment
    bid_a = seeded.bid_ids[0]

    async def flaky_replace(bid_id, rows):
        if bid_id == bid_a:
            raise ValueError("bad equipment row")
        return await real_replace(bid_id, rows)

    with patch.object(callback_service.normalizer.bids, "replace_equipment", AsyncMock(side_effect=flaky_replace)):
        outcome = await callback_service.execute(body)

    assert outcome.documents[str(doc_a)] == DocumentStatus.FAILED
    assert outcome.documents[str(doc_b)] == DocumentStatus.EXTRACTED
    batch = (await db_session.execute(select(ExtractionBatch).execution_options(populate_existing=True))).scalar_one()
    assert batch.status == "partial"
    log = (await db_session.execute(select(ExtractionLog).execution_options(populate_existing=True))).scalar_one()
    assert log.parsed_successfully is False
    assert "bad equipment row" in log.parsing_errors[0]
