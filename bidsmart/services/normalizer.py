"""Maps one verified extraction result onto the normalized bid tables.

Every write here is keyed: the bid header is updated in place, scope and
contractor are upserted by bid id, equipment is replaced as a set. Applying
the same result twice leaves the same rows behind.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.core.exceptions import NormalizationError
from bidsmart.database.models import DocumentStatus
from bidsmart.repositories.bid_repository import BidRepository
from bidsmart.repositories.document_repository import DocumentRepository
from bidsmart.schemas.callback import DocumentResult, EquipmentInfo
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)

CONFIDENCE_LEVELS = ("high", "medium", "low", "manual")
HIGH_CONFIDENCE_MIN = 90
MEDIUM_CONFIDENCE_MIN = 70

LINE_ITEM_TYPES = frozenset({
    "equipment", "labor", "materials", "permit", "disposal", "electrical",
    "ductwork", "thermostat", "rebate_processing", "warranty",
})

STAGE_CODES = {"single": 1, "two": 2, "variable": 99}

UNKNOWN_CONTRACTOR = "Unknown Contractor"
MAX_ERROR_LENGTH = 2000


def to_confidence_level(value: Union[float, int, str, None]) -> str:
    """Collapse an extraction confidence into high/medium/low/manual.

    Numbers (and numeric strings) on a 0-100 scale are bucketed: >= 90 high,
    >= 70 medium, otherwise low. A label that is already one of the levels
    passes through. Anything else, including a missing value, is ``manual``.
    """
    if value is None or isinstance(value, bool):
        return "manual"

    if isinstance(value, str):
        label = value.strip().lower()
        if label in CONFIDENCE_LEVELS:
            return label
        try:
            value = float(label)
        except ValueError:
            return "manual"

    score = float(value)
    if math.isnan(score):
        return "manual"
    if score >= HIGH_CONFIDENCE_MIN:
        return "high"
    if score >= MEDIUM_CONFIDENCE_MIN:
        return "medium"
    return "low"


def numeric_confidence(value: Union[float, int, str, None]) -> Optional[float]:
    """Raw numeric confidence for the audit log, or None for labels."""
    if value is None or isinstance(value, bool):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(score) else score


def map_line_item_type(item_type: Optional[str]) -> str:
    if not item_type:
        return "other"
    normalized = item_type.strip().lower()
    return normalized if normalized in LINE_ITEM_TYPES else "other"


def map_stages(stages: Optional[str]) -> Optional[int]:
    if not stages:
        return None
    return STAGE_CODES.get(stages.strip().lower())


def document_status_for(result: DocumentResult, confidence_level: str) -> str:
    """Low-confidence or partial extractions are routed to manual review."""
    if result.status == "partial" or confidence_level in ("low", "manual"):
        return DocumentStatus.REVIEW_NEEDED
    return DocumentStatus.EXTRACTED


def contractor_display_name(result: DocumentResult) -> str:
    info = result.contractor_info
    if info and info.company_name and info.company_name.strip():
        return info.company_name.strip()
    return UNKNOWN_CONTRACTOR


def build_scope_values(result: DocumentResult, confidence_level: str) -> Dict[str, Any]:
    """Flatten pricing, payment, warranty, timeline, scope and electrical sections."""
    pricing = result.pricing
    payment = result.payment_terms
    warranty = result.warranty
    timeline = result.timeline
    scope = result.scope_of_work
    electrical = result.electrical
    dates = result.dates

    values: Dict[str, Any] = {
        "total_bid_amount": pricing.total_amount if pricing else None,
        "equipment_cost": pricing.equipment_cost if pricing else None,
        "labor_cost": pricing.labor_cost if pricing else None,
        "materials_cost": pricing.materials_cost if pricing else None,
        "permit_cost": pricing.permit_cost if pricing else None,
        "disposal_cost": pricing.disposal_cost if pricing else None,
        "electrical_cost": pricing.electrical_cost if pricing else None,
        "total_before_rebates": pricing.price_before_rebates if pricing else None,
        "total_after_rebates": pricing.price_after_rebates if pricing else None,
        "estimated_rebates": (
            sum(r.amount or 0 for r in pricing.rebates_mentioned)
            if pricing and pricing.rebates_mentioned else None
        ),
        "deposit_required": payment.deposit_required if payment else None,
        "deposit_amount": payment.deposit_amount if payment else None,
        "deposit_percentage": payment.deposit_percentage if payment else None,
        "payment_schedule": payment.payment_schedule if payment else None,
        "financing_offered": bool(payment.financing_offered) if payment else False,
        "financing_terms": payment.financing_terms if payment else None,
        "labor_warranty_years": warranty.labor_warranty_years if warranty else None,
        "equipment_warranty_years": warranty.equipment_warranty_years if warranty else None,
        "compressor_warranty_years": warranty.compressor_warranty_years if warranty else None,
        "extended_warranty_offered": warranty.extended_warranty_offered if warranty else None,
        "warranty_details": warranty.warranty_details if warranty else None,
        "estimated_days": timeline.estimated_days if timeline else None,
        "start_date_available": timeline.start_date_available if timeline else None,
        "bid_date": (dates.bid_date or dates.quote_date) if dates else None,
        "valid_until": (
            (dates.valid_until if dates else None)
            or (timeline.bid_valid_until if timeline else None)
        ),
        "scope_summary": scope.summary if scope else None,
        "inclusions": list(scope.inclusions) if scope else None,
        "exclusions": list(scope.exclusions) if scope else None,
        "line_items": [
            {
                "item_type": map_line_item_type(item.item_type),
                "description": item.description,
                "quantity": item.quantity if item.quantity is not None else 1,
                "unit_price": item.unit_price,
                "total_price": item.total_price,
                "brand": item.brand,
                "model_number": item.model_number,
                "source_text": item.source_text,
                "confidence": to_confidence_level(
                    item.confidence if item.confidence is not None else result.overall_confidence
                ),
                "line_order": index,
            }
            for index, item in enumerate(result.line_items)
        ],
        "extraction_notes": (
            "\n".join(f"[{note.type}] {note.message}" for note in result.extraction_notes)
            or None
        ),
        "confidence": confidence_level,
    }

    for flag in (
        "permit_included", "disposal_included", "electrical_work_included",
        "ductwork_included", "thermostat_included", "manual_j_included",
        "commissioning_included", "air_handler_included", "line_set_included",
        "disconnect_included", "pad_included", "drain_line_included",
    ):
        values[flag] = getattr(scope, flag) if scope else None

    for name in (
        "panel_assessment_included", "panel_upgrade_included", "panel_upgrade_cost",
        "existing_panel_amps", "proposed_panel_amps", "electrical_notes",
    ):
        values[name] = getattr(electrical, name) if electrical else None

    return values


def build_contractor_values(result: DocumentResult) -> Dict[str, Any]:
    info = result.contractor_info
    fields = (
        "company_name", "contact_name", "phone", "email", "address",
        "website", "license_number", "license_state",
    )
    values = {name: (getattr(info, name) if info else None) for name in fields}
    values["confidence"] = to_confidence_level(
        info.confidence if info and info.confidence is not None else result.overall_confidence
    )
    return values


def build_equipment_rows(result: DocumentResult) -> List[Dict[str, Any]]:
    def row(eq: EquipmentInfo) -> Dict[str, Any]:
        return {
            "equipment_type": (eq.equipment_type or "other").strip().lower(),
            "brand": eq.brand,
            "model_number": eq.model_number,
            "model_name": eq.model_name,
            "capacity_btu": eq.capacity_btu,
            "capacity_tons": eq.capacity_tons,
            "seer_rating": eq.seer_rating,
            "seer2_rating": eq.seer2_rating,
            "hspf_rating": eq.hspf_rating,
            "hspf2_rating": eq.hspf2_rating,
            "eer_rating": eq.eer_rating,
            "variable_speed": eq.variable_speed,
            "stages": map_stages(eq.stages),
            "refrigerant_type": eq.refrigerant,
            "sound_level_db": eq.sound_level_db,
            "voltage": eq.voltage,
            "energy_star_certified": eq.energy_star,
            "energy_star_most_efficient": eq.energy_star_most_efficient,
            "equipment_cost": eq.equipment_cost,
            "confidence": to_confidence_level(
                eq.confidence if eq.confidence is not None else result.overall_confidence
            ),
        }

    return [row(eq) for eq in result.equipment]


@dataclass
class NormalizationOutcome:
    bid_id: UUID
    document_id: UUID
    document_status: str
    confidence: Optional[str] = None
    equipment_count: int = 0
    error: Optional[str] = None


class ResultNormalizer:
    """Applies per-document results, one transaction per document.

    Callers pass plain ids captured before any rollback so that nothing
    here touches expired ORM state.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.bids = BidRepository(session)
        self.documents = DocumentRepository(session)

    async def apply(self, bid_id: UUID, document_id: UUID, result: DocumentResult) -> NormalizationOutcome:
        """Apply a result and commit, converging the bid to failed on any error.

        Args:
            bid_id: Target bid, already resolved and tenant-checked
            document_id: The bid's document
            result: Parsed per-document result

        Returns:
            What was stored for the document
        """
        try:
            if result.status == "failed":
                outcome = await self._apply_reported_failure(bid_id, document_id, result)
            else:
                outcome = await self._apply_success(bid_id, document_id, result)
            await self.session.commit()
            return outcome

        except Exception as e:
            await self.session.rollback()
            error = f"Normalization failed: {type(e).__name__}: {e}"[:MAX_ERROR_LENGTH]
            LOGGER.error(
                "Normalization failed, converging bid to failed",
                exc_info=True,
                extra={"bid_id": str(bid_id), "document_id": str(document_id)}
            )
            await self.converge_failed(bid_id, document_id, error)
            return NormalizationOutcome(
                bid_id=bid_id,
                document_id=document_id,
                document_status=DocumentStatus.FAILED,
                error=error,
            )

    async def converge_failed(self, bid_id: UUID, document_id: UUID, error: str) -> None:
        """Mark bid and document failed in a fresh transaction.

        Raises:
            NormalizationError: If even the failure state cannot be written
        """
        try:
            await self.bids.mark_failed(bid_id, error)
            await self.documents.record_result(document_id, DocumentStatus.FAILED, error_message=error)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            LOGGER.critical(
                "Could not record failure state for bid",
                exc_info=True,
                extra={"bid_id": str(bid_id)}
            )
            raise NormalizationError(f"Could not record failure for bid {bid_id}", original_error=e)

    async def _apply_reported_failure(
        self, bid_id: UUID, document_id: UUID, result: DocumentResult
    ) -> NormalizationOutcome:
        error = result.error_message[:MAX_ERROR_LENGTH]
        await self.bids.lock(bid_id)
        await self.bids.mark_failed(bid_id, error)
        await self.documents.record_result(document_id, DocumentStatus.FAILED, error_message=error)
        LOGGER.info(
            "Extraction service reported document failure",
            extra={"bid_id": str(bid_id), "document_id": str(document_id)}
        )
        return NormalizationOutcome(
            bid_id=bid_id,
            document_id=document_id,
            document_status=DocumentStatus.FAILED,
            error=error,
        )

    async def _apply_success(
        self, bid_id: UUID, document_id: UUID, result: DocumentResult
    ) -> NormalizationOutcome:
        bid = await self.bids.lock(bid_id)
        if bid is None:
            raise NormalizationError(f"Bid {bid_id} disappeared before normalization")

        level = to_confidence_level(result.overall_confidence)

        await self.bids.mark_completed(bid_id, contractor_display_name(result), level)
        await self.bids.upsert_scope(bid_id, build_scope_values(result, level))
        await self.bids.upsert_contractor(bid_id, build_contractor_values(result))
        equipment_count = await self.bids.replace_equipment(bid_id, build_equipment_rows(result))

        document_status = document_status_for(result, level)
        await self.documents.record_result(document_id, document_status, confidence=level)

        LOGGER.info(
            "Bid normalized",
            extra={
                "bid_id": str(bid_id),
                "document_status": document_status,
                "confidence": level,
                "equipment_count": equipment_count,
            }
        )
        return NormalizationOutcome(
            bid_id=bid_id,
            document_id=document_id,
            document_status=document_status,
            confidence=level,
            equipment_count=equipment_count,
        )
