"""Typed view of the extraction service's callback body.

Every section of a result is optional. Missing sections stay ``None`` and
the normalizer decides the stored default field by field.
"""

from typing import List, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

Confidence = Union[float, str]


class _Section(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ContractorInfo(_Section):
    company_name: Optional[str] = None
    contact_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    license_number: Optional[str] = None
    license_state: Optional[str] = None
    website: Optional[str] = None
    confidence: Optional[Confidence] = None


class Rebate(_Section):
    name: Optional[str] = None
    amount: Optional[float] = None
    type: Optional[str] = None


class PricingInfo(_Section):
    total_amount: Optional[float] = None
    equipment_cost: Optional[float] = None
    labor_cost: Optional[float] = None
    materials_cost: Optional[float] = None
    permit_cost: Optional[float] = None
    disposal_cost: Optional[float] = None
    electrical_cost: Optional[float] = None
    rebates_mentioned: List[Rebate] = Field(default_factory=list)
    price_before_rebates: Optional[float] = None
    price_after_rebates: Optional[float] = None
    confidence: Optional[Confidence] = None


class TimelineInfo(_Section):
    estimated_days: Optional[int] = None
    start_date_available: Optional[str] = None
    bid_valid_until: Optional[str] = None


class WarrantyInfo(_Section):
    labor_warranty_years: Optional[float] = None
    equipment_warranty_years: Optional[float] = None
    compressor_warranty_years: Optional[float] = None
    extended_warranty_offered: Optional[bool] = None
    warranty_details: Optional[str] = None


class EquipmentInfo(_Section):
    equipment_type: Optional[str] = None
    brand: Optional[str] = None
    model_number: Optional[str] = None
    model_name: Optional[str] = None
    capacity_btu: Optional[int] = None
    capacity_tons: Optional[float] = None
    seer_rating: Optional[float] = None
    seer2_rating: Optional[float] = None
    hspf_rating: Optional[float] = None
    hspf2_rating: Optional[float] = None
    eer_rating: Optional[float] = None
    variable_speed: Optional[bool] = None
    stages: Optional[str] = None
    refrigerant: Optional[str] = None
    voltage: Optional[int] = None
    sound_level_db: Optional[float] = None
    energy_star: Optional[bool] = None
    energy_star_most_efficient: Optional[bool] = None
    equipment_cost: Optional[float] = None
    confidence: Optional[Confidence] = None


class LineItemInfo(_Section):
    item_type: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    brand: Optional[str] = None
    model_number: Optional[str] = None
    source_text: Optional[str] = None
    confidence: Optional[Confidence] = None


class ScopeInfo(_Section):
    summary: Optional[str] = None
    inclusions: List[str] = Field(default_factory=list)
    exclusions: List[str] = Field(default_factory=list)
    permit_included: Optional[bool] = None
    disposal_included: Optional[bool] = None
    electrical_work_included: Optional[bool] = None
    ductwork_included: Optional[bool] = None
    thermostat_included: Optional[bool] = None
    manual_j_included: Optional[bool] = None
    commissioning_included: Optional[bool] = None
    air_handler_included: Optional[bool] = None
    line_set_included: Optional[bool] = None
    disconnect_included: Optional[bool] = None
    pad_included: Optional[bool] = None
    drain_line_included: Optional[bool] = None


class ElectricalInfo(_Section):
    panel_assessment_included: Optional[bool] = None
    panel_upgrade_included: Optional[bool] = None
    panel_upgrade_cost: Optional[float] = None
    existing_panel_amps: Optional[int] = None
    proposed_panel_amps: Optional[int] = None
    electrical_notes: Optional[str] = None


class PaymentTermsInfo(_Section):
    deposit_required: Optional[bool] = None
    deposit_amount: Optional[float] = None
    deposit_percentage: Optional[float] = None
    payment_schedule: Optional[str] = None
    financing_offered: Optional[bool] = None
    financing_terms: Optional[str] = None


class DatesInfo(_Section):
    bid_date: Optional[str] = None
    quote_date: Optional[str] = None
    valid_until: Optional[str] = None


class ExtractionNote(_Section):
    type: str = "info"
    message: str


class ErrorInfo(_Section):
    code: Optional[str] = None
    message: Optional[str] = None
    details: Optional[str] = None


class DocumentResult(_Section):
    """Extraction result for a single document of the batch."""

    document_id: Optional[UUID] = None
    status: Literal["success", "partial", "failed"] = "success"
    overall_confidence: Optional[Confidence] = None
    contractor_info: Optional[ContractorInfo] = None
    pricing: Optional[PricingInfo] = None
    timeline: Optional[TimelineInfo] = None
    warranty: Optional[WarrantyInfo] = None
    equipment: List[EquipmentInfo] = Field(default_factory=list)
    line_items: List[LineItemInfo] = Field(default_factory=list)
    scope_of_work: Optional[ScopeInfo] = None
    electrical: Optional[ElectricalInfo] = None
    payment_terms: Optional[PaymentTermsInfo] = None
    dates: Optional[DatesInfo] = None
    extraction_notes: List[ExtractionNote] = Field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @property
    def error_message(self) -> str:
        if self.error and self.error.message:
            return self.error.message
        return "Extraction failed"


class FaqItem(_Section):
    document_id: Optional[UUID] = None
    faq_key: str
    question_text: str
    answer_text: Optional[str] = None
    answer_confidence: Optional[str] = None
    is_answered: bool = False
    display_order: int = 0


class QuestionItem(_Section):
    document_id: UUID
    question_text: str
    question_category: Optional[str] = None
    priority: Optional[str] = None
    missing_field: Optional[str] = None
    display_order: int = 0
    auto_generated: bool = True


class CallbackEnvelope(_Section):
    """Whole callback body, parsed only after authentication."""

    request_id: str
    signature: str
    timestamp: str
    status: Literal["success", "partial", "failed"] = "success"
    error: Optional[ErrorInfo] = None
    result: Optional[DocumentResult] = None
    results: Optional[List[DocumentResult]] = None
    faqs: List[FaqItem] = Field(default_factory=list)
    questions: List[QuestionItem] = Field(default_factory=list)

    def document_results(self) -> List[DocumentResult]:
        """Per-document results; an empty ``results`` list defers to ``result``."""
        if self.results:
            return list(self.results)
        if self.result is not None:
            return [self.result]
        return []

    @property
    def is_batch_failure(self) -> bool:
        return self.status == "failed" and not self.document_results()


class CallbackOutcome(BaseModel):
    """Summary returned to the extraction service."""

    request_id: str
    project_id: UUID
    documents: dict = Field(default_factory=dict, description="document id -> stored status")
    faqs_written: int = 0
    questions_written: int = 0
    duplicate_questions_skipped: int = 0
    project_status: str
    ready_to_compare: bool = False
    notification: Optional[dict] = None
