"""SQLAlchemy models for all database tables."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bidsmart.core.database import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

Money = Numeric(12, 2, asdecimal=False)


class ProjectStatus:
    DRAFT = "draft"
    SPECIFICATIONS = "specifications"
    COLLECTING_BIDS = "collecting_bids"
    ANALYZING = "analyzing"
    COMPARING = "comparing"
    DECIDED = "decided"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DocumentStatus:
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    EXTRACTED = "extracted"
    REVIEW_NEEDED = "review_needed"
    FAILED = "failed"
    VERIFIED = "verified"

    TERMINAL = frozenset({EXTRACTED, VERIFIED, REVIEW_NEEDED, FAILED})
    SUCCESSFUL = frozenset({EXTRACTED, VERIFIED, REVIEW_NEEDED})


class BidStatus:
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class BatchStatus:
    DISPATCHING = "dispatching"
    DISPATCHED = "dispatched"
    DISPATCH_FAILED = "dispatch_failed"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class User(Base):
    """User model for Supabase-authenticated users."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    supabase_user_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    email: Mapped[str] = mapped_column(String, nullable=False)
    full_name: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    projects: Mapped[list["Project"]] = relationship(
        "Project", back_populates="user", cascade="all, delete-orphan"
    )


class Project(Base):
    """A homeowner's heat-pump project owning a set of bids."""

    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    project_name: Mapped[str] = mapped_column(String, nullable=False, default="My Heat Pump Project")
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ProjectStatus.DRAFT
    )  # draft | collecting_bids | analyzing | comparing | decided | completed | cancelled

    notification_email: Mapped[str | None] = mapped_column(String, nullable=True)
    notify_on_completion: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notification_sent_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True,
        comment="Set once when the completion email is claimed; never cleared"
    )
    notification_last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    rerun_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    analysis_queued_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="projects")
    documents: Mapped[list["DocumentRecord"]] = relationship(
        "DocumentRecord", back_populates="project", cascade="all, delete-orphan"
    )
    bids: Mapped[list["Bid"]] = relationship(
        "Bid", back_populates="project", cascade="all, delete-orphan"
    )
    batches: Mapped[list["ExtractionBatch"]] = relationship(
        "ExtractionBatch", back_populates="project", cascade="all, delete-orphan"
    )


class DocumentRecord(Base):
    """One uploaded bid PDF and its extraction progress."""

    __tablename__ = "pdf_uploads"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size_bytes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    storage_path: Mapped[str] = mapped_column(String, nullable=False)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=DocumentStatus.UPLOADED
    )  # uploaded | processing | extracted | review_needed | failed | verified
    extraction_confidence: Mapped[str | None] = mapped_column(
        String(16), nullable=True, comment="high | medium | low | manual"
    )
    batch_request_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    processing_started_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    processing_completed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="documents")
    bid: Mapped["Bid | None"] = relationship("Bid", back_populates="document", uselist=False)


class ExtractionBatch(Base):
    """One dispatch of a set of documents to the extraction service."""

    __tablename__ = "extraction_batches"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_ids: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    priorities: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BatchStatus.DISPATCHING
    )  # dispatching | dispatched | dispatch_failed | completed | partial | failed
    workflow_run_id: Mapped[str | None] = mapped_column(String, nullable=True)
    callback_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    dispatched_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    last_callback_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="batches")


class Bid(Base):
    """Per-document bid header, created as a stub at upload time."""

    __tablename__ = "bids"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("pdf_uploads.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=BidStatus.PENDING
    )  # pending | processing | completed | failed
    contractor_name: Mapped[str | None] = mapped_column(String, nullable=True)
    extraction_confidence: Mapped[str | None] = mapped_column(String(16), nullable=True)
    processing_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project: Mapped["Project"] = relationship("Project", back_populates="bids")
    document: Mapped["DocumentRecord"] = relationship("DocumentRecord", back_populates="bid")
    scope: Mapped["BidScope | None"] = relationship(
        "BidScope", back_populates="bid", uselist=False, cascade="all, delete-orphan"
    )
    contractor: Mapped["BidContractor | None"] = relationship(
        "BidContractor", back_populates="bid", uselist=False, cascade="all, delete-orphan"
    )
    equipment: Mapped[list["BidEquipment"]] = relationship(
        "BidEquipment", back_populates="bid", cascade="all, delete-orphan",
        order_by="BidEquipment.line_order"
    )
    score: Mapped["BidScore | None"] = relationship(
        "BidScore", back_populates="bid", uselist=False, cascade="all, delete-orphan"
    )


class BidScope(Base):
    """Pricing, warranty, timeline and scope fields of a bid (1:1)."""

    __tablename__ = "bid_scope"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    # Pricing
    total_bid_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    equipment_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    labor_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    materials_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    permit_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    disposal_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    electrical_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    total_before_rebates: Mapped[float | None] = mapped_column(Money, nullable=True)
    estimated_rebates: Mapped[float | None] = mapped_column(Money, nullable=True)
    total_after_rebates: Mapped[float | None] = mapped_column(Money, nullable=True)

    # Payment
    deposit_required: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    deposit_amount: Mapped[float | None] = mapped_column(Money, nullable=True)
    deposit_percentage: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    payment_schedule: Mapped[str | None] = mapped_column(Text, nullable=True)
    financing_offered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    financing_terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Warranty
    labor_warranty_years: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)
    equipment_warranty_years: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)
    compressor_warranty_years: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)
    extended_warranty_offered: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    warranty_details: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timeline
    estimated_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    start_date_available: Mapped[str | None] = mapped_column(String, nullable=True)
    bid_date: Mapped[str | None] = mapped_column(String, nullable=True)
    valid_until: Mapped[str | None] = mapped_column(String, nullable=True)

    # Scope of work
    scope_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    inclusions: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    exclusions: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    permit_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    disposal_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    electrical_work_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    ductwork_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    thermostat_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    manual_j_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    commissioning_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    air_handler_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    line_set_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    disconnect_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    pad_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    drain_line_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)

    # Electrical
    panel_assessment_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    panel_upgrade_included: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    panel_upgrade_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    existing_panel_amps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    proposed_panel_amps: Mapped[int | None] = mapped_column(Integer, nullable=True)
    electrical_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    line_items: Mapped[list | None] = mapped_column(
        JSONType, nullable=True, comment="[{item_type, description, quantity, unit_price, total_price, ...}]"
    )
    extraction_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    confidence: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bid: Mapped["Bid"] = relationship("Bid", back_populates="scope")


class BidContractor(Base):
    """Contractor identity, contact and licensing fields of a bid (1:1)."""

    __tablename__ = "bid_contractors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    company_name: Mapped[str | None] = mapped_column(String, nullable=True)
    contact_name: Mapped[str | None] = mapped_column(String, nullable=True)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String, nullable=True)
    license_number: Mapped[str | None] = mapped_column(String, nullable=True)
    license_state: Mapped[str | None] = mapped_column(String(8), nullable=True)
    confidence: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bid: Mapped["Bid"] = relationship("Bid", back_populates="contractor")


class BidEquipment(Base):
    """One physical unit quoted in a bid (1:N, replaced as a whole set)."""

    __tablename__ = "bid_equipment"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False, index=True
    )
    line_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    equipment_type: Mapped[str] = mapped_column(
        String(32), nullable=False, default="other"
    )  # outdoor_unit | indoor_unit | air_handler | thermostat | ... | other
    brand: Mapped[str | None] = mapped_column(String, nullable=True)
    model_number: Mapped[str | None] = mapped_column(String, nullable=True)
    model_name: Mapped[str | None] = mapped_column(String, nullable=True)
    capacity_btu: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capacity_tons: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    seer_rating: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    seer2_rating: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    hspf_rating: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    hspf2_rating: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    eer_rating: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    variable_speed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    stages: Mapped[int | None] = mapped_column(
        Integer, nullable=True, comment="1 single, 2 two-stage, 99 variable"
    )
    refrigerant_type: Mapped[str | None] = mapped_column(String, nullable=True)
    sound_level_db: Mapped[float | None] = mapped_column(Numeric(5, 1, asdecimal=False), nullable=True)
    voltage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    energy_star_certified: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    energy_star_most_efficient: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    equipment_cost: Mapped[float | None] = mapped_column(Money, nullable=True)
    confidence: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    bid: Mapped["Bid"] = relationship("Bid", back_populates="equipment")


class BidScore(Base):
    """Weighted comparison scores, written by the downstream scoring job."""

    __tablename__ = "bid_scores"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    overall_score: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    value_score: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    quality_score: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    completeness_score: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    score_details: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    calculated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )

    bid: Mapped["Bid"] = relationship("Bid", back_populates="score")


class ContractorQuestion(Base):
    """Follow-up question to ask a contractor, generated per batch."""

    __tablename__ = "bid_questions"
    __table_args__ = (
        UniqueConstraint("bid_id", "question_key", name="uq_bid_question_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    bid_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_key: Mapped[str] = mapped_column(
        String(64), nullable=False, comment="sha256 of the normalized question text"
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    question_category: Mapped[str | None] = mapped_column(String(32), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(16), nullable=True)
    missing_field: Mapped[str | None] = mapped_column(String, nullable=True)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    auto_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_answered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )


class BidFaq(Base):
    """Generated FAQ entry for a bid or for the whole project."""

    __tablename__ = "bid_faqs"
    __table_args__ = (
        UniqueConstraint("project_id", "scope_key", name="uq_faq_scope_key"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    bid_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bids.id", ondelete="CASCADE"), nullable=True
    )
    faq_key: Mapped[str] = mapped_column(String, nullable=False)
    scope_key: Mapped[str] = mapped_column(
        String, nullable=False, comment="'<bid id>:<faq_key>' or 'project:<faq_key>'"
    )
    question_text: Mapped[str] = mapped_column(Text, nullable=False)
    answer_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    answer_confidence: Mapped[str | None] = mapped_column(String(16), nullable=True)
    is_answered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    request_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ExtractionLog(Base):
    """Raw audit record of every authenticated callback delivery."""

    __tablename__ = "extraction_callbacks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True
    )
    callback_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    raw_json: Mapped[dict] = mapped_column(JSONType, nullable=False)
    parsed_successfully: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parsing_errors: Mapped[list | None] = mapped_column(JSONType, nullable=True)
    overall_confidence: Mapped[float | None] = mapped_column(Numeric(5, 2, asdecimal=False), nullable=True)
    received_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    processed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
