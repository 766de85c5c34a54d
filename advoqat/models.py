from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean, ForeignKey, Enum, Float, JSON,
    CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from advoqat.database import Base
import enum
import uuid

# =====================================================
# ENUMS
# =====================================================

class UserRole(str, enum.Enum):
    USER = "user"
    FREELANCER = "freelancer"
    BARRISTER = "barrister"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

class ProfessionalKind(str, enum.Enum):
    FREELANCER = "freelancer"
    BARRISTER = "barrister"

class VerificationStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class BarristerStatus(str, enum.Enum):
    PENDING_VERIFICATION = "PENDING_VERIFICATION"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    INCOMPLETE = "INCOMPLETE"

class OnboardingStage(str, enum.Enum):
    ELIGIBILITY_CHECK = "eligibility_check"
    DOCUMENT_UPLOAD_COMPLETED = "document_upload_completed"
    PROFESSIONAL_INFORMATION = "professional_information"
    REVIEW = "review"
    COMPLETED = "completed"

class CaseStatus(str, enum.Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    DECLINED = "declined"

class CasePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

class CaseDocumentStatus(str, enum.Enum):
    NONE = "none"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"

class ConsultationType(str, enum.Enum):
    CHAT = "chat"
    VIDEO = "video"
    VOICE = "voice"
    AUDIO = "audio"

class ConsultationStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    RESCHEDULED = "rescheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"

class ConsultationPaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"

class ServiceType(str, enum.Enum):
    CONSULTATION = "consultation"
    DOCUMENT_DOWNLOAD = "document_download"
    CASE_COMPLETION = "case_completion"

class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"

class WithdrawalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"

class DocumentPaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"

class GeneratedDocumentStatus(str, enum.Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"

class ChatSessionStatus(str, enum.Enum):
    ACTIVE = "active"
    DELETED = "deleted"

class ChatRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


def enum_column(enum_cls, **kwargs):
    """Enum column persisted by value (e.g. 'pending'), not by member name."""
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=32,
            values_callable=lambda members: [member.value for member in members],
        ),
        **kwargs
    )


def new_external_id():
    return str(uuid.uuid4())

# =====================================================
# USERS & PROFESSIONALS
# =====================================================

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    external_id = Column(String(36), unique=True, nullable=False, index=True, default=new_external_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100))
    phone = Column(String(20))
    address = Column(String(255))
    password_hash = Column(String(255))
    role = enum_column(UserRole, default=UserRole.USER, nullable=False, index=True)
    onboarding_stage = Column(String(50))
    profile_status = Column(String(20))
    avatar_url = Column(String(500))
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    freelancer = relationship("Freelancer", back_populates="user", uselist=False)
    barrister = relationship("Barrister", back_populates="user", uselist=False)
    notifications = relationship("Notification", back_populates="user")
    payments = relationship("Payment", back_populates="user")

class Freelancer(Base):
    __tablename__ = "freelancers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(20), nullable=False)
    experience = Column(Integer, nullable=False)
    expertise_areas = Column(JSON, nullable=False, default=list)
    id_card_url = Column(Text)
    bar_certificate_url = Column(Text)
    additional_documents = Column(JSON, default=list)
    verification_status = enum_column(VerificationStatus, default=VerificationStatus.PENDING, index=True)
    verification_notes = Column(Text)
    is_available = Column(Boolean, default=False, index=True)
    performance_score = Column(Float, default=0.0)
    feedback_count = Column(Integer, default=0)
    total_earnings = Column(Integer, default=0)  # minor units
    chat_fee = Column(Integer, default=0)
    video_fee = Column(Integer, default=0)
    voice_fee = Column(Integer, default=0)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="freelancer")

    @property
    def is_verified(self):
        return self.verification_status == VerificationStatus.APPROVED

class Barrister(Base):
    __tablename__ = "barristers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    phone = Column(String(20))
    year_of_call = Column(Integer)
    bsb_number = Column(String(50))
    expertise_areas = Column(JSON, default=list)
    eligibility_answers = Column(JSON)

    # Onboarding documents
    practising_certificate_url = Column(Text)
    public_access_accreditation_url = Column(Text)
    bmif_insurance_url = Column(Text)
    qualified_person_document_url = Column(Text)
    qualified_person_name = Column(String(100))
    qualified_person_email = Column(String(255))

    # Professional information
    chambers_name = Column(String(255))
    practice_address = Column(Text)
    pricing_model = Column(String(20))
    biography = Column(Text)
    languages = Column(JSON)
    hourly_rate = Column(Integer)

    status = enum_column(BarristerStatus, default=BarristerStatus.PENDING_VERIFICATION, index=True)
    stage = enum_column(OnboardingStage, default=OnboardingStage.ELIGIBILITY_CHECK, index=True)
    verification_notes = Column(Text)
    is_available = Column(Boolean, default=False)
    total_earnings = Column(Integer, default=0)
    performance_score = Column(Float, default=0.0)
    feedback_count = Column(Integer, default=0)
    chat_fee = Column(Integer, default=0)
    video_fee = Column(Integer, default=0)
    voice_fee = Column(Integer, default=0)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="barrister")

    @property
    def is_verified(self):
        return self.status == BarristerStatus.APPROVED

# =====================================================
# CASES
# =====================================================

class Case(Base):
    __tablename__ = "cases"
    __table_args__ = (
        # An assignee id without a kind (or the reverse) is never valid
        CheckConstraint(
            "(assignee_kind IS NULL AND assignee_id IS NULL) OR "
            "(assignee_kind IS NOT NULL AND assignee_id IS NOT NULL)",
            name="ck_case_assignee_pair",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    assignee_kind = enum_column(ProfessionalKind, nullable=True)
    assignee_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    status = enum_column(CaseStatus, default=CaseStatus.PENDING, nullable=False, index=True)
    expertise_area = Column(String(100), index=True)
    priority = enum_column(CasePriority, default=CasePriority.MEDIUM)
    jurisdiction = Column(String(100))
    case_type = Column(String(100))
    client_notes = Column(Text)

    # Documents
    case_summary_url = Column(Text)
    document_status = enum_column(CaseDocumentStatus, default=CaseDocumentStatus.NONE)
    annotated_document_url = Column(Text)
    annotation_notes = Column(Text)
    additional_documents = Column(JSON, default=list)

    decline_reason = Column(Text)

    # Timestamps
    assigned_at = Column(DateTime)
    accepted_at = Column(DateTime)
    declined_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    client = relationship("User", foreign_keys=[client_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
    consultations = relationship("Consultation", back_populates="case")

    @property
    def freelancer_id(self):
        return self.assignee_id if self.assignee_kind == ProfessionalKind.FREELANCER else None

    @property
    def barrister_id(self):
        return self.assignee_id if self.assignee_kind == ProfessionalKind.BARRISTER else None

# =====================================================
# CONSULTATIONS
# =====================================================

class Consultation(Base):
    __tablename__ = "consultations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="CASCADE"), index=True)
    client_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    professional_kind = enum_column(ProfessionalKind, nullable=False)
    professional_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    consultation_type = enum_column(ConsultationType, nullable=False, index=True)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    duration = Column(Integer, default=30)
    notes = Column(Text)
    meeting_link = Column(Text)
    status = enum_column(ConsultationStatus, default=ConsultationStatus.SCHEDULED, nullable=False, index=True)
    outcome = Column(Text)
    cancellation_reason = Column(Text)
    started_at = Column(DateTime)
    ended_at = Column(DateTime)

    # Fee breakdown, minor units
    consultation_fee = Column(Integer, default=0)
    platform_fee = Column(Integer, default=0)
    total_fee = Column(Integer, default=0)
    payment_status = enum_column(ConsultationPaymentStatus, default=ConsultationPaymentStatus.UNPAID)
    payment_id = Column(String(255))

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    # Relationships
    case = relationship("Case", back_populates="consultations")
    client = relationship("User", foreign_keys=[client_id])
    professional = relationship("User", foreign_keys=[professional_id])
    feedback = relationship("ConsultationFeedback", back_populates="consultation", uselist=False)

class ConsultationFeedback(Base):
    __tablename__ = "consultation_feedback"

    id = Column(Integer, primary_key=True, autoincrement=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id", ondelete="CASCADE"), unique=True, nullable=False)
    rating = Column(Integer, nullable=False)
    comments = Column(Text)
    created_at = Column(DateTime, default=func.now())

    consultation = relationship("Consultation", back_populates="feedback")

# =====================================================
# NOTIFICATIONS & EMAIL OUTBOX
# =====================================================

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSON, default=dict)
    is_read = Column(Boolean, default=False, index=True)
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now(), index=True)

    user = relationship("User", back_populates="notifications")

class EmailOutbox(Base):
    __tablename__ = "email_outbox"

    id = Column(Integer, primary_key=True, autoincrement=True)
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    html = Column(Text, nullable=False)
    event_type = Column(String(50), nullable=False)
    status = enum_column(OutboxStatus, default=OutboxStatus.PENDING, nullable=False, index=True)
    attempts = Column(Integer, default=0, nullable=False)
    last_error = Column(Text)
    sent_at = Column(DateTime)
    created_at = Column(DateTime, default=func.now())

# =====================================================
# PAYMENTS
# =====================================================

class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    consultation_id = Column(Integer, ForeignKey("consultations.id", ondelete="SET NULL"))
    document_id = Column(Integer, ForeignKey("generated_documents.id", ondelete="SET NULL"))
    case_id = Column(Integer, ForeignKey("cases.id", ondelete="SET NULL"))
    stripe_session_id = Column(String(255), unique=True)
    stripe_payment_intent_id = Column(String(255))
    idempotency_key = Column(String(255), unique=True)
    amount = Column(Integer, nullable=False)  # minor units
    currency = Column(String(3), default="usd")
    payment_method = Column(String(50))
    status = enum_column(PaymentStatus, default=PaymentStatus.PENDING, nullable=False, index=True)
    service_type = enum_column(ServiceType, nullable=False, index=True)
    description = Column(Text)
    payment_metadata = Column("metadata", JSON)
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="payments")

class Withdrawal(Base):
    __tablename__ = "withdrawals"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Integer, nullable=False)
    method = Column(String(50), nullable=False)
    status = enum_column(WithdrawalStatus, default=WithdrawalStatus.PENDING, nullable=False)
    requested_at = Column(DateTime, default=func.now())
    processed_at = Column(DateTime)

# =====================================================
# AI GENERATED DOCUMENTS
# =====================================================

class GeneratedDocument(Base):
    __tablename__ = "generated_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(String(50), nullable=False)
    template_name = Column(String(100), nullable=False)
    form_data = Column(JSON, nullable=False)
    generated_document = Column(Text, nullable=False)
    document_type = Column(String(50), nullable=False)
    document_fee = Column(Integer, default=1000)
    payment_status = enum_column(DocumentPaymentStatus, default=DocumentPaymentStatus.PENDING)
    payment_session_id = Column(String(255))
    paid_at = Column(DateTime)
    download_count = Column(Integer, default=0)
    status = enum_column(GeneratedDocumentStatus, default=GeneratedDocumentStatus.ACTIVE)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

# =====================================================
# AI LEGAL ASSISTANT
# =====================================================

class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    category = Column(String(100), default="Legal Consultation")
    primary_topic = Column(String(100))
    status = enum_column(ChatSessionStatus, default=ChatSessionStatus.ACTIVE, nullable=False, index=True)
    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    messages = relationship(
        "ChatMessage", back_populates="session", order_by="ChatMessage.id", cascade="all, delete-orphan"
    )

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(Integer, ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    role = enum_column(ChatRole, nullable=False)
    content = Column(Text, nullable=False)
    tokens_used = Column(Integer)
    model_used = Column(String(100))
    created_at = Column(DateTime, default=func.now())

    session = relationship("ChatSession", back_populates="messages")
