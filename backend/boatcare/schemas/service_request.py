from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator


class RequestStatus(str, Enum):
    SUBMITTED = "submitted"
    IN_PROGRESS = "in_progress"
    FORWARDED = "forwarded"
    QUOTE_SENT = "quote_sent"
    QUOTE_ACCEPTED = "quote_accepted"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    READY_TO_BILL = "ready_to_bill"
    TO_PAY = "to_pay"
    PAID = "paid"
    CANCELLED = "cancelled"


class Urgency(str, Enum):
    NORMAL = "normal"
    URGENT = "urgent"


class ActorRole(str, Enum):
    CLIENT = "CLIENT"
    BOAT_MANAGER = "BOAT_MANAGER"
    NAUTICAL_COMPANY = "NAUTICAL_COMPANY"
    CORPORATE = "CORPORATE"


class TransitionIntent(str, Enum):
    TAKE_CHARGE = "take_charge"
    FORWARD = "forward"
    REQUEST_QUOTE = "request_quote"
    ACCEPT_QUOTE = "accept_quote"
    REJECT_QUOTE = "reject_quote"
    SCHEDULE = "schedule"
    MARK_COMPLETE = "mark_complete"
    MARK_BILLABLE = "mark_billable"
    GENERATE_INVOICE = "generate_invoice"
    PAY = "pay"
    MARK_PAID = "mark_paid"
    CANCEL = "cancel"


class HandlerActor(str, Enum):
    BOAT_MANAGER = "boat_manager"
    COMPANY = "company"
    CLIENT = "client"


class CategoryGroup(str, Enum):
    MAINTENANCE = "maintenance"
    ASSISTANCE = "assistance"
    SALE_PURCHASE = "sale_purchase"


class ServiceCategory(str, Enum):
    MAINTENANCE = "maintenance"
    IMPROVEMENT = "improvement"
    REPAIR = "repair"
    INSPECTION = "inspection"
    ACCESS_MANAGEMENT = "access_management"
    SECURITY = "security"
    REPRESENTATION = "representation"
    OTHER = "other"
    BOAT_SALE = "boat_sale"
    BOAT_SEARCH = "boat_search"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]

    @property
    def group(self) -> CategoryGroup:
        return CATEGORY_GROUPS[self]

    @property
    def requires_boat(self) -> bool:
        return self.group != CategoryGroup.SALE_PURCHASE


CATEGORY_LABELS = {
    ServiceCategory.MAINTENANCE: "Maintenance",
    ServiceCategory.IMPROVEMENT: "Improvement",
    ServiceCategory.REPAIR: "Repair / breakdown",
    ServiceCategory.INSPECTION: "Inspection",
    ServiceCategory.ACCESS_MANAGEMENT: "Access management",
    ServiceCategory.SECURITY: "Security",
    ServiceCategory.REPRESENTATION: "Representation",
    ServiceCategory.OTHER: "Other",
    ServiceCategory.BOAT_SALE: "Selling my boat",
    ServiceCategory.BOAT_SEARCH: "Looking for a boat",
}

CATEGORY_GROUPS = {
    ServiceCategory.MAINTENANCE: CategoryGroup.MAINTENANCE,
    ServiceCategory.IMPROVEMENT: CategoryGroup.MAINTENANCE,
    ServiceCategory.REPAIR: CategoryGroup.MAINTENANCE,
    ServiceCategory.INSPECTION: CategoryGroup.MAINTENANCE,
    ServiceCategory.ACCESS_MANAGEMENT: CategoryGroup.ASSISTANCE,
    ServiceCategory.SECURITY: CategoryGroup.ASSISTANCE,
    ServiceCategory.REPRESENTATION: CategoryGroup.ASSISTANCE,
    ServiceCategory.OTHER: CategoryGroup.ASSISTANCE,
    ServiceCategory.BOAT_SALE: CategoryGroup.SALE_PURCHASE,
    ServiceCategory.BOAT_SEARCH: CategoryGroup.SALE_PURCHASE,
}


class SortKey(str, Enum):
    DATE = "date"
    TYPE = "type"
    CLIENT = "client"
    BOAT_MANAGER = "boat_manager"
    COMPANY = "company"


class ServiceRequestCreate(BaseModel):
    category: ServiceCategory
    title: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    urgency: Urgency = Urgency.NORMAL
    client_id: Optional[str] = None
    boat_id: Optional[str] = None
    boat_manager_id: Optional[str] = None
    company_id: Optional[str] = None

    @model_validator(mode="after")
    def normalize(self):
        self.title = self.title.strip()
        if not self.title:
            raise ValueError("title must not be blank")
        self.description = (self.description or "").strip()
        for name in ("client_id", "boat_id", "boat_manager_id", "company_id"):
            value = getattr(self, name)
            if value is not None:
                setattr(self, name, value.strip() or None)
        return self


class TransitionRequest(BaseModel):
    intent: TransitionIntent
    expected_status: Optional[RequestStatus] = None
    inputs: Dict[str, Any] = Field(default_factory=dict)


class PartyOut(BaseModel):
    id: str
    name: str


class StatusMetaOut(BaseModel):
    status: RequestStatus
    label: str
    description: str
    color: str
    order: int
    terminal: bool
    next_action: Optional[TransitionIntent] = None
    next_action_label: Optional[str] = None


class HandlerOut(BaseModel):
    actor: HandlerActor
    party: Optional[PartyOut] = None
    display_text: str
    color: str


class ActionOut(BaseModel):
    intent: TransitionIntent
    label: str


class ServiceRequestOut(BaseModel):
    id: str
    category: ServiceCategory
    category_label: str
    title: str
    description: str
    status: RequestStatus
    urgency: Urgency
    created_at: Optional[datetime] = None
    client: PartyOut
    boat: Optional[PartyOut] = None
    boat_manager: Optional[PartyOut] = None
    company: Optional[PartyOut] = None
    price: Optional[float] = None
    deposit_amount: Optional[float] = None
    invoice_reference: Optional[str] = None
    invoice_date: Optional[date] = None
    payment_due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    scheduled_location: Optional[str] = None
    scheduled_notes: Optional[str] = None
    cancel_reason: Optional[str] = None


class ServiceRequestView(BaseModel):
    request: ServiceRequestOut
    status_meta: StatusMetaOut
    handler: HandlerOut
    actions: List[ActionOut]
    is_new: bool = False
    has_status_update: bool = False


class RequestSummaryOut(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_group: Dict[str, int]
    urgent: int
    billing_by_source: Dict[str, Dict[str, int]]
    new_requests: int = 0
    status_updates: int = 0


class ServiceRequestListResponse(BaseModel):
    items: List[ServiceRequestView]
    summary: RequestSummaryOut
    status_filter: Optional[str] = None
    urgency: Optional[Urgency] = None


class StatusCatalogResponse(BaseModel):
    items: List[StatusMetaOut]
