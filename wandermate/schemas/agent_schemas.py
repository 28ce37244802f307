# schemas/agent_schemas.py
"""
Pydantic v2 schemas for the WanderMate travel agent
Sessions, turns, intents, tool calls and replies
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ValidationError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# Enums
# ============================================

_AUTONOMY_ORDER = ("manual", "assisted", "autonomous")

_AUTONOMY_ALIASES = {
    "manual": "manual",
    "guided": "manual",
    "assisted": "assisted",
    "semi-autonomous": "assisted",
    "semi": "assisted",
    "autonomous": "autonomous",
    "fully-autonomous": "autonomous",
    "full": "autonomous",
}


class AutonomyLevel(str, Enum):
    """How much confirmation side-effecting actions need. Ordered MANUAL < ASSISTED < AUTONOMOUS."""
    MANUAL = "manual"
    ASSISTED = "assisted"
    AUTONOMOUS = "autonomous"

    @property
    def rank(self) -> int:
        return _AUTONOMY_ORDER.index(self.value)

    def __lt__(self, other):
        if isinstance(other, AutonomyLevel):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, AutonomyLevel):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, AutonomyLevel):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, AutonomyLevel):
            return self.rank >= other.rank
        return NotImplemented

    @classmethod
    def parse(cls, value: Union[str, "AutonomyLevel"]) -> "AutonomyLevel":
        """Parse a level, accepting the legacy names (guided, semi-autonomous, fully-autonomous)."""
        if isinstance(value, AutonomyLevel):
            return value
        key = str(value or "").strip().lower().replace("_", "-").replace(" ", "-")
        if key not in _AUTONOMY_ALIASES:
            raise ValidationError(f"Unknown autonomy level: {value!r}", field="autonomyLevel")
        return cls(_AUTONOMY_ALIASES[key])


class Channel(str, Enum):
    WEB = "web"
    WHATSAPP = "whatsapp"


class PolicyDecision(str, Enum):
    EXECUTE = "execute"
    CONFIRM = "confirm"
    DECLINE = "decline"


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ToolStatus(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    FATAL_FAILURE = "fatal_failure"
    SKIPPED = "skipped"


# ============================================
# Context
# ============================================

class GeoPoint(BaseModel):
    """Latitude/longitude pair"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class ContactInfo(BaseModel):
    """Contact details attached to a booking"""
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None


# ============================================
# Intents (closed tagged union)
# ============================================

class IntentBase(BaseModel):
    """Fields shared by every intent variant"""
    raw_text: str = ""
    missing_slots: List[str] = Field(default_factory=list)
    confidence: float = Field(0.0, ge=0, le=1)

    REQUIRED_SLOTS: ClassVar[Tuple[str, ...]] = ()
    HAS_SIDE_EFFECTS: ClassVar[bool] = False
    PAYMENT_BEARING: ClassVar[bool] = False

    META_FIELDS: ClassVar[set] = {"kind", "raw_text", "missing_slots", "confidence"}

    def slot_values(self) -> Dict[str, Any]:
        """Slot values only, JSON-compatible, for idempotency keys and logs."""
        return self.model_dump(mode="json", exclude=self.META_FIELDS)

    def refresh_missing_slots(self) -> List[str]:
        self.missing_slots = [
            slot for slot in self.REQUIRED_SLOTS
            if getattr(self, slot, None) in (None, "")
        ]
        return self.missing_slots

    @property
    def is_complete(self) -> bool:
        return not self.missing_slots


class BookTourIntent(IntentBase):
    kind: Literal["book_tour"] = "book_tour"
    tour_id: Optional[str] = None
    tour_name: Optional[str] = None
    date: Optional[str] = None  # YYYY-MM-DD
    guest_count: Optional[int] = Field(None, ge=1)
    contact: Optional[ContactInfo] = None

    REQUIRED_SLOTS: ClassVar[Tuple[str, ...]] = ("tour_id", "date", "guest_count")
    HAS_SIDE_EFFECTS: ClassVar[bool] = True


class CreatePaymentOrderIntent(IntentBase):
    kind: Literal["create_payment_order"] = "create_payment_order"
    amount: Optional[float] = Field(None, gt=0)  # major units (rupees)
    currency: str = "INR"
    receipt: Optional[str] = None

    REQUIRED_SLOTS: ClassVar[Tuple[str, ...]] = ("amount",)
    HAS_SIDE_EFFECTS: ClassVar[bool] = True
    PAYMENT_BEARING: ClassVar[bool] = True


class VerifyPaymentIntent(IntentBase):
    kind: Literal["verify_payment"] = "verify_payment"
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    signature: Optional[str] = None

    REQUIRED_SLOTS: ClassVar[Tuple[str, ...]] = ("order_id", "payment_id", "signature")
    HAS_SIDE_EFFECTS: ClassVar[bool] = True
    PAYMENT_BEARING: ClassVar[bool] = True


class GetWeatherIntent(IntentBase):
    kind: Literal["get_weather"] = "get_weather"
    city: Optional[str] = None
    location: Optional[GeoPoint] = None


class GetNavigationIntent(IntentBase):
    kind: Literal["get_navigation"] = "get_navigation"
    destination: Optional[str] = None
    origin: Optional[GeoPoint] = None
    mode: str = "walking"

    REQUIRED_SLOTS: ClassVar[Tuple[str, ...]] = ("destination",)


class GeneralChatIntent(IntentBase):
    kind: Literal["general_chat"] = "general_chat"
    topic: str = "general"


class UnknownIntent(IntentBase):
    kind: Literal["unknown"] = "unknown"


Intent = Annotated[
    Union[
        BookTourIntent,
        CreatePaymentOrderIntent,
        VerifyPaymentIntent,
        GetWeatherIntent,
        GetNavigationIntent,
        GeneralChatIntent,
        UnknownIntent,
    ],
    Field(discriminator="kind"),
]


# ============================================
# Tool calls
# ============================================

class ToolCall(BaseModel):
    """A single provider invocation"""
    provider: str
    operation: str
    request: Dict[str, Any] = Field(default_factory=dict)
    idempotency_key: str


class ToolCallResult(BaseModel):
    """Outcome of a ToolCall"""
    provider: str
    operation: str
    idempotency_key: str
    request: Dict[str, Any] = Field(default_factory=dict)
    status: ToolStatus
    payload: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None
    attempts: int = 0
    cached: bool = False

    @property
    def succeeded(self) -> bool:
        return self.status == ToolStatus.SUCCESS


# ============================================
# Replies
# ============================================

MAX_QUICK_REPLIES = 3
MAX_BUTTONS = 3


class ReplyButton(BaseModel):
    label: str
    action: str


class Reply(BaseModel):
    """Channel-neutral reply"""
    text: str
    quick_replies: List[str] = Field(default_factory=list, max_length=MAX_QUICK_REPLIES)
    buttons: List[ReplyButton] = Field(default_factory=list, max_length=MAX_BUTTONS)


class DeliveryOutcome(BaseModel):
    """Result of handing a reply to a channel"""
    channel: Channel
    delivered: bool
    destination: Optional[str] = None
    reply: Optional[Reply] = None
    chunks: int = 0
    error: Optional[str] = None


# ============================================
# Session & Turns
# ============================================

class Turn(BaseModel):
    """One request/response exchange. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    index: int = Field(..., ge=0)
    input_text: str
    intent: Optional[Intent] = None
    decision: Optional[PolicyDecision] = None
    outcome: TurnOutcome
    tool_results: List[ToolCallResult] = Field(default_factory=list)
    reply: Reply
    channel: Channel = Channel.WEB
    timestamp: datetime = Field(default_factory=utc_now)


class Session(BaseModel):
    """Per-conversation state owned by the SessionStore"""
    session_id: str
    turns: List[Turn] = Field(default_factory=list)
    autonomy_level: AutonomyLevel = AutonomyLevel.ASSISTED
    user_location: Optional[GeoPoint] = None
    language: str = "en"
    contact: Optional[ContactInfo] = None
    pending_intent: Optional[Intent] = None
    channel: Channel = Channel.WEB
    created_at: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)

    @property
    def next_turn_index(self) -> int:
        return len(self.turns)

    def append_turn(self, turn: Turn) -> Turn:
        """Append a turn; indices must stay contiguous."""
        if turn.index != self.next_turn_index:
            raise ValueError(
                f"Turn index {turn.index} out of order for session {self.session_id} "
                f"(expected {self.next_turn_index})"
            )
        self.turns.append(turn)
        self.last_activity = turn.timestamp
        return turn


class AgentResponse(BaseModel):
    """Result of TravelAgent.process_message"""
    session_id: str
    reply: Reply
    autonomy_level: AutonomyLevel
    turn_index: int
    outcome: TurnOutcome
    timestamp: datetime = Field(default_factory=utc_now)
    delivery: Optional[DeliveryOutcome] = None
