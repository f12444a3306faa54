"""
Core data models for the data layer.

Wire models (pydantic) describe every entity and every remote action payload
in the camelCase shape used on the wire and in local storage. Anything that
fails to validate against them is treated as absent data by the callers.

Table models (SQLModel) are the reference remote store's persistence.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import SQLModel, Field


class WireModel(BaseModel):
    """Base for camelCase JSON payloads"""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Entities ---


class NeuroScores(WireModel):
    pattern_interrupt: float = 0
    emotional_intensity: float = 0
    curiosity_gap: float = 0
    scarcity: float = 0


class ViralConcept(WireModel):
    hook: str
    script: str = ""
    strategy: str = ""
    scores: NeuroScores = PydanticField(default_factory=NeuroScores)
    visual_prompt: str = ""


class Source(WireModel):
    title: str
    uri: str


class MarketingBrief(WireModel):
    """Input for one generation; unknown keys are kept as-is"""

    model_config = ConfigDict(
        populate_by_name=True, alias_generator=to_camel, extra="allow"
    )

    product_context: str = ""
    target_audience: str = ""
    goal: str = ""
    speaker: str = ""
    language: Literal["DE", "EN"] = "DE"
    sources: Optional[List[Source]] = None
    target_scores: Optional[NeuroScores] = None

    # NLP fields
    content_context: Optional[str] = None
    limbic_type: Optional[str] = None
    focus_keyword: Optional[str] = None
    pattern_type: Optional[str] = None
    rep_system: Optional[str] = None
    motivation: Optional[str] = None
    decision_style: Optional[str] = None
    presupposition: Optional[str] = None
    chunking: Optional[str] = None
    trigger_words: Optional[List[str]] = None


class UserProfile(WireModel):
    id: str = PydanticField(min_length=1)
    name: str
    brand: Optional[str] = ""
    email: str
    phone: Optional[str] = None
    created_at: int


class HistoryItem(WireModel):
    id: str = PydanticField(min_length=1)
    timestamp: int
    concepts: List[ViralConcept] = PydanticField(default_factory=list)
    brief: MarketingBrief = PydanticField(default_factory=MarketingBrief)


class BriefProfile(WireModel):
    id: str = PydanticField(min_length=1)
    name: str
    brief: MarketingBrief = PydanticField(default_factory=MarketingBrief)


class UserQuota(WireModel):
    used_generations: int = PydanticField(ge=0)
    limit: int = PydanticField(ge=0)
    is_premium: bool = False


class Identity(WireModel):
    """An authenticated end-user reference, stable across sessions"""

    id: str
    provider: str
    subject: str
    email: str
    name: str
    created_at: int


# --- Remote action payloads and responses ---


class ActionRequest(BaseModel):
    action: str = PydanticField(min_length=1)
    payload: Dict[str, Any] = PydanticField(default_factory=dict)


class IdPayload(WireModel):
    id: str = PydanticField(min_length=1)


class IdentityPayload(WireModel):
    identity_id: str = PydanticField(min_length=1)


class QuotaSyncPayload(WireModel):
    identity_id: str = PydanticField(min_length=1)
    local_count: int = PydanticField(ge=0, strict=True)


class CheckoutPayload(WireModel):
    identity_id: str = PydanticField(min_length=1)
    user_email: str = PydanticField(min_length=1)
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutSession(WireModel):
    session_id: Optional[str] = None
    url: Optional[str] = None


class SubscriptionStatus(WireModel):
    is_premium: bool = False


# --- Remote store tables ---


class UserRecord(SQLModel, table=True):
    __tablename__ = "hypeakz_users"

    id: str = Field(primary_key=True, max_length=255)
    name: str = Field(max_length=255)
    brand: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=320)
    phone: Optional[str] = Field(default=None, max_length=64)
    created_at: Optional[int] = Field(default=None, sa_column=Column(BigInteger))


class HistoryRecord(SQLModel, table=True):
    __tablename__ = "hypeakz_history"

    id: str = Field(primary_key=True, max_length=255)
    timestamp: int = Field(sa_column=Column(BigInteger, index=True))
    brief: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    concepts: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON)
    )


class ProfileRecord(SQLModel, table=True):
    __tablename__ = "hypeakz_profiles"

    id: str = Field(primary_key=True, max_length=255)
    name: str = Field(max_length=255)
    brief: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))


class QuotaRecord(SQLModel, table=True):
    __tablename__ = "hypeakz_quotas"

    user_id: str = Field(primary_key=True, max_length=255)
    used_generations: int = Field(default=0)
    is_premium: bool = Field(default=False)
    customer_id: Optional[str] = Field(default=None, max_length=255)
    subscription_id: Optional[str] = Field(default=None, max_length=255)
    created_at: Optional[int] = Field(default=None, sa_column=Column(BigInteger))


def now_ms() -> int:
    """Current time as epoch milliseconds"""
    return int(datetime.now().timestamp() * 1000)
