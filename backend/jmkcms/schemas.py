"""Pydantic request/record schemas used by the API and the handlers.

`*In` models are create payloads (defaults applied), `*Update` models are
partial payloads (only fields explicitly sent are written) and the bare
entity models are the records read back from the store.
"""

from datetime import datetime
from typing import ClassVar, FrozenSet, List, Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from .utils.formatting import format_duration, media_type

AppCategory = Literal["안전", "전기", "기계", "건설", "화학", "환경", "정보통신", "기타"]
APP_CATEGORIES = get_args(AppCategory)
AppStatus = Literal["draft", "published"]
AdType = Literal["banner", "interstitial"]
ContactStatus = Literal["pending", "in_progress", "resolved"]


class ActionResult(BaseModel):
    """Uniform result of every mutating handler."""
    success: bool
    message: str
    id: Optional[str] = None

    @classmethod
    def ok(cls, message: str, id: Optional[str] = None) -> "ActionResult":
        return cls(success=True, message=message, id=id)

    @classmethod
    def fail(cls, message: str) -> "ActionResult":
        return cls(success=False, message=message)


class LoginIn(BaseModel):
    """Admin login form payload."""
    password: str = ""


# ----------------------------- Apps -----------------------------
class AppIn(BaseModel):
    """Create payload for an app. `bundle_id` becomes the document key."""
    bundle_id: str
    app_name: str
    app_name_full: str = ""
    description: str = ""
    description_full: str = ""
    app_store_url: str = ""
    icon_url: str = ""
    categories: List[str] = Field(default_factory=list)
    app_category: Optional[AppCategory] = None
    status: AppStatus = "draft"
    is_featured: bool = False
    rating: float = 0
    download_count: int = 0


class PartialUpdate(BaseModel):
    """Base for partial updates.

    Omitted fields are left untouched. An explicit null is accepted only
    for the fields in `nullable`; the record models require the rest.
    """
    nullable: ClassVar[FrozenSet[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_required_nulls(self):
        cleared = sorted(f for f in self.model_fields_set if getattr(self, f) is None and f not in self.nullable)
        if cleared:
            raise ValueError(f"null is not allowed for: {', '.join(cleared)}")
        return self


class AppUpdate(PartialUpdate):
    """Partial app update. `bundle_id` is immutable and not accepted here."""
    nullable = frozenset({"app_category"})

    app_name: Optional[str] = None
    app_name_full: Optional[str] = None
    description: Optional[str] = None
    description_full: Optional[str] = None
    app_store_url: Optional[str] = None
    icon_url: Optional[str] = None
    categories: Optional[List[str]] = None
    app_category: Optional[AppCategory] = None
    status: Optional[AppStatus] = None
    is_featured: Optional[bool] = None
    rating: Optional[float] = None
    download_count: Optional[int] = None


class App(AppIn):
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ----------------------------- Concepts -----------------------------
class ConceptIn(BaseModel):
    """Create payload for a study concept.

    `keywords` is kept as the comma-joined string the form submits.
    """
    app_id: str
    category: str = ""
    title: str
    content: str = ""
    importance: int = Field(3, ge=1, le=5)
    keywords: str = ""
    study_note: str = ""
    related_question_ids: List[str] = Field(default_factory=list)


class ConceptUpdate(PartialUpdate):
    category: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    importance: Optional[int] = Field(None, ge=1, le=5)
    keywords: Optional[str] = None
    study_note: Optional[str] = None
    related_question_ids: Optional[List[str]] = None


class Concept(ConceptIn):
    id: str
    importance: int = 3
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ----------------------------- Lectures -----------------------------
class LectureIn(BaseModel):
    """Create payload for an audio or YouTube lecture."""
    app_id: str
    category: str = ""
    title: str
    description: str = ""
    audio_url: str = ""
    youtube_video_id: str = ""
    duration_seconds: int = Field(0, ge=0)
    transcript: str = ""


class LectureUpdate(PartialUpdate):
    category: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    audio_url: Optional[str] = None
    youtube_video_id: Optional[str] = None
    duration_seconds: Optional[int] = Field(None, ge=0)
    transcript: Optional[str] = None


class Lecture(LectureIn):
    id: str
    duration_seconds: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def media_type(self) -> Optional[str]:
        return media_type(self.youtube_video_id, self.audio_url)

    @computed_field
    @property
    def duration_label(self) -> str:
        return format_duration(self.duration_seconds)


# ----------------------------- Affiliate ads -----------------------------
class AffiliateAdIn(BaseModel):
    """Create payload for an affiliate ad.

    Document keys are camelCase; Python attributes are snake_case and
    either spelling is accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True)

    type: AdType
    title: str = ""
    image_url: str = Field("", alias="imageUrl")
    link_url: str = Field("", alias="linkUrl")
    is_active: bool = Field(True, alias="isActive")
    priority: int = 0
    app_ids: List[str] = Field(default_factory=lambda: ["all"], alias="appIds")
    experiment_group: Optional[str] = Field(None, alias="experimentGroup")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")


class AffiliateAdUpdate(PartialUpdate):
    model_config = ConfigDict(populate_by_name=True)
    nullable = frozenset({"experiment_group", "start_date", "end_date"})

    type: Optional[AdType] = None
    title: Optional[str] = None
    image_url: Optional[str] = Field(None, alias="imageUrl")
    link_url: Optional[str] = Field(None, alias="linkUrl")
    is_active: Optional[bool] = Field(None, alias="isActive")
    priority: Optional[int] = None
    app_ids: Optional[List[str]] = Field(None, alias="appIds")
    experiment_group: Optional[str] = Field(None, alias="experimentGroup")
    start_date: Optional[str] = Field(None, alias="startDate")
    end_date: Optional[str] = Field(None, alias="endDate")


class AffiliateAd(AffiliateAdIn):
    id: str
    impressions: int = 0
    clicks: int = 0
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# ----------------------------- Contact -----------------------------
class ContactIn(BaseModel):
    """Public contact form payload; rules are checked by the handler."""
    name: Optional[str] = None
    email: str = ""
    subject: Optional[str] = None
    message: str = ""


class ContactSubmission(BaseModel):
    id: str
    name: str = "익명"
    email: str
    subject: str = "(제목 없음)"
    message: str
    status: ContactStatus = "pending"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ContactStatusIn(BaseModel):
    status: ContactStatus
