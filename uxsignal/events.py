from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from .errors import MalformedRow

EventType = Literal[
    "click", "scroll", "hover", "dead_click", "rage_click",
    "network", "console", "web_vital",
]
Pattern = Literal["focused", "exploring", "lost", "minimal"]
PATTERNS = ("focused", "exploring", "lost", "minimal")


class _Model(BaseModel):
    # snake_case in python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InteractionEvent(_Model):
    site_id: str
    session_id: str
    timestamp: int = Field(..., description="epoch milliseconds")
    type: EventType
    x_relative: Optional[float] = Field(None, ge=0.0, le=1.0)
    y_relative: Optional[float] = Field(None, ge=0.0, le=1.0)
    element_selector: Optional[str] = None
    device_type: Optional[str] = None
    page_path: Optional[str] = None
    # type-specific
    x: Optional[float] = None
    y: Optional[float] = None
    element_tag: Optional[str] = None
    zone: Optional[str] = None
    hover_duration_ms: Optional[float] = None
    scroll_depth: Optional[float] = None
    http_status: Optional[int] = None
    click_count: Optional[int] = None
    is_dead_click: bool = False


class ReplayChunk(_Model):
    sequence_id: int
    # already-structured batch, or a serialized one still to be parsed
    events: Any


class ReconstructedSession(_Model):
    site_id: str
    session_id: str
    events: List[Dict[str, Any]]
    start_time: int
    end_time: int
    duration_ms: int
    total_events: int
    skipped_chunks: int = 0


class RageClickPoint(_Model):
    x: float
    y: float
    count: int = 1
    frustration_score: float = Field(0.0, ge=0.0, le=100.0)
    element_selector: str = ""
    page_path: str = ""
    rage_click_count: int = 0
    dead_click_count: int = 0


class Hotspot(_Model):
    x: float
    y: float
    count: int
    frustration_score: float
    element_selector: str
    page_path: str = ""
    rage_click_count: int = 0
    dead_click_count: int = 0
    severity: str = "low"
    size: str = "minimal"
    members: int = 1


class SessionPathMetrics(_Model):
    session_id: str
    event_count: int = Field(..., ge=0)
    max_scroll_depth: float = Field(0.0, ge=0.0, le=1.0)
    dead_click_count: int = Field(0, ge=0)
    erratic_segments: int = Field(0, ge=0)
    duration_ms: int = 0


class SessionPathClassification(_Model):
    session_id: str
    pattern: Pattern
    directness_score: float


class PatternBreakdown(_Model):
    focused: int = 0
    exploring: int = 0
    lost: int = 0
    minimal: int = 0


class PathReport(_Model):
    total_sessions: int
    erratic_sessions: int
    erratic_percentage: float
    pattern_breakdown: PatternBreakdown
    sessions: List[SessionPathClassification]


class HoverRow(_Model):
    session_id: str
    element_selector: str = Field(..., min_length=1)
    element_tag: Optional[str] = None
    zone: Optional[str] = None
    hover_duration_ms: float = Field(..., ge=0.0, allow_inf_nan=False)
    x_relative: Optional[float] = Field(None, allow_inf_nan=False)
    y_relative: Optional[float] = Field(None, allow_inf_nan=False)


class HeatmapPoint(_Model):
    selector: str
    tag: str
    zone: str
    duration: float
    count: int
    avg_duration: float
    x: float
    y: float
    intensity: float


class AttentionZone(_Model):
    zone: str
    total_time_ms: float
    event_count: int
    unique_sessions: int
    percentage: float


class AttentionMap(_Model):
    heatmap_points: List[HeatmapPoint] = []
    attention_zones: List[AttentionZone] = []
    total_hover_time_ms: float = 0.0


class VariantStats(_Model):
    variant_id: str
    variant_name: Optional[str] = None
    users: int = Field(0, ge=0)
    conversions: int = Field(0, ge=0)
    conversion_rate: float = 0.0

    @model_validator(mode="after")
    def _conversions_within_users(self) -> "VariantStats":
        if self.conversions > self.users:
            raise ValueError(f"conversions ({self.conversions}) exceed users ({self.users})")
        return self


class ExperimentResult(_Model):
    variants: List[VariantStats]
    winner: Optional[str] = None
    confidence_level: float = 0.0
    is_significant: bool = False
    z_score: float = 0.0
    lift_percentage: float = 0.0
    total_users: int = 0
    status_message: str = ""
    sample_size_needed: Optional[int] = None
    days_running: Optional[int] = None
    days_to_significance: Optional[int] = None


def parse_row(model, row, kind: str):
    """Validate one store row as ``model``; pydantic failures surface as MalformedRow."""
    try:
        return model.model_validate(row)
    except ValidationError as e:
        raise MalformedRow(kind, e.errors()[0]["msg"]) from e
