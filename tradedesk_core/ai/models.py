"""
Model Router Models
===================
Backends, routing preferences, validated requests and results.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from tradedesk_core.exceptions import ValidationError
from tradedesk_core.providers.models import utc_now_iso
from tradedesk_core.validation import validate_symbol

AUTO = "auto"


class ModelBackend(str, Enum):
    """AI inference backends."""
    OPENAI = "openai"          # General purpose
    PERPLEXITY = "perplexity"  # Real-time, web-grounded
    CLAUDE = "claude"          # Deep reasoning


class AnalysisCategory(str, Enum):
    TECHNICAL = "technical"
    OPTIONS = "options"
    RISK = "risk"
    STRATEGY = "strategy"
    SENTIMENT = "sentiment"
    NEWS = "news"
    GENERAL = "general"


REALTIME_CATEGORIES = frozenset({AnalysisCategory.NEWS, AnalysisCategory.SENTIMENT})
REASONING_CATEGORIES = frozenset({
    AnalysisCategory.TECHNICAL,
    AnalysisCategory.RISK,
    AnalysisCategory.OPTIONS,
    AnalysisCategory.STRATEGY,
})


def parse_backend(value: Union[str, ModelBackend], field_name: str = "model") -> ModelBackend:
    try:
        return ModelBackend(value)
    except ValueError as e:
        raise ValidationError(f"Unknown model backend: {value!r}", field=field_name) from e


@dataclass
class ModelPreferences:
    """Routing preferences, read on every routing decision."""
    preferred_model: Union[ModelBackend, str] = AUTO
    fallback_order: List[ModelBackend] = field(
        default_factory=lambda: [ModelBackend.CLAUDE, ModelBackend.OPENAI, ModelBackend.PERPLEXITY]
    )
    enable_auto_routing: bool = True

    def __post_init__(self):
        if self.preferred_model != AUTO:
            self.preferred_model = parse_backend(self.preferred_model, "preferred_model")
        self.fallback_order = [parse_backend(b, "fallback_order") for b in self.fallback_order]


@dataclass
class BackendResponse:
    """Raw completion from one backend."""
    content: str
    confidence: float
    model_name: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AnalysisResult:
    content: str
    model: str
    confidence: float
    category: str
    subject: str
    timestamp: str = field(default_factory=utc_now_iso)
    metadata: Dict[str, Any] = field(default_factory=dict)


class AnalysisRequest(BaseModel):
    """Validated analysis request."""
    category: AnalysisCategory
    subject: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    requires_realtime: bool = False
    force_model: Optional[ModelBackend] = None
    max_tokens: int = Field(default=2000, gt=0, le=4000)
    temperature: float = Field(default=0.3, ge=0, le=2)

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject(cls, value: Any) -> str:
        try:
            return validate_symbol(value)
        except ValidationError as e:
            raise ValueError(e.message) from e

    @classmethod
    def build(cls, **data: Any) -> "AnalysisRequest":
        """Validate, raising the library ValidationError on bad input."""
        try:
            return cls(**data)
        except PydanticValidationError as e:
            first = e.errors()[0]
            field_name = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(
                f"Invalid analysis request: {first.get('msg')}",
                field=field_name,
                service="ai-analysis",
            ) from e
