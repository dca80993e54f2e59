"""Pydantic models for the structured policy analysis produced by the LLM."""

from typing import Any, Literal, Optional

from pydantic import Field, field_validator

from privacy_reader.schemas.common import CamelModel

AnalysisStatus = Literal["complete", "failed", "placeholder"]


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, dict):
        return [f"{k}: {v}" for k, v in value.items()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    return [str(value)]


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(str(item) for item in value)
    if isinstance(value, dict):
        return "; ".join(f"{k}: {v}" for k, v in value.items())
    return str(value)


class Score(CamelModel):
    value: int = Field(0, ge=0, le=100, description="Privacy-friendliness score 0-100")
    explanation: str = Field("", description="Reason for the score")

    @field_validator("value", mode="before")
    @classmethod
    def clamp_value(cls, v: Any) -> int:
        try:
            number = int(round(float(v)))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, number))

    @field_validator("explanation", mode="before")
    @classmethod
    def coerce_explanation(cls, v: Any) -> str:
        return _as_text(v)


class AnalysisResult(CamelModel):
    """The fixed analysis schema every provider response is coerced into."""

    summary: list[str] = Field(default_factory=list)
    data_collection: dict[str, list[str]] = Field(default_factory=dict, alias="dataCollection")
    data_sharing: dict[str, str] = Field(default_factory=dict, alias="dataSharing")
    retention: str = ""
    user_rights: list[str] = Field(default_factory=list, alias="userRights")
    score: Score = Field(default_factory=Score)
    red_flags: list[str] = Field(default_factory=list, alias="redFlags")
    compliance: dict[str, str] = Field(default_factory=dict)

    # Bookkeeping, never requested from the model.
    provider: Optional[str] = None
    analysis_status: AnalysisStatus = Field("complete", alias="analysisStatus")

    @field_validator("summary", "user_rights", "red_flags", mode="before")
    @classmethod
    def coerce_list(cls, v: Any) -> list[str]:
        return _as_str_list(v)

    @field_validator("retention", mode="before")
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        return _as_text(v)

    @field_validator("data_collection", mode="before")
    @classmethod
    def coerce_collection(cls, v: Any) -> dict[str, list[str]]:
        if isinstance(v, list):
            return {"General": _as_str_list(v)} if v else {}
        if not isinstance(v, dict):
            return {}
        return {str(k): _as_str_list(items) for k, items in v.items()}

    @field_validator("data_sharing", "compliance", mode="before")
    @classmethod
    def coerce_mapping(cls, v: Any) -> dict[str, str]:
        if isinstance(v, list):
            return {str(item): "" for item in v}
        if not isinstance(v, dict):
            return {}
        return {str(k): _as_text(val) for k, val in v.items()}

    @field_validator("score", mode="before")
    @classmethod
    def coerce_score(cls, v: Any) -> Any:
        if isinstance(v, (int, float, str)):
            return {"value": v, "explanation": ""}
        if v is None:
            return {}
        return v

    @property
    def is_complete(self) -> bool:
        return self.analysis_status == "complete"


def fallback_analysis() -> AnalysisResult:
    """Fixed neutral result used when the model output cannot be parsed."""
    return AnalysisResult(
        summary=["This privacy policy could not be automatically analyzed."],
        data_collection={"Unknown": ["Data types could not be determined"]},
        data_sharing={"Unknown": "Sharing practices could not be determined"},
        retention="Retention policy could not be determined",
        user_rights=["Rights could not be determined"],
        score=Score(value=0, explanation="Analysis failed, manual review required"),
        red_flags=["Analysis could not complete successfully"],
        compliance={"General": "Assessment failed, manual review required"},
        analysis_status="failed",
    )


def placeholder_analysis(reason: str) -> AnalysisResult:
    """Synthetic, clearly-labelled result for non-production use without a working provider."""
    return AnalysisResult(
        summary=[
            "PLACEHOLDER: no AI provider was available, this is not a real analysis.",
            f"Reason: {reason}",
        ],
        data_collection={},
        data_sharing={},
        retention="Not analyzed (placeholder result)",
        user_rights=[],
        score=Score(value=50, explanation="Placeholder score; the policy was not analyzed"),
        red_flags=["Placeholder analysis: configure a working AI provider for real results"],
        compliance={},
        analysis_status="placeholder",
    )
