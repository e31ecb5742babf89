# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# The shape of data going OUT of the API. Verses and trace entries are
# built from the pipeline's dataclasses with `from_attributes=True`, so the
# route handlers never hand-copy fields.
# =============================================================================

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health — confirms the API is running."""

    status: str = "ok"
    version: str
    service: str


class VerseSource(BaseModel):
    """A verse the answer was generated from."""

    id: str = Field(description="Corpus ID of the verse")
    context_key: str = Field(description="Mandala.Hymn.Verse reference, e.g. '10.129.1'")
    text: str = Field(description="Sanskrit text in Devanagari")
    book: str = ""
    title: str = ""
    score: float | None = Field(
        default=None,
        description="Score reported by the verse index. Informational only.",
    )
    translation: str | None = Field(default=None, description="English translation")
    importance: str | None = Field(
        default=None,
        description="Analyzer's grade: 'high', 'medium' or 'low'",
    )

    model_config = ConfigDict(from_attributes=True)


class TraceEntry(BaseModel):
    """One pipeline stage invocation and its validated output."""

    tool: str = Field(description="'search', 'analyze', 'translate' or 'generate'")
    result: dict[str, Any] = Field(description="The stage's validated output")


class AskResponse(BaseModel):
    """
    Response for POST /ask.

    `success` is False for off-topic questions, when no relevant verses were
    found, and when generation failed; `answer` then holds a fixed apology.
    """

    answer: str = Field(description="The generated answer to the question")
    success: bool = Field(description="Whether a grounded answer was produced")
    question: str = Field(description="The original question (echoed back)")
    verses: list[VerseSource] = Field(
        default_factory=list,
        description="Verses handed to the generator, in evidence order",
    )
    trace: list[TraceEntry] = Field(
        default_factory=list,
        description="Ordered stage outputs, for diagnostics",
    )
