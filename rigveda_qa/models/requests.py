# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# These models define the shape of data coming INTO the API. FastAPI uses
# them for body validation (automatic 422s) and the OpenAPI docs at /docs.
# =============================================================================

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /ask and POST /ask/stream.

    Example:
        {"question": "What does the Nasadiya Sukta say about creation?"}
    """

    question: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="The question to ask about the RigVeda",
        examples=["What does the Nasadiya Sukta say about creation?"],
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"question": "What does the Nasadiya Sukta say about creation?"},
                {"question": "How is Agni praised in the first hymn?"},
                {"question": "10.90"},
            ]
        }
    )
