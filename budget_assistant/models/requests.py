# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AskRequest(BaseModel):
    """
    Request body for POST /ask.

    The browser client also sends e-mail addresses and a client timestamp
    for downstream delivery; those fields are accepted and ignored here.

    `question` is not type-checked here. Type, blank and length checks
    happen in validate_query(), so a malformed question is a 400
    (InvalidQuery); only a missing one is a 422.

    Example:
        {"question": "What happens to the VAT registration threshold?"}
    """

    question: Any = Field(
        ...,
        description="Question about the Budget 2025 documents",
        examples=["What happens to the VAT registration threshold?"],
    )

    model_config = ConfigDict(
        extra="ignore",
        json_schema_extra={
            "examples": [
                {"question": "What happens to the VAT registration threshold?"},
                {"question": "Is fuel duty changing?"},
            ]
        },
    )
