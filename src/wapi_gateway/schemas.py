"""Request bodies."""

from pydantic import BaseModel, Field


class SendTextRequest(BaseModel):
    """
    Body of POST /v1/message/send-text.

    Both fields are optional here so that missing values get the
    gateway's own 400 answer instead of a schema error.
    """

    phone: str | None = Field(None, description="Recipient phone, any formatting")
    message: str | None = Field(None, description="Text body")
