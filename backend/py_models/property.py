from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Union

class PropertyRecord(BaseModel):
    """Sanitized home payload. Everything the site sends beyond these keys is kept as extra fields."""
    model_config = ConfigDict(extra="allow")

    zpid: Union[int, str] = Field(..., description="Site listing identifier")
    url: str
    images: list[str] = Field(default_factory=list)

class ErrorRecord(BaseModel):
    error: str
    url: Optional[str] = None
    zpid: Optional[Union[int, str]] = None
