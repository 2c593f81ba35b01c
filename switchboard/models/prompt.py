"""System prompt models"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .app import AppType


class Prompt(BaseModel):
    """A system prompt for one app type; at most one is enabled per app"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    app_type: AppType = AppType.CLAUDE
    name: str = ""
    content: str = ""
    description: Optional[str] = None
    is_enabled: bool = Field(
        default=False, description="Read-only; changed only through set_enabled_prompt"
    )
    sort_index: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
