"""MCP server models"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .app import AppType


class McpServer(BaseModel):
    """An MCP server definition, independently enabled per app"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str = ""
    command: str = ""
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    enabled_claude: bool = True
    enabled_codex: bool = False
    enabled_gemini: bool = False
    description: Optional[str] = None
    sort_index: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("args", mode="before")
    @classmethod
    def stringify_args(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items() if v is not None}
        return value

    def is_enabled_for(self, app_type: AppType) -> bool:
        return {
            AppType.CLAUDE: self.enabled_claude,
            AppType.CODEX: self.enabled_codex,
            AppType.GEMINI: self.enabled_gemini,
        }[AppType(app_type)]
