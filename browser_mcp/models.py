"""Data models for the browser MCP server.

- Per-tool parameter models (validated at the HTTP boundary)
- Console / network monitoring entries
- 3-level Recoverability used by the error catalog
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Recoverability(str, Enum):
    """3-level error recoverability."""
    RECOVERABLE = "recoverable"          # retry same tool call
    ESCALATABLE = "escalatable"          # change strategy / reinitialize
    NON_RECOVERABLE = "non_recoverable"  # give up


# ---------------------------------------------------------------------------
# Request envelope
# ---------------------------------------------------------------------------

class ToolRequest(BaseModel):
    tool: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    model_config = {"json_schema_extra": {"examples": [
        {"tool": "navigateTo", "parameters": {"url": "example.com"}}
    ]}}

    @field_validator("parameters", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return {} if v is None else v


# ---------------------------------------------------------------------------
# Tool parameters
# ---------------------------------------------------------------------------

class ToolParams(BaseModel):
    """Base for tool parameters. Unknown keys are ignored."""
    model_config = ConfigDict(extra="ignore")


class NoParams(ToolParams):
    pass


class NavigateParams(ToolParams):
    url: str = Field(description="URL to navigate to")


class SelectorParams(ToolParams):
    selector: str = Field(description="CSS selector of the element")


class TypeTextParams(ToolParams):
    selector: str = Field(description="CSS selector of the input field")
    text: str = Field(description="Text to type")


class WaitForSelectorParams(ToolParams):
    selector: str = Field(description="CSS selector to wait for")
    timeout: int = Field(default=5_000, ge=0, description="Timeout in milliseconds (default: 5000)")


class EvaluateScriptParams(ToolParams):
    script: str = Field(description="JavaScript code to execute")


class GetCookiesParams(ToolParams):
    urls: list[str] | None = Field(default=None, description="URLs to get cookies for (optional)")

    @field_validator("urls", mode="before")
    @classmethod
    def _single_url(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class SetCookieParams(ToolParams):
    name: str = Field(description="Cookie name")
    value: str = Field(description="Cookie value")
    domain: str | None = Field(default=None, description="Cookie domain (optional)")
    path: str | None = Field(default=None, description="Cookie path (optional)")
    expires: float | None = Field(default=None, description="Cookie expiration timestamp (optional)")


class DeleteCookiesParams(ToolParams):
    names: list[str] | None = Field(
        default=None,
        description="Names of cookies to delete (optional, deletes all if not specified)",
    )
    url: str | None = Field(
        default=None,
        description=(
            "URL to delete cookies for (optional). Cookies are expired on the current "
            "page, so only those also visible there are removed"
        ),
    )


class AuthenticateParams(ToolParams):
    username: str = Field(description="Username for HTTP authentication")
    password: str = Field(description="Password for HTTP authentication")


class GetLocalStorageParams(ToolParams):
    key: str | None = Field(default=None, description="Specific localStorage key to get (optional)")


class SetLocalStorageParams(ToolParams):
    key: str = Field(description="localStorage key")
    value: str = Field(description="localStorage value")


# ---------------------------------------------------------------------------
# Monitoring entries
# ---------------------------------------------------------------------------

class ConsoleLogEntry(BaseModel):
    """One captured console message. Serialized as {type, text, timestamp}."""
    model_config = ConfigDict(populate_by_name=True)

    level: str = Field(serialization_alias="type")
    text: str
    captured_at: str = Field(default_factory=utc_timestamp, serialization_alias="timestamp")


class NetworkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: int
    headers: dict[str, Any] = Field(default_factory=dict)
    mime_type: str | None = Field(default=None, serialization_alias="mimeType")
    captured_at: str = Field(default_factory=utc_timestamp, serialization_alias="timestamp")


class NetworkRequestEntry(BaseModel):
    """One request seen on the CDP Network domain; response attached in place."""
    model_config = ConfigDict(populate_by_name=True)

    request_id: str = Field(serialization_alias="requestId")
    url: str
    method: str
    headers: dict[str, Any] = Field(default_factory=dict)
    captured_at: str = Field(default_factory=utc_timestamp, serialization_alias="timestamp")
    resource_type: str | None = Field(default=None, serialization_alias="type")
    response: NetworkResponse | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
