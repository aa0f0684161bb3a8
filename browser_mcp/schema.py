"""Static tool descriptor served at GET /schema."""

from __future__ import annotations

from typing import Any

from .actions import TOOLS, ToolSpec
from .config import Config
from .models import ToolParams


def _plain_property(prop: dict[str, Any]) -> dict[str, Any]:
    """Collapse pydantic's Optional (anyOf [..., null]) into a single JSON type."""
    out: dict[str, Any] = {}
    if "anyOf" in prop:
        types = [p for p in prop["anyOf"] if p.get("type") != "null"]
        if types:
            out.update(_plain_property(types[0]))
    if "type" in prop:
        out["type"] = "number" if prop["type"] == "integer" else prop["type"]
    if "items" in prop:
        out["items"] = _plain_property(prop["items"])
    if "description" in prop:
        out["description"] = prop["description"]
    if "default" in prop and prop["default"] is not None:
        out["default"] = prop["default"]
    return out


def parameters_schema(model: type[ToolParams]) -> dict[str, Any]:
    raw = model.model_json_schema()
    return {
        "type": "object",
        "properties": {
            name: _plain_property(prop)
            for name, prop in raw.get("properties", {}).items()
        },
        "required": list(raw.get("required", [])),
    }


def tool_schema(spec: ToolSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "description": spec.description,
        "parameters": parameters_schema(spec.params_model),
        "returns": {
            "type": "object",
            "properties": dict(spec.returns),
        },
    }


def build_schema() -> dict[str, Any]:
    return {
        "name": Config.SERVER_NAME,
        "description": Config.SERVER_DESCRIPTION,
        "tools": [tool_schema(spec) for spec in TOOLS.values()],
    }
