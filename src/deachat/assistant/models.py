from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


_EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}, "required": []}


class Turn(BaseModel):
    """One role-tagged message of the visible conversation."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "model"]
    content: str


class GeneCategory(str, Enum):
    upregulated = "Upregulated"
    downregulated = "Downregulated"
    not_significant = "Not significant"
    unknown = "Unknown"


class SelectedGene(BaseModel):
    """A volcano-plot point as the browser reports it.

    ``unknown`` is reserved for points the client rebuilt without a matching
    row in the uploaded table. Gene columns holding numeric identifiers
    (Entrez IDs) arrive as JSON numbers and are kept in their string form.
    """

    model_config = ConfigDict(frozen=True, extra="ignore", coerce_numbers_to_str=True)

    gene: str
    log2FC: float | None = None
    padj: float | None = None
    negLog10Padj: float | None = None
    category: GeneCategory = GeneCategory.unknown
    isSignificant: bool = False


class ActiveContext(BaseModel):
    """Context pills the user switched on in the browser."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    disease_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("disease-type", "diseaseType", "disease_type"),
    )
    comparison_groups: str | None = Field(
        default=None,
        validation_alias=AliasChoices("comparison-groups", "comparisonGroups", "comparison_groups"),
    )
    selection: list[SelectedGene] | None = None

    @property
    def has_disease_type(self) -> bool:
        return bool(self.disease_type)

    @property
    def has_comparison_groups(self) -> bool:
        return bool(self.comparison_groups)

    @property
    def has_selection(self) -> bool:
        return bool(self.selection)

    def is_empty(self) -> bool:
        return not (self.has_disease_type or self.has_comparison_groups or self.has_selection)


@dataclass(frozen=True)
class ToolDescriptor:
    name: str
    description: str
    parameter_schema: dict[str, Any] = field(default_factory=lambda: dict(_EMPTY_SCHEMA))

    @classmethod
    def from_mcp(cls, tool: Any) -> "ToolDescriptor":
        """Build a descriptor from an ``mcp.types.Tool``."""

        schema = getattr(tool, "inputSchema", None)
        return cls(
            name=str(tool.name),
            description=str(getattr(tool, "description", None) or ""),
            parameter_schema=dict(schema) if isinstance(schema, dict) and schema else dict(_EMPTY_SCHEMA),
        )

    def to_declaration(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameter_schema,
        }

    def summary(self) -> dict[str, str]:
        return {"name": self.name, "description": self.description}


@dataclass(frozen=True)
class ToolInvocationRequest:
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult(ABC):
    """Outcome of one tool invocation. Use :class:`ToolSuccess` or :class:`ToolFailure`."""

    name: str

    @property
    @abstractmethod
    def ok(self) -> bool: ...

    @abstractmethod
    def to_response_payload(self) -> dict[str, str]: ...


@dataclass(frozen=True)
class ToolSuccess(ToolResult):
    text: str = ""

    @property
    def ok(self) -> bool:
        return True

    def to_response_payload(self) -> dict[str, str]:
        return {"result": self.text}


@dataclass(frozen=True)
class ToolFailure(ToolResult):
    error: str = ""

    @property
    def ok(self) -> bool:
        return False

    def to_response_payload(self) -> dict[str, str]:
        return {"error": self.error}
