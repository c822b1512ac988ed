"""Core data models shared across restategen components."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Tuple

SERVICE = "service"
WORKFLOW = "workflow"
VIRTUAL_OBJECT = "virtualObject"

CATEGORIES: Tuple[str, ...] = (SERVICE, WORKFLOW, VIRTUAL_OBJECT)

# Construct suffix used for each category in generated code.
CATEGORY_KINDS: Dict[str, str] = {
    SERVICE: "Service",
    WORKFLOW: "Workflow",
    VIRTUAL_OBJECT: "Object",
}

# Directory (under the output dir) holding each category's barrel file.
CATEGORY_INDEX_DIRS: Dict[str, str] = {
    SERVICE: "services",
    WORKFLOW: "workflows",
    VIRTUAL_OBJECT: "objects",
}


@dataclass(frozen=True)
class HandlerEntry:
    """One exported handler discovered inside a unit."""

    export_name: str
    source: str
    category: str


@dataclass
class Manifest:
    """Extraction result for a single unit directory."""

    service_name: str
    handlers: List[HandlerEntry] = field(default_factory=list)


@dataclass
class HandlerGroup:
    """Handlers that share a source file; rendered as a single import."""

    source: str
    handlers: List[HandlerEntry]


@dataclass
class TemplateData:
    """Per-unit record rendered into the adapter and kept in the registry."""

    service_name: str
    service_name_trimmed: str
    service_group: List[HandlerGroup]
    workflow_group: List[HandlerGroup]
    virtual_object_group: List[HandlerGroup]
    file_path: Path

    def groups_for(self, category: str) -> List[HandlerGroup]:
        if category == SERVICE:
            return self.service_group
        if category == WORKFLOW:
            return self.workflow_group
        if category == VIRTUAL_OBJECT:
            return self.virtual_object_group
        raise KeyError(category)

    def is_empty(self) -> bool:
        return not (self.service_group or self.workflow_group or self.virtual_object_group)


__all__ = [
    "CATEGORIES",
    "CATEGORY_INDEX_DIRS",
    "CATEGORY_KINDS",
    "HandlerEntry",
    "HandlerGroup",
    "Manifest",
    "SERVICE",
    "TemplateData",
    "VIRTUAL_OBJECT",
    "WORKFLOW",
]
