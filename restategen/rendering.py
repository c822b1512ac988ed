"""Jinja rendering of adapter, category index and root index files."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .models import (
    CATEGORIES,
    CATEGORY_INDEX_DIRS,
    CATEGORY_KINDS,
    SERVICE,
    VIRTUAL_OBJECT,
    WORKFLOW,
    TemplateData,
)

ADAPTER_TEMPLATE = "adapter.ts.j2"
ROOT_INDEX_TEMPLATE = "root_index.ts.j2"

SERVER_URL_ENV = "RESTATE_SERVER_URL"
DEFAULT_SERVER_URL = "http://localhost:8080"

# Emitted in a category barrel with no members so imports of it still resolve.
EMPTY_INDEX_PLACEHOLDER = "export default {};"

_FACTORIES: Dict[str, str] = {
    SERVICE: "service",
    WORKFLOW: "workflow",
    VIRTUAL_OBJECT: "object",
}


class TemplateRenderer:
    """Renders generated TypeScript from the bundled Jinja templates."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        directories = []
        if templates_dir is not None:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        self.env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=StrictUndefined,
        )

    def render_adapter(self, data: TemplateData) -> str:
        sections = []
        for category in CATEGORIES:
            groups = data.groups_for(category)
            if groups:
                sections.append(
                    {
                        "kind": CATEGORY_KINDS[category],
                        "factory": _FACTORIES[category],
                        "groups": groups,
                    }
                )
        template = self.env.get_template(ADAPTER_TEMPLATE)
        return template.render(
            name=data.service_name,
            trimmed=data.service_name_trimmed,
            imports=_collect_imports(data),
            sections=sections,
        )

    def render_root_index(
        self,
        *,
        server_url_env: str = SERVER_URL_ENV,
        default_server_url: str = DEFAULT_SERVER_URL,
    ) -> str:
        template = self.env.get_template(ROOT_INDEX_TEMPLATE)
        return template.render(
            category_modules=[CATEGORY_INDEX_DIRS[category] for category in CATEGORIES],
            server_url_env=server_url_env,
            default_server_url=default_server_url,
        )


def render_category_index(lines: Sequence[str]) -> str:
    """Return a barrel file body for the given re-export lines."""
    body = list(lines) or [EMPTY_INDEX_PLACEHOLDER]
    return "\n".join(body) + "\n"


def _collect_imports(data: TemplateData) -> List[Tuple[str, List[str]]]:
    """One import per source file across all categories, in first-seen order."""
    imports: Dict[str, List[str]] = {}
    for category in CATEGORIES:
        for group in data.groups_for(category):
            names = imports.setdefault(group.source, [])
            for handler in group.handlers:
                if handler.export_name not in names:
                    names.append(handler.export_name)
    return list(imports.items())


__all__ = [
    "DEFAULT_SERVER_URL",
    "EMPTY_INDEX_PLACEHOLDER",
    "SERVER_URL_ENV",
    "TemplateRenderer",
    "render_category_index",
]
