from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..config import GlobalConfig
from ..paths import StoreRoot
from ..project import GLOBAL_PROJECT_SLUG, Project, create_global_project, list_projects


@dataclass(frozen=True)
class ServiceIdentifier:
    project_slug: str
    service_name: str


def parse_service_identifier(identifier: str, current_project_slug: str) -> ServiceIdentifier:
    """`owner/repo/svc` -> (`owner/repo`, `svc`); a bare name belongs to the current project."""
    ident = str(identifier or "").strip()
    if "/" not in ident:
        return ServiceIdentifier(project_slug=current_project_slug, service_name=ident)
    slug, _, name = ident.rpartition("/")
    return ServiceIdentifier(project_slug=slug, service_name=name)


def resolve_project(slug: str, config: GlobalConfig, root: StoreRoot, *, current: Optional[Project] = None) -> Optional[Project]:
    if current is not None and current.slug == slug:
        return current
    if slug == GLOBAL_PROJECT_SLUG:
        return create_global_project(config, root)
    for project in list_projects(config, with_config=True):
        if project.slug == slug:
            return project
    return None
