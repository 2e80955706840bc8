from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List, Optional

from ..paths import StoreRoot
from .launchctl import ServiceRegistry
from .plist import WRAPPER_SCRIPT_NAME
from .results import ServiceResult, TeardownResult, all_succeeded

logger = logging.getLogger(__name__)

LABEL_PREFIX = "denvig."


def _service_dirs(root: StoreRoot, project_id: Optional[str]) -> List[Path]:
    if not root.services_dir.is_dir():
        return []
    dirs = [p for p in sorted(root.services_dir.iterdir()) if p.is_dir()]
    if project_id:
        dirs = [p for p in dirs if p.name.startswith(f"{project_id}.")]
    return dirs


def teardown_global(
    root: StoreRoot,
    registry: ServiceRegistry,
    *,
    project_id: Optional[str] = None,
    remove_logs: bool = False,
    launch_agents_dir: Optional[Path] = None,
) -> TeardownResult:
    """Unregister every denvig label (optionally one project's) and delete generated files.

    One failing label never stops the others; descriptors are removed either way
    so the next start regenerates them.
    """
    prefix = f"{LABEL_PREFIX}{project_id}." if project_id else LABEL_PREFIX
    results: List[ServiceResult] = []
    for entry in registry.list(prefix):
        outcome = registry.unregister(entry.label)
        if outcome.success:
            results.append(ServiceResult(name=entry.label, success=True, message="Service removed from launchctl"))
        else:
            results.append(ServiceResult(name=entry.label, success=False, message=f"Failed to bootout: {outcome.output}"))

    removed: List[str] = []
    for service_dir in _service_dirs(root, project_id):
        for f in [*service_dir.glob(f"{LABEL_PREFIX}*.plist"), service_dir / WRAPPER_SCRIPT_NAME]:
            if f.is_file():
                f.unlink()
                removed.append(str(f))
        if remove_logs and (service_dir / "logs").is_dir():
            shutil.rmtree(service_dir / "logs")

    if launch_agents_dir is not None and Path(launch_agents_dir).is_dir():
        for f in sorted(Path(launch_agents_dir).glob(f"{prefix}*.plist")):
            f.unlink()
            removed.append(str(f))

    logger.info("Teardown: %d label(s), %d file(s) removed", len(results), len(removed))
    return TeardownResult(
        success=all_succeeded(results),
        services=results,
        logs_removed=remove_logs,
        files_removed=removed,
    )
