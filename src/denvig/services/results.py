from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceResult:
    name: str
    success: bool
    message: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name, "success": self.success, "message": self.message}
        if self.warnings:
            out["warnings"] = list(self.warnings)
        return out


@dataclass(frozen=True)
class TeardownResult:
    success: bool
    services: List[ServiceResult] = field(default_factory=list)
    logs_removed: bool = False
    files_removed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "services": [s.to_dict() for s in self.services],
            "logsRemoved": self.logs_removed,
            "filesRemoved": list(self.files_removed),
        }


def all_succeeded(results: List[ServiceResult]) -> bool:
    return all(r.success for r in results)
