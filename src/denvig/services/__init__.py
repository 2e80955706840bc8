"""Background services supervised by launchd."""

from .identifier import ServiceIdentifier, parse_service_identifier
from .launchctl import LaunchctlRegistry, RegistryEntry, RegistryInfo, ServiceRegistry
from .manager import ServiceManager, ServiceResponse
from .results import ServiceResult, TeardownResult
from .teardown import teardown_global

__all__ = [
    "LaunchctlRegistry",
    "RegistryEntry",
    "RegistryInfo",
    "ServiceIdentifier",
    "ServiceManager",
    "ServiceRegistry",
    "ServiceResponse",
    "ServiceResult",
    "TeardownResult",
    "parse_service_identifier",
    "teardown_global",
]
