"""
Status use case — what this host looks like to the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from nvsetup.adapters.registry import AdapterRegistry
from nvsetup.core.config.loader import Settings
from nvsetup.core.engine.context import StageContext
from nvsetup.core.models.platform import PlatformDescriptor
from nvsetup.core.persistence.audit import AuditEntry, AuditWriter
from nvsetup.core.persistence.install_record import InstallRecord
from nvsetup.core.services.platform_probe import detect_platform


@dataclass
class StatusResult:
    """Platform, install record, recent runs and adapter availability."""

    platform: PlatformDescriptor | None = None
    supported: bool = False
    recorded: list[str] = field(default_factory=list)
    expected: list[str] = field(default_factory=list)
    log_path: str = ""
    record_path: str = ""
    recent_runs: list[AuditEntry] = field(default_factory=list)
    adapters: dict[str, dict] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return bool(self.recorded) and all(s in self.recorded for s in self.expected)

    def to_dict(self) -> dict:
        return {
            "platform": (
                self.platform.model_dump() | {"version": self.platform.version}
                if self.platform
                else None
            ),
            "supported": self.supported,
            "installed": {
                "recorded": list(self.recorded),
                "expected": list(self.expected),
                "complete": self.complete,
            },
            "paths": {"log": self.log_path, "record": self.record_path},
            "recent_runs": [e.model_dump(mode="json") for e in self.recent_runs],
            "adapters": dict(self.adapters),
        }


def get_status(settings: Settings, registry: AdapterRegistry | None = None) -> StatusResult:
    """Probe the platform (read-only) and summarise persisted state."""
    if registry is None:
        from nvsetup.core.use_cases.provision import build_registry

        registry = build_registry()

    ctx = StageContext(
        registry=registry,
        settings=settings,
        platform=PlatformDescriptor(),
        stage_id="platform",
    )
    platform = detect_platform(ctx)

    return StatusResult(
        platform=platform,
        supported=platform.is_supported(settings.supported_versions),
        recorded=InstallRecord(settings.record_path).read(),
        expected=[
            settings.driver_stage_id,
            settings.cuda_stage_id,
            "docker",
            settings.toolkit_stage_id,
        ],
        log_path=str(settings.log_path),
        record_path=str(settings.record_path),
        recent_runs=AuditWriter(settings.audit_path).read_recent(5),
        adapters=registry.adapter_status(),
    )
