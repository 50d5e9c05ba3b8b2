"""CI log event data models.

Every message on the inbound queue is one of a closed set of event variants,
selected by the ``type`` discriminator. Each variant knows its wire field
names so that the decoded event can be serialized back to the same shape it
arrived in; fields the variant does not know are kept in ``extra`` and
re-emitted untouched.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

# Secret-scan source value marking the scan of the final build-log chunk
FINAL_MARKER_SOURCE = "build_log"


class EventType(str, Enum):
    """Wire discriminators of the known event variants."""

    BUILD_LOG = "build_log_data"
    SECRET_DETECTION = "secret_detection"
    DEPENDENCY_DATA = "dependency_data"
    CODE_CHANGES = "code_changes"
    AGENT_INFO = "additional_info_agent"
    CONTROLLER_INFO = "additional_info_controller"
    SAST_SCAN = "sast_scanning"


@dataclass(frozen=True)
class ConversationKey:
    """Identifies one build execution of a job."""

    job_name: str
    build_number: int

    def __str__(self) -> str:
        return f"{self.job_name}#{self.build_number}"


@dataclass
class LogEvent:
    """Common envelope shared by all event variants."""

    event_type: ClassVar[EventType]
    # (wire name, attribute name) pairs of the variant payload
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = ()

    timestamp: str
    job_name: str
    build_number: int
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> ConversationKey:
        """Conversation key of the build this event belongs to."""
        return ConversationKey(self.job_name, self.build_number)

    @property
    def is_final_marker(self) -> bool:
        """Whether this event closes the build's event set."""
        return False

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the wire shape, omitting unset payload fields."""
        payload: dict[str, Any] = {
            "type": self.event_type.value,
            "timestamp": self.timestamp,
            "job_name": self.job_name,
            "build_number": self.build_number,
        }
        for wire_name, attr in self.wire_fields:
            value = getattr(self, attr)
            if value is not None:
                payload[wire_name] = value
        for name, value in self.extra.items():
            payload.setdefault(name, value)
        return payload

    def to_json(self) -> str:
        """Serialize to a JSON string (the persisted form)."""
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class BuildLogData(LogEvent):
    """A chunk of the build console output."""

    event_type: ClassVar[EventType] = EventType.BUILD_LOG
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("data", "data"),
        ("error", "error"),
    )

    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class SecretDetection(LogEvent):
    """Result of a secret scan over one source (build log, workspace, ...)."""

    event_type: ClassVar[EventType] = EventType.SECRET_DETECTION
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("data", "data"),
        ("error", "error"),
    )

    data: dict[str, Any] | None = None
    error: str | None = None

    @property
    def source(self) -> str | None:
        """Which artifact was scanned."""
        if not self.data:
            return None
        source = self.data.get("source")
        return source if isinstance(source, str) else None

    @property
    def is_final_marker(self) -> bool:
        return self.source == FINAL_MARKER_SOURCE


@dataclass
class DependencyData(LogEvent):
    """Build file, plugin list, artifacts and resolved dependency tree."""

    event_type: ClassVar[EventType] = EventType.DEPENDENCY_DATA
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("data", "data"),
        ("error", "error"),
    )

    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class CodeChanges(LogEvent):
    """Commits that went into the build."""

    event_type: ClassVar[EventType] = EventType.CODE_CHANGES
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("data", "data"),
        ("error", "error"),
    )

    data: dict[str, Any] | None = None
    error: str | None = None


@dataclass
class AdditionalInfoAgent(LogEvent):
    """Runtime metrics of the build agent that executed the job."""

    event_type: ClassVar[EventType] = EventType.AGENT_INFO
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("node", "node"),
        ("host", "host"),
        ("os", "os"),
        ("sessionCount", "session_count"),
        ("activeThreadCount", "active_thread_count"),
        ("threadCount", "thread_count"),
        ("threads", "threads"),
        ("systemLoadAverage", "system_load_average"),
        ("systemCpuLoad", "system_cpu_load"),
        ("availableProcessors", "available_processors"),
        ("javaVersion", "java_version"),
        ("jvmVersion", "jvm_version"),
        ("pid", "pid"),
        ("serverInfo", "server_info"),
        ("contextPath", "context_path"),
        ("startDate", "start_date"),
        ("memory", "memory"),
        ("status", "status"),
        ("message", "message"),
        ("stacktrace", "stacktrace"),
    )

    node: str | None = None
    host: str | None = None
    os: str | None = None
    session_count: int | None = None
    active_thread_count: int | None = None
    thread_count: int | None = None
    threads: dict[str, Any] | None = None
    system_load_average: float | None = None
    system_cpu_load: float | None = None
    available_processors: int | None = None
    java_version: str | None = None
    jvm_version: str | None = None
    pid: str | None = None
    server_info: str | None = None
    context_path: str | None = None
    start_date: str | None = None
    memory: dict[str, Any] | None = None
    status: str | None = None
    message: str | None = None
    stacktrace: list[str] | None = None


@dataclass
class AdditionalInfoController(LogEvent):
    """Runtime metrics of the CI controller."""

    event_type: ClassVar[EventType] = EventType.CONTROLLER_INFO
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("usedMemory", "used_memory"),
        ("maxMemory", "max_memory"),
        ("usedPermGen", "used_perm_gen"),
        ("maxPermGen", "max_perm_gen"),
        ("usedNonHeap", "used_non_heap"),
        ("usedPhysicalMemory", "used_physical_memory"),
        ("usedSwapSpace", "used_swap_space"),
        ("sessionsCount", "sessions_count"),
        ("activeHttpThreadsCount", "active_http_threads_count"),
        ("threadsCount", "threads_count"),
        ("systemLoadAverage", "system_load_average"),
        ("systemCpuLoad", "system_cpu_load"),
        ("availableProcessors", "available_processors"),
        ("host", "host"),
        ("os", "os"),
        ("javaVersion", "java_version"),
        ("jvmVersion", "jvm_version"),
        ("pid", "pid"),
        ("serverInfo", "server_info"),
        ("contextPath", "context_path"),
        ("startDate", "start_date"),
        ("freeDiskSpaceInJenkinsDirMb", "free_disk_space_mb"),
        ("status", "status"),
        ("message", "message"),
        ("stacktrace", "stacktrace"),
    )

    used_memory: int | None = None
    max_memory: int | None = None
    used_perm_gen: int | None = None
    max_perm_gen: int | None = None
    used_non_heap: int | None = None
    used_physical_memory: int | None = None
    used_swap_space: int | None = None
    sessions_count: int | None = None
    active_http_threads_count: int | None = None
    threads_count: int | None = None
    system_load_average: float | None = None
    system_cpu_load: float | None = None
    available_processors: int | None = None
    host: str | None = None
    os: str | None = None
    java_version: str | None = None
    jvm_version: str | None = None
    pid: str | None = None
    server_info: str | None = None
    context_path: str | None = None
    start_date: str | None = None
    free_disk_space_mb: float | None = None
    status: str | None = None
    message: str | None = None
    stacktrace: list[str] | None = None


@dataclass
class ScanResult(LogEvent):
    """Static-analysis (SAST) scan result."""

    event_type: ClassVar[EventType] = EventType.SAST_SCAN
    wire_fields: ClassVar[tuple[tuple[str, str], ...]] = (
        ("repoUrl", "repo_url"),
        ("branch", "branch"),
        ("tool", "tool"),
        ("scanResult", "scan_result"),
        ("scanDurationSeconds", "scan_duration_seconds"),
        ("status", "status"),
        ("error", "error"),
    )

    repo_url: str | None = None
    branch: str | None = None
    tool: str | None = None
    scan_result: str | None = None
    scan_duration_seconds: float | None = None
    status: str | None = None
    error: str | None = None
