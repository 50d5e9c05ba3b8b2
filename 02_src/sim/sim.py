"""SIM implementation - replays one Jenkins build's events against the API."""

import asyncio
import base64
import gzip
import json
import random
from datetime import datetime, timezone
from typing import Protocol

import httpx

from ci_anomaly.logging_config import get_logger
from ci_anomaly.tracing import ITracer

logger = get_logger(__name__)


class ISim(Protocol):
    """Generate test traffic."""

    async def start(self) -> None:
        """Start the scenario."""
        ...

    async def stop(self) -> None:
        """Stop the scenario."""
        ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _compress(text: str) -> str:
    return base64.b64encode(gzip.compress(text.encode("utf-8"))).decode("ascii")


def build_scenario(job_name: str, build_number: int) -> list[dict]:
    """
    Event sequence of one build, in emission order.

    The secret scan of the final build-log chunk comes last and closes the
    build's event set.
    """
    envelope = {"job_name": job_name, "build_number": build_number}
    first_log = (
        f"Started by user admin\nRunning in Durability level: MAX_SURVIVABILITY\n"
        f"[Pipeline] Start of Pipeline\n[Pipeline] node\nRunning on agent-1 in "
        f"/var/jenkins_home/workspace/{job_name}\n"
    )
    final_log = (
        "[Pipeline] sh\n+ mvn -B clean verify\n[INFO] BUILD SUCCESS\n"
        "export AWS_SECRET_ACCESS_KEY=wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY\n"
        "[Pipeline] End of Pipeline\nFinished: SUCCESS\n"
    )
    secrets = {"AWS Secret Access Key": ["wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY"]}

    return [
        {
            "type": "build_log_data",
            **envelope,
            "data": {"raw_log": _compress(first_log), "raw_log_compressed": True},
        },
        {
            "type": "code_changes",
            **envelope,
            "data": {
                "changes": _compress(
                    json.dumps(
                        [
                            {
                                "commit_id": "4f9c2ab",
                                "author": "dev@example.com",
                                "message": "Add deployment credentials",
                                "affected_files": ["deploy/env.sh"],
                            }
                        ]
                    )
                ),
                "changes_compressed": True,
                "culprits": ["dev@example.com"],
            },
        },
        {
            "type": "dependency_data",
            **envelope,
            "data": {
                "artifacts": ["target/app-1.0.jar"],
                "dependencies": ["org.springframework:spring-core:5.3.20"],
            },
        },
        {
            "type": "additional_info_agent",
            **envelope,
            "node": "agent-1",
            "host": "10.0.0.12",
            "os": "Linux",
            "threadCount": 48,
            "freeMemoryMb": 812,
        },
        {
            "type": "additional_info_controller",
            **envelope,
            "freeDiskSpaceInJenkinsDirMb": 20480,
            "activeSessions": 3,
        },
        {
            "type": "sast_scanning",
            **envelope,
            "repoUrl": "https://git.example.com/team/app.git",
            "branch": "main",
            "tool": "semgrep",
            "scanResult": "2 findings",
            "scanDurationSeconds": 14.2,
            "status": "COMPLETED",
        },
        {
            "type": "secret_detection",
            **envelope,
            "data": {"source": "source_code", "secrets": {}},
        },
        {
            "type": "build_log_data",
            **envelope,
            "data": {"raw_log": _compress(final_log), "raw_log_compressed": True},
        },
        {
            "type": "secret_detection",
            **envelope,
            "data": {
                "source": "build_log",
                "content": _compress(final_log),
                "content_compressed": True,
                "secrets": _compress(json.dumps(secrets)),
                "secrets_compressed": True,
            },
        },
    ]


class Sim:
    """SIM replaying a simulated build through the ingest endpoint."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        queue_name: str = "jenkins-logs",
        job_name: str = "sim-pipeline",
        tracer: ITracer | None = None,
    ):
        self._api_url = api_url
        self._queue_name = queue_name
        self._job_name = job_name
        self._tracer = tracer
        self._build_number = random.randint(1, 10_000)
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracer(self, tracer: ITracer) -> None:
        """Inject tracer for SIM trace events."""
        self._tracer = tracer

    async def start(self) -> None:
        """Start replaying the next build."""
        if self._running:
            return

        self._running = True
        self._build_number += 1
        self._client = httpx.AsyncClient()

        # Start background task
        self._task = asyncio.create_task(self._run_scenario(self._build_number))

    async def stop(self) -> None:
        """Stop the scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self, build_number: int) -> None:
        """Send the build's events with short delays in between."""
        events = build_scenario(self._job_name, build_number)
        scenario = {
            "job_name": self._job_name,
            "build_number": build_number,
            "event_count": len(events),
        }

        try:
            if self._tracer:
                await self._tracer.track("sim_started", "sim", scenario)

            for event in events:
                if not self._running:
                    break
                event["timestamp"] = _now()
                await self._send_event(event)
                await asyncio.sleep(random.uniform(0.2, 1.0))

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            self._running = False
            if self._tracer:
                await self._tracer.track("sim_completed", "sim", scenario)

    async def _send_event(self, event: dict) -> None:
        """Publish one event via HTTP API."""
        if not self._client:
            return

        try:
            response = await self._client.post(
                f"{self._api_url}/api/queues/{self._queue_name}/messages",
                content=json.dumps(event),
                headers={"Content-Type": "application/json"},
                timeout=10.0,
            )

            if response.status_code == 202:
                logger.info(
                    "SIM: queued %s for %s#%s",
                    event["type"],
                    event["job_name"],
                    event["build_number"],
                )
            else:
                logger.error("SIM: Error publishing event: %s", response.status_code)

        except httpx.HTTPError as e:
            logger.error("SIM: Failed to publish event: %s", e)
