"""Docker container engine."""

import io
import logging
import posixpath
import tarfile
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import docker
import requests
from docker.errors import APIError, DockerException, NotFound, create_api_error_from_http_exception
from docker.models.containers import Container
from docker.types import CancellableStream

from devvy.core.errors import ContainerNotFoundError, DevvyError, EngineUnreachableError
from devvy.core.types import ContainerInfo, ContainerState, ExecResult, PortMapping
from devvy.virtualization.base import ContainerEngine, LogStream

logger = logging.getLogger(__name__)

REMOVAL_WAIT_ATTEMPTS = 10
REMOVAL_WAIT_INTERVAL = 0.5


def _parse_timestamp(value: str) -> datetime:
    """Parse an engine RFC 3339 timestamp with nanosecond precision."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"

    # Python accepts at most microseconds
    if "." in value:
        head, rest = value.split(".", 1)
        digits = ""
        while rest and rest[0].isdigit():
            digits += rest[0]
            rest = rest[1:]
        value = f"{head}.{digits[:6].ljust(6, '0')}{rest}"

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_ports(raw: dict[str, Any] | None) -> list[PortMapping]:
    mappings = []
    for key, bindings in (raw or {}).items():
        port, _, protocol = key.partition("/")
        if not bindings:
            mappings.append(PortMapping(container_port=int(port), protocol=protocol or "tcp"))
            continue
        seen = set()
        for binding in bindings:
            host_port = int(binding["HostPort"]) if binding.get("HostPort") else None
            if host_port in seen:
                continue
            seen.add(host_port)
            mappings.append(
                PortMapping(
                    container_port=int(port),
                    host_port=host_port,
                    protocol=protocol or "tcp",
                )
            )
    return mappings


def container_info_from_attrs(attrs: dict[str, Any]) -> ContainerInfo:
    """Build a ContainerInfo from a container inspect payload.

    Args:
        attrs: ``docker inspect`` JSON for one container.

    Returns:
        Container snapshot.
    """
    state_attrs = attrs.get("State", {})
    state = ContainerState(state_attrs.get("Status", "created"))
    exited = state is ContainerState.EXITED

    return ContainerInfo(
        id=attrs["Id"],
        name=attrs.get("Name", "").lstrip("/"),
        state=state,
        image=attrs.get("Config", {}).get("Image", ""),
        ports=_parse_ports(attrs.get("NetworkSettings", {}).get("Ports")),
        created=_parse_timestamp(attrs["Created"]),
        exit_code=state_attrs.get("ExitCode", 0) if exited else None,
        finished_at=_parse_timestamp(state_attrs["FinishedAt"]) if exited else None,
    )


@contextmanager
def _engine_errors() -> Iterator[None]:
    """Translate transport and API failures into devvy errors."""
    try:
        yield
    except requests.exceptions.ConnectionError as e:
        raise EngineUnreachableError(str(e)) from e
    except APIError as e:
        raise DevvyError(f"Docker API error: {e.explanation or e}") from e
    except DockerException as e:
        raise EngineUnreachableError(str(e)) from e


class DockerLogStream(LogStream):
    """Raw log stream read from the engine's HTTP response."""

    def __init__(self, response: requests.Response, framed: bool = True) -> None:
        """Initialize stream.

        Args:
            response: Streaming response of the logs endpoint.
            framed: False when the container has a TTY and output is not
                multiplexed.
        """
        self._response = response
        self._stream = CancellableStream(response.iter_content(chunk_size=None), response)
        self._closed = False
        self.framed = framed

    def chunks(self) -> Iterator[bytes]:
        try:
            for chunk in self._stream:
                if chunk:
                    yield chunk
        except Exception:
            # Reads fail in arbitrary ways once the socket is shut down
            if self._closed:
                return
            raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._stream.close()
        except DockerException:
            self._response.close()


class DockerEngine(ContainerEngine):
    """Container engine backed by the Docker SDK."""

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        """Initialize Docker engine.

        Args:
            client: Existing client. Created from the environment if None.

        Raises:
            EngineUnreachableError: If Docker is not available or not running.
        """
        if client is None:
            try:
                client = docker.from_env()
            except DockerException as e:
                raise EngineUnreachableError(str(e)) from e
        self._client = client
        self._api = client.api

    @property
    def client(self) -> docker.DockerClient:
        """Get the underlying Docker client."""
        return self._client

    def _get_container(self, name: str) -> Container | None:
        """Get container by ID or name.

        Args:
            name: Container ID or name.

        Returns:
            Container object or None if not found.
        """
        try:
            return self._client.containers.get(name)
        except NotFound:
            return None

    def _require_container(self, name: str) -> Container:
        container = self._get_container(name)
        if container is None:
            raise ContainerNotFoundError(name)
        return container

    def ping(self) -> None:
        with _engine_errors():
            self._client.ping()

    def find(self, name: str) -> ContainerInfo | None:
        with _engine_errors():
            container = self._get_container(name)
            if container is None:
                return None
            return container_info_from_attrs(container.attrs)

    def stop(self, name: str, force: bool = False, timeout: int = 10) -> None:
        with _engine_errors():
            container = self._get_container(name)
            if container is None or container.status not in ("running", "restarting", "paused"):
                logger.debug("Container %s is not running, nothing to stop", name)
                return
            try:
                if force:
                    container.kill()
                else:
                    container.stop(timeout=timeout)
            except NotFound:
                return
            except APIError as e:
                # Stopped concurrently
                if e.status_code == 409 and "is not running" in str(e.explanation or ""):
                    return
                raise
            logger.info("Stopped container %s", name)

    def remove(self, name: str, force: bool = False) -> None:
        with _engine_errors():
            container = self._get_container(name)
            if container is None:
                logger.debug("Container %s does not exist, nothing to remove", name)
                return
            try:
                container.remove(force=force)
            except NotFound:
                return
            except APIError as e:
                explanation = str(e.explanation or e).lower()
                if "removal" in explanation and "in progress" in explanation:
                    self._wait_for_removal(name)
                    return
                raise
            logger.info("Removed container %s", name)

    def _wait_for_removal(self, name: str) -> None:
        for _ in range(REMOVAL_WAIT_ATTEMPTS):
            time.sleep(REMOVAL_WAIT_INTERVAL)
            if self._get_container(name) is None:
                return
        logger.warning("Container %s is still being removed", name)

    def exec_one_shot(self, name: str, argv: Sequence[str], user: str | None = None) -> ExecResult:
        with _engine_errors():
            container = self._require_container(name)
            try:
                result = container.exec_run(list(argv), user=user or "", demux=False)
            except NotFound as e:
                raise ContainerNotFoundError(name) from e
            except APIError as e:
                # Container exists but is not running
                if e.status_code == 409:
                    return ExecResult(exit_code=-1, output=str(e.explanation or e))
                raise

        output = result.output.decode("utf-8", errors="replace") if result.output else ""
        return ExecResult(exit_code=result.exit_code, output=output)

    def open_log_stream(
        self,
        name: str,
        follow: bool = True,
        tail: int | str = "all",
        since: datetime | None = None,
        until: datetime | None = None,
        timestamps: bool = False,
    ) -> LogStream:
        with _engine_errors():
            container = self._require_container(name)
            params: dict[str, Any] = {
                "stdout": 1,
                "stderr": 1,
                "follow": 1 if follow else 0,
                "timestamps": 1 if timestamps else 0,
                "tail": str(tail),
            }
            if since is not None:
                params["since"] = int(since.timestamp())
            if until is not None:
                params["until"] = int(until.timestamp())

            url = f"{self._api.base_url}/v{self._api.api_version}/containers/{container.id}/logs"
            response = self._api.get(url, params=params, stream=True, timeout=None)
            try:
                response.raise_for_status()
            except requests.exceptions.HTTPError as e:
                response.close()
                if response.status_code == 404:
                    raise ContainerNotFoundError(name) from e
                create_api_error_from_http_exception(e)

        tty = bool(container.attrs.get("Config", {}).get("Tty"))
        return DockerLogStream(response, framed=not tty)

    def put_file(
        self,
        name: str,
        path: str,
        content: bytes,
        mode: int = 0o644,
        owner: str | None = None,
    ) -> None:
        directory, filename = posixpath.split(path)

        tar_buffer = io.BytesIO()
        with tarfile.open(fileobj=tar_buffer, mode="w") as tar:
            info = tarfile.TarInfo(name=filename)
            info.size = len(content)
            info.mode = mode
            info.mtime = int(time.time())
            tar.addfile(info, io.BytesIO(content))
        tar_buffer.seek(0)

        with _engine_errors():
            container = self._require_container(name)
            self.exec_one_shot(name, ["mkdir", "-p", directory], user="root")
            container.put_archive(directory, tar_buffer)

        if owner:
            result = self.exec_one_shot(name, ["chown", owner, path], user="root")
            if result.exit_code != 0:
                raise DevvyError(f"Could not change owner of {path}: {result.output.strip()}")

    def list_containers(self, name_filter: str | None = None) -> list[ContainerInfo]:
        filters = {"name": name_filter} if name_filter else None
        with _engine_errors():
            containers = self._client.containers.list(all=True, filters=filters)
            return [container_info_from_attrs(c.attrs) for c in containers]

    def remove_image(self, image: str, force: bool = False) -> bool:
        with _engine_errors():
            try:
                self._client.images.remove(image, force=force)
            except NotFound:
                return False
        logger.info("Removed image %s", image)
        return True

    def remove_volume(self, volume: str, force: bool = False) -> bool:
        with _engine_errors():
            try:
                self._client.volumes.get(volume).remove(force=force)
            except NotFound:
                return False
        logger.info("Removed volume %s", volume)
        return True

    def close(self) -> None:
        """Close the Docker client."""
        self._client.close()
