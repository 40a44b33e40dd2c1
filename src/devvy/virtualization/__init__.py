"""Container engine layer for devvy."""

from devvy.virtualization.base import ContainerEngine, LogStream
from devvy.virtualization.compose import ComposeDriver
from devvy.virtualization.docker import DockerEngine, DockerLogStream
from devvy.virtualization.logs import (
    LineSplitter,
    LogDeframer,
    LogFrame,
    ReadinessMonitor,
    ReadinessSignal,
)

__all__ = [
    "ComposeDriver",
    "ContainerEngine",
    "DockerEngine",
    "DockerLogStream",
    "LineSplitter",
    "LogDeframer",
    "LogFrame",
    "LogStream",
    "ReadinessMonitor",
    "ReadinessSignal",
]
