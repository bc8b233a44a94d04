"""
PyAV-based inspection of merged containers.

Opens an in-memory container and reports its streams so the exporter can
check that a merge produced exactly the expected layout before handing the
file out.
"""

import io
import logging
from collections import Counter
from dataclasses import dataclass, field

import av
import av.error

from mediaflow_merge.merge.errors import ExecutionError

logger = logging.getLogger(__name__)

# One stream of each kind: copied video, encoded audio, embedded subtitles
EXPECTED_LAYOUT = {"video": 1, "audio": 1, "subtitle": 1}


@dataclass(slots=True)
class ProbedStream:
    index: int
    codec_type: str  # "video", "audio", "subtitle", "data"
    codec_name: str
    language: str | None = None


@dataclass(slots=True)
class ContainerInfo:
    format_name: str
    duration_seconds: float = 0.0
    streams: list[ProbedStream] = field(default_factory=list)

    def streams_of(self, codec_type: str) -> list[ProbedStream]:
        return [s for s in self.streams if s.codec_type == codec_type]

    def layout(self) -> dict[str, int]:
        return dict(Counter(s.codec_type for s in self.streams))


def probe_container(data: bytes) -> ContainerInfo:
    """
    Describe the streams of a container held in memory.

    Blocking; call through ``run_in_executor`` from async code.

    Raises:
        ExecutionError: If PyAV cannot parse the data as a container.
    """
    try:
        with av.open(io.BytesIO(data), mode="r") as container:
            streams = []
            for stream in container.streams:
                codec_context = stream.codec_context
                streams.append(
                    ProbedStream(
                        index=stream.index,
                        codec_type=stream.type,
                        codec_name=codec_context.name if codec_context is not None else "",
                        language=stream.metadata.get("language"),
                    )
                )
            duration = container.duration / av.time_base if container.duration else 0.0
            return ContainerInfo(format_name=container.format.name, duration_seconds=duration, streams=streams)
    except av.error.FFmpegError as e:
        raise ExecutionError(f"Merged output is not a readable container: {e}") from e


def check_layout(info: ContainerInfo, expected: dict[str, int] = EXPECTED_LAYOUT) -> None:
    """Raise ``ExecutionError`` unless ``info`` has exactly the ``expected`` stream counts."""
    layout = info.layout()
    if layout != expected:
        logger.error("[container_probe] Unexpected stream layout %s (expected %s)", layout, expected)
        raise ExecutionError(f"Merged output has stream layout {layout}, expected {expected}")
