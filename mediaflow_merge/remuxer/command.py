"""
Declarative description of a merge run.

A ``MergeCommand`` lists the input entries in order, what to do with each
output stream type (copy or encode, plus metadata) and which input stream
feeds which output slot. ``to_args`` renders it as an FFmpeg argument
vector; the rendering is deterministic so identical commands always produce
identical invocations.
"""

from dataclasses import dataclass, field
from enum import Enum

from mediaflow_merge.configs import settings
from mediaflow_merge.const import AUDIO_INPUT_NAME, OUTPUT_NAME, SUBTITLE_INPUT_NAME, VIDEO_INPUT_NAME

COPY_CODEC = "copy"


class StreamType(str, Enum):
    VIDEO = "v"
    AUDIO = "a"
    SUBTITLE = "s"


@dataclass(frozen=True)
class StreamDirective:
    """Codec and per-stream metadata for one output stream type."""

    stream_type: StreamType
    codec: str
    metadata: tuple[tuple[str, str], ...] = ()
    output_index: int = 0

    def to_args(self) -> list[str]:
        args = [f"-c:{self.stream_type.value}", self.codec]
        for key, value in self.metadata:
            args += [f"-metadata:s:{self.stream_type.value}:{self.output_index}", f"{key}={value}"]
        return args


@dataclass(frozen=True)
class StreamMapping:
    """``input_index:stream_type:stream_index`` feeding the next output slot."""

    input_index: int
    stream_type: StreamType
    stream_index: int = 0

    @property
    def specifier(self) -> str:
        return f"{self.input_index}:{self.stream_type.value}:{self.stream_index}"


@dataclass(frozen=True)
class MergeCommand:
    inputs: tuple[str, ...]
    directives: tuple[StreamDirective, ...]
    mappings: tuple[StreamMapping, ...]
    output: str
    extra_args: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.inputs:
            raise ValueError("A merge command needs at least one input")
        if self.output in self.inputs:
            raise ValueError("Output entry must differ from every input entry")
        for mapping in self.mappings:
            if not 0 <= mapping.input_index < len(self.inputs):
                raise ValueError(f"Mapping {mapping.specifier} references a missing input")

    def to_args(self, input_options: tuple[str, ...] = ()) -> list[str]:
        """Render the argument vector. ``input_options`` are repeated before every ``-i``."""
        args: list[str] = []
        for name in self.inputs:
            args += [*input_options, "-i", name]
        for directive in self.directives:
            args += directive.to_args()
        for mapping in self.mappings:
            args += ["-map", mapping.specifier]
        args += list(self.extra_args)
        args.append(self.output)
        return args


def build_merge_command(
    audio_codec: str | None = None,
    subtitle_codec: str | None = None,
    subtitle_language: str | None = None,
) -> MergeCommand:
    """
    Build the video + audio + subtitle merge command.

    The video stream is copied untouched, audio and subtitles are encoded
    with the configured codecs, and the subtitle stream is tagged with a
    language. Output slots are filled in the fixed order video, audio,
    subtitle.
    """
    return MergeCommand(
        inputs=(VIDEO_INPUT_NAME, AUDIO_INPUT_NAME, SUBTITLE_INPUT_NAME),
        directives=(
            StreamDirective(StreamType.VIDEO, COPY_CODEC),
            StreamDirective(StreamType.AUDIO, audio_codec or settings.audio_codec),
            StreamDirective(
                StreamType.SUBTITLE,
                subtitle_codec or settings.subtitle_codec,
                metadata=(("language", subtitle_language or settings.subtitle_language),),
            ),
        ),
        mappings=(
            StreamMapping(0, StreamType.VIDEO),
            StreamMapping(1, StreamType.AUDIO),
            StreamMapping(2, StreamType.SUBTITLE),
        ),
        output=OUTPUT_NAME,
    )
