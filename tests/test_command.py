import pytest

from mediaflow_merge.remuxer.command import (
    MergeCommand,
    StreamDirective,
    StreamMapping,
    StreamType,
    build_merge_command,
)


def test_default_command_renders_canonical_ffmpeg_arguments():
    command = build_merge_command(audio_codec="aac", subtitle_codec="mov_text", subtitle_language="eng")

    assert command.to_args() == [
        "-i", "input.mp4",
        "-i", "input.mp3",
        "-i", "input.srt",
        "-c:v", "copy",
        "-c:a", "aac",
        "-c:s", "mov_text",
        "-metadata:s:s:0", "language=eng",
        "-map", "0:v:0",
        "-map", "1:a:0",
        "-map", "2:s:0",
        "output.mp4",
    ]  # fmt: skip


def test_mapping_order_is_video_audio_subtitle():
    command = build_merge_command()

    assert [m.specifier for m in command.mappings] == ["0:v:0", "1:a:0", "2:s:0"]


def test_rendering_is_deterministic():
    assert build_merge_command().to_args() == build_merge_command().to_args()


def test_subtitle_language_is_configurable():
    args = build_merge_command(subtitle_language="fra").to_args()

    assert args[args.index("-metadata:s:s:0") + 1] == "language=fra"


def test_mapping_to_missing_input_is_rejected():
    with pytest.raises(ValueError, match="missing input"):
        MergeCommand(
            inputs=("a.mp4",),
            directives=(StreamDirective(StreamType.VIDEO, "copy"),),
            mappings=(StreamMapping(1, StreamType.AUDIO),),
            output="out.mp4",
        )


def test_output_must_not_overwrite_an_input():
    with pytest.raises(ValueError):
        MergeCommand(inputs=("a.mp4",), directives=(), mappings=(), output="a.mp4")


def test_input_options_precede_every_input():
    args = build_merge_command().to_args(input_options=("-protocol_whitelist", "file"))

    for position, arg in enumerate(args):
        if arg == "-i":
            assert args[position - 2 : position] == ["-protocol_whitelist", "file"]
    assert args.count("-protocol_whitelist") == 3
