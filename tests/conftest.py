"""
Pytest configuration and shared fixtures for the merge pipeline tests.

Network collaborators (video host, storage endpoint) are replaced by an
``httpx.MockTransport``. Most pipeline tests run against ``FakeMergeEngine``;
tests marked ``needs_ffmpeg`` drive the real FFmpeg binary and are skipped
when it is not installed.
"""

import asyncio
import hashlib
import shutil
import subprocess
from functools import partial
from pathlib import Path

import httpx
import pytest
from dotenv import load_dotenv

from mediaflow_merge.merge.exporter import ResultExporter
from mediaflow_merge.merge.fetcher import AssetFetcher
from mediaflow_merge.merge.models import MergeRequest
from mediaflow_merge.merge.pipeline import MergePipeline
from mediaflow_merge.remuxer.ffmpeg_engine import MergeEngine
from mediaflow_merge.utils.http_utils import create_httpx_client

# Load .env file from project root
project_root = Path(__file__).parent.parent
load_dotenv(project_root / ".env")

STORAGE_ENDPOINT = "http://storage.test"
VIDEO_URL = "http://videos.test/clip.mp4"

FFMPEG_AVAILABLE = shutil.which("ffmpeg") is not None


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.addinivalue_line("markers", "asyncio: mark test as async")
    config.addinivalue_line("markers", "needs_ffmpeg: test runs the real FFmpeg binary")


def pytest_collection_modifyitems(config, items):
    if FFMPEG_AVAILABLE:
        return
    skip = pytest.mark.skip(reason="ffmpeg executable not found")
    for item in items:
        if "needs_ffmpeg" in item.keywords:
            item.add_marker(skip)


class FakeMergeEngine(MergeEngine):
    """
    Engine that never spawns FFmpeg.

    The "merge" concatenates a digest of every input. It fails like FFmpeg
    does when the subtitle input does not contain a subtitle marker, and it
    records how many executions overlapped.
    """

    SUBTITLE_MARKER = b"-->"

    def __init__(self, delay: float = 0.01, produce_output: bool = True):
        super().__init__(ffmpeg_path="ffmpeg", required_encoders=())
        self.delay = delay
        self.produce_output = produce_output
        self.active = 0
        self.max_active = 0
        self.executions = 0
        self.commands = []

    async def load(self) -> None:
        self._binary = "ffmpeg"

    async def _run(self, args, workdir: Path):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.executions += 1
        self.commands.append(list(args))
        try:
            await asyncio.sleep(self.delay)
            inputs = [args[i + 1] for i, arg in enumerate(args) if arg == "-i"]
            subtitle = (workdir / inputs[2]).read_bytes()
            if self.SUBTITLE_MARKER not in subtitle:
                return 1, b"Stream map '2:s:0' matches no streams.\n"
            if self.produce_output:
                digest = b"".join(hashlib.sha256((workdir / name).read_bytes()).digest() for name in inputs)
                (workdir / args[-1]).write_bytes(b"MERGED" + digest)
            return 0, b""
        finally:
            self.active -= 1


def make_transport(routes: dict[str, tuple[int, bytes]]) -> httpx.MockTransport:
    """Serve ``{url: (status, body)}``; unknown URLs answer 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        status, body = routes.get(str(request.url), (404, b"not found"))
        return httpx.Response(status, content=body)

    return httpx.MockTransport(handler)


@pytest.fixture
def sources() -> dict[str, tuple[int, bytes]]:
    return {
        VIDEO_URL: (200, b"video-bytes"),
        f"{STORAGE_ENDPOINT}/getFiles?key=audio-1": (200, b"audio-bytes"),
        f"{STORAGE_ENDPOINT}/getFiles?key=subs-1": (200, b"1\n00:00:00,000 --> 00:00:01,000\nHello\n"),
    }


@pytest.fixture
def merge_request() -> MergeRequest:
    return MergeRequest(video_source=VIDEO_URL, audio_key="audio-1", subtitle_key="subs-1")


@pytest.fixture
def make_fetcher():
    def _make(routes: dict[str, tuple[int, bytes]]) -> AssetFetcher:
        return AssetFetcher(
            storage_endpoint=STORAGE_ENDPOINT,
            client_factory=partial(create_httpx_client, transport=make_transport(routes)),
        )

    return _make


@pytest.fixture
def fake_engine() -> FakeMergeEngine:
    return FakeMergeEngine()


@pytest.fixture
def make_pipeline(make_fetcher, sources):
    """Factory building a pipeline around a given engine with mocked sources."""

    def _make(engine: MergeEngine, routes: dict[str, tuple[int, bytes]] | None = None, verify_output=False):
        return MergePipeline(
            engine=engine,
            fetcher=make_fetcher(sources if routes is None else routes),
            exporter=ResultExporter(engine.filesystem, verify_output=verify_output),
        )

    return _make


def _ffmpeg(*args: str, cwd: Path) -> None:
    subprocess.run(["ffmpeg", "-hide_banner", "-loglevel", "error", "-y", *args], cwd=cwd, check=True)


@pytest.fixture(scope="session")
def sample_media(tmp_path_factory) -> dict[str, bytes]:
    """A one second test clip, a matching audio track and a captions file."""
    if not FFMPEG_AVAILABLE:
        pytest.skip("ffmpeg executable not found")
    workdir = tmp_path_factory.mktemp("media")
    _ffmpeg(
        "-f", "lavfi", "-i", "testsrc=duration=1:size=128x72:rate=10",
        "-c:v", "mpeg4", "-pix_fmt", "yuv420p", "video.mp4",
        cwd=workdir,
    )  # fmt: skip
    _ffmpeg(
        "-f", "lavfi", "-i", "sine=frequency=440:duration=1",
        "-c:a", "pcm_s16le", "-f", "wav", "audio.bin",
        cwd=workdir,
    )  # fmt: skip
    subtitles = "1\n00:00:00,000 --> 00:00:00,900\nHello there\n\n"
    return {
        "video": (workdir / "video.mp4").read_bytes(),
        "audio": (workdir / "audio.bin").read_bytes(),
        "subtitle": subtitles.encode("utf-8"),
    }
