"""
Process-wide FFmpeg merge engine.

Lifecycle:
  - ``get_merge_engine()`` returns the single ``MergeEngine`` of the process.
  - The first ``load()`` locates the FFmpeg binary and checks that the
    encoders needed for the merge are available. It runs once; concurrent
    callers wait on the same initialisation.
  - Every ``execute()`` must be issued while holding ``engine.lock``. The
    engine's working filesystem (``engine.filesystem``) is not partitioned per
    job, so two merges running at once would overwrite each other's entries.

Execution materialises the command's inputs from the working filesystem into
a throwaway scratch directory, runs FFmpeg there and loads the output entry
back. FFmpeg is never given a URL or a path outside that directory, and
every input is opened with a ``file``-only protocol whitelist so that a
playlist or concat script hidden in an input cannot reach the network.
File copies and the scratch directory teardown run in the default executor.
"""

import asyncio
import functools
import logging
import shutil
import tempfile
from pathlib import Path

from mediaflow_merge.configs import settings
from mediaflow_merge.merge.errors import EngineInitError, ExecutionError
from mediaflow_merge.remuxer.command import COPY_CODEC, MergeCommand
from mediaflow_merge.remuxer.stage import VirtualFileStage

logger = logging.getLogger(__name__)

# Lines of FFmpeg stderr kept on an ExecutionError
_STDERR_TAIL_LINES = 20

_GLOBAL_ARGS = ("-hide_banner", "-nostdin", "-loglevel", "error", "-y")

# Repeated before each input; FFmpeg resets format options after every -i
_INPUT_ARGS = ("-protocol_whitelist", "file")


def parse_encoder_list(output: str) -> frozenset[str]:
    """
    Parse the output of ``ffmpeg -encoders``.

    The listing starts with a legend terminated by a ``------`` line; every
    following line is ``<flags> <name> <description>``.
    """
    encoders = set()
    in_listing = False
    for line in output.splitlines():
        stripped = line.strip()
        if not in_listing:
            in_listing = stripped.startswith("------")
            continue
        parts = stripped.split()
        if len(parts) >= 2:
            encoders.add(parts[1])
    return frozenset(encoders)


def _stderr_tail(stderr: bytes) -> str:
    lines = stderr.decode("utf-8", errors="replace").strip().splitlines()
    return "\n".join(lines[-_STDERR_TAIL_LINES:])


class MergeEngine:
    def __init__(
        self,
        ffmpeg_path: str | None = None,
        required_encoders: tuple[str, ...] | None = None,
        execute_timeout: float | None = None,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path or settings.ffmpeg_path
        if required_encoders is None:
            required_encoders = (settings.audio_codec, settings.subtitle_codec)
        self.required_encoders = tuple(c for c in required_encoders if c != COPY_CODEC)
        self.execute_timeout = execute_timeout if execute_timeout is not None else settings.execute_timeout

        self.filesystem = VirtualFileStage()
        self.lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()

        self._binary: str | None = None
        self._encoders: frozenset[str] = frozenset()

    @property
    def loaded(self) -> bool:
        return self._binary is not None

    @property
    def encoders(self) -> frozenset[str]:
        return self._encoders

    async def load(self) -> None:
        """Initialise the engine once. Raises ``EngineInitError`` on failure; a later call retries."""
        if self.loaded:
            return
        async with self._init_lock:
            if self.loaded:
                return

            binary = shutil.which(self.ffmpeg_path)
            if binary is None:
                raise EngineInitError(f"FFmpeg executable not found: {self.ffmpeg_path}")

            encoders = await self._probe_encoders(binary)
            missing = [name for name in self.required_encoders if name not in encoders]
            if missing:
                raise EngineInitError(f"FFmpeg at {binary} lacks required encoders: {', '.join(missing)}")

            self._encoders = encoders
            self._binary = binary
            logger.info("[merge_engine] Loaded FFmpeg %s (%d encoders available)", binary, len(encoders))

    async def _probe_encoders(self, binary: str) -> frozenset[str]:
        try:
            process = await asyncio.create_subprocess_exec(
                binary,
                "-hide_banner",
                "-encoders",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            raise EngineInitError(f"Could not start FFmpeg at {binary}: {e}") from e

        if process.returncode != 0:
            raise EngineInitError(f"FFmpeg encoder probe failed ({process.returncode}): {_stderr_tail(stderr)}")
        return parse_encoder_list(stdout.decode("utf-8", errors="replace"))

    async def execute(self, command: MergeCommand) -> None:
        """
        Run ``command`` against the working filesystem.

        Inputs are read from ``self.filesystem`` and the output entry is
        written back into it. A missing output entry is left for the caller
        to detect.

        Raises:
            EngineInitError: If the engine cannot be loaded.
            NotFoundError: If an input entry has not been staged.
            ExecutionError: If FFmpeg exits with an error or times out.
        """
        if not self.lock.locked():
            raise RuntimeError("MergeEngine.execute() must be called while holding engine.lock")

        await self.load()

        loop = asyncio.get_running_loop()
        scratch = await loop.run_in_executor(None, functools.partial(tempfile.mkdtemp, prefix="mediaflow-merge-"))
        workdir = Path(scratch)
        try:
            await loop.run_in_executor(None, self.filesystem.materialize, workdir, command.inputs)

            args = [self._binary, *_GLOBAL_ARGS, *command.to_args(input_options=_INPUT_ARGS)]
            logger.info("[merge_engine] Executing: %s", " ".join(args[1:]))
            returncode, stderr = await self._run(args, workdir)

            if returncode != 0:
                tail = _stderr_tail(stderr)
                logger.error("[merge_engine] FFmpeg exited with %s: %s", returncode, tail)
                raise ExecutionError(f"FFmpeg exited with status {returncode}", returncode=returncode, stderr=tail)

            output_path = workdir / command.output
            if await loop.run_in_executor(None, output_path.is_file):
                await loop.run_in_executor(None, self.filesystem.collect, workdir, command.output)
            else:
                logger.warning("[merge_engine] FFmpeg finished without producing %s", command.output)
        finally:
            await loop.run_in_executor(None, functools.partial(shutil.rmtree, workdir, ignore_errors=True))

    async def _run(self, args: list[str], workdir: Path) -> tuple[int, bytes]:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=workdir,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise ExecutionError(f"Could not start FFmpeg: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.execute_timeout)
        except asyncio.TimeoutError:
            await self._terminate(process)
            raise ExecutionError(f"FFmpeg did not finish within {self.execute_timeout} seconds") from None
        except BaseException:
            # Cancellation included; the child never outlives this call
            await self._terminate(process)
            raise
        return process.returncode, stderr

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        logger.warning("[merge_engine] FFmpeg process %s stopped early", process.pid)


# Module-level singleton -- created on first call to get_merge_engine()
_merge_engine: MergeEngine | None = None


def get_merge_engine() -> MergeEngine:
    """Get the process-wide merge engine. Loading happens lazily on first use."""
    global _merge_engine
    if _merge_engine is None:
        _merge_engine = MergeEngine()
    return _merge_engine
