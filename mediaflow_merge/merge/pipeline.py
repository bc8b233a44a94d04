"""
Merge job orchestration.

One ``MergePipeline.run`` call drives a single ``MergeJob`` through

    idle -> fetching -> staging -> merging -> exporting -> cleaning_up -> done

Any failure jumps straight to ``cleaning_up`` and the job ends in ``failed``.

The three downloads run concurrently and outside the engine lock. Staging,
merging, exporting and cleanup all happen while holding ``engine.lock``, so
the shared working filesystem only ever contains the entries of the job that
currently owns the engine, and it is empty again when the lock is released.
Cleanup runs on every exit path, including fetch failures.
"""

import logging
from typing import Dict, Optional

from mediaflow_merge.const import AUDIO_INPUT_NAME, SUBTITLE_INPUT_NAME, VIDEO_INPUT_NAME
from mediaflow_merge.merge.errors import ExecutionError, MergeError, NotFoundError
from mediaflow_merge.merge.exporter import CleanupCoordinator, ResultExporter
from mediaflow_merge.merge.fetcher import AssetFetcher
from mediaflow_merge.merge.models import AssetRole, JobState, MergeJob, MergeRequest, OutputArtifact
from mediaflow_merge.remuxer.command import MergeCommand, build_merge_command
from mediaflow_merge.remuxer.ffmpeg_engine import MergeEngine, get_merge_engine

logger = logging.getLogger(__name__)

ROLE_ENTRY_NAMES = {
    AssetRole.VIDEO: VIDEO_INPUT_NAME,
    AssetRole.AUDIO: AUDIO_INPUT_NAME,
    AssetRole.SUBTITLE: SUBTITLE_INPUT_NAME,
}


class MergePipeline:
    def __init__(
        self,
        engine: Optional[MergeEngine] = None,
        fetcher: Optional[AssetFetcher] = None,
        exporter: Optional[ResultExporter] = None,
        cleanup: Optional[CleanupCoordinator] = None,
        command: Optional[MergeCommand] = None,
    ):
        self.engine = engine or get_merge_engine()
        self.stage = self.engine.filesystem
        self.fetcher = fetcher or AssetFetcher()
        self.exporter = exporter or ResultExporter(self.stage)
        self.cleanup_coordinator = cleanup or CleanupCoordinator()
        self.command = command or build_merge_command()

    @staticmethod
    def create_job(request: MergeRequest) -> MergeJob:
        return MergeJob(request=request)

    async def run(self, request: MergeRequest) -> MergeJob:
        """Run a fresh job for ``request`` and return it in its terminal state."""
        return await self.run_job(self.create_job(request))

    async def merge(self, request: MergeRequest) -> OutputArtifact:
        """Like ``run`` but returns the artifact, raising the job's error on failure."""
        job = await self.run(request)
        if job.error is not None:
            raise job.error
        return job.artifact

    async def run_job(self, job: MergeJob) -> MergeJob:
        """
        Drive ``job`` to ``DONE`` or ``FAILED``.

        Job failures never propagate; they are recorded on the returned job.

        Raises:
            InvalidTransitionError: If ``job`` has already been run.
        """
        job.transition(JobState.FETCHING)
        logger.info("[merge_pipeline] Job %s started for %s", job.job_id, job.request.video_source)

        assets: Dict[AssetRole, bytes] = {}
        try:
            assets = await self.fetcher.fetch_all(job.request)
        except Exception as e:
            self._fail(job, e)

        artifact = None
        async with self.engine.lock:
            try:
                if not job.failed:
                    try:
                        artifact = await self._stage_merge_export(job, assets)
                    except Exception as e:
                        self._fail(job, e)
            finally:
                self._cleanup(job)

        if job.failed:
            job.transition(JobState.FAILED)
            logger.info("[merge_pipeline] Job %s failed: %s", job.job_id, job.failure_reason)
        else:
            job.artifact = artifact
            job.transition(JobState.DONE)
            logger.info("[merge_pipeline] Job %s done (%d bytes)", job.job_id, artifact.size)
        return job

    async def _stage_merge_export(self, job: MergeJob, assets: Dict[AssetRole, bytes]) -> OutputArtifact:
        job.transition(JobState.STAGING)
        for role, name in ROLE_ENTRY_NAMES.items():
            self.stage.write(name, assets[role])

        job.transition(JobState.MERGING)
        await self.engine.execute(self.command)

        job.transition(JobState.EXPORTING)
        try:
            return await self.exporter.export(self.command.output)
        except NotFoundError as e:
            raise ExecutionError(f"Merge finished without producing {e.name}") from e

    def _fail(self, job: MergeJob, error: Exception) -> None:
        if isinstance(error, MergeError):
            logger.error(
                "[merge_pipeline] Job %s: %s during %s: %s",
                job.job_id,
                type(error).__name__,
                job.state.value,
                error,
            )
        else:
            logger.exception("[merge_pipeline] Job %s: unexpected error during %s", job.job_id, job.state.value)
        job.record_failure(error)
        if job.state != JobState.CLEANING_UP:
            job.transition(JobState.CLEANING_UP)

    def _cleanup(self, job: MergeJob) -> None:
        if job.state != JobState.CLEANING_UP:
            job.transition(JobState.CLEANING_UP)
        self.cleanup_coordinator.cleanup(self.stage)
