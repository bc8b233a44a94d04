import asyncio
import logging

from mediaflow_merge.configs import settings
from mediaflow_merge.const import OUTPUT_FILENAME, OUTPUT_MIME_TYPE, OUTPUT_NAME, STAGED_NAMES
from mediaflow_merge.merge.models import OutputArtifact
from mediaflow_merge.remuxer.container_probe import check_layout, probe_container
from mediaflow_merge.remuxer.stage import VirtualFileStage

logger = logging.getLogger(__name__)


class ResultExporter:
    """Turns the engine's output entry into an ``OutputArtifact``."""

    def __init__(self, stage: VirtualFileStage, verify_output: bool | None = None):
        self.stage = stage
        self.verify_output = settings.verify_output if verify_output is None else verify_output

    async def export(self, name: str = OUTPUT_NAME) -> OutputArtifact:
        """
        Read ``name`` from the stage and wrap it for download.

        Raises:
            NotFoundError: If the engine did not produce the entry.
            ExecutionError: If output verification is on and the container
                does not hold exactly one video, audio and subtitle stream.
        """
        data = self.stage.read(name)

        if self.verify_output:
            loop = asyncio.get_running_loop()
            info = await loop.run_in_executor(None, probe_container, data)
            check_layout(info)
            logger.debug("[result_exporter] Verified %s: %s", name, info.layout())

        return OutputArtifact(data=data, mime_type=OUTPUT_MIME_TYPE, filename=OUTPUT_FILENAME)


class CleanupCoordinator:
    """Purges every fixed-name entry from the stage."""

    def __init__(self, names: tuple[str, ...] = STAGED_NAMES):
        self.names = names

    def cleanup(self, stage: VirtualFileStage) -> list[str]:
        removed = [name for name in self.names if stage.remove(name)]
        logger.info("[cleanup] Removed %d staged entries: %s", len(removed), ", ".join(removed) or "none")
        return removed
