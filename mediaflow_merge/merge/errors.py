from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from mediaflow_merge.merge.models import AssetRole


class MergeError(Exception):
    """Base exception for everything that can end a merge job."""

    pass


class FetchError(MergeError):
    """A source could not be downloaded. ``role`` names which one."""

    def __init__(self, role: "AssetRole", message: str, status_code: int | None = None):
        self.role = role
        self.status_code = status_code
        self.message = message
        super().__init__(f"[{role.value}] {message}")


class EngineInitError(MergeError):
    """The transcoding engine could not be set up."""

    pass


class ExecutionError(MergeError):
    """The merge ran but failed: non-zero exit, timeout or an unusable output."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class NotFoundError(MergeError, KeyError):
    """A stage entry was expected but is absent."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"Stage entry not found: {self.name}"


class InvalidTransitionError(RuntimeError):
    pass
