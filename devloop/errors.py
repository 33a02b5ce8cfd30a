"""errors.py — One exception per pipeline step."""

from pathlib import Path


class StepFailure(Exception):
    """A pipeline step failed; the remaining steps must not run.

    Attributes:
        returncode: Exit status of the external process, or None when the step
                    failed before (or without) a process exit, e.g. a missing
                    executable or a copy error.
        stderr:     Captured diagnostic output (may be empty).
        log_path:   Log file holding the step's full output, when one exists.
    """

    step = "step"

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        stderr: str = "",
        log_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr
        self.log_path = log_path

    @property
    def exit_code(self) -> int:
        """Process exit code the runner should terminate with (never 0)."""
        if self.returncode is None or self.returncode == 0:
            return 1
        # Signal deaths show up as negative return codes.
        if self.returncode < 0:
            return 128 + abs(self.returncode)
        return self.returncode


class BuildFailure(StepFailure):
    step = "build"


class BindingGenerationFailure(StepFailure):
    step = "bindings"


class StagingFailure(StepFailure):
    step = "stage"


class ServerLaunchFailure(StepFailure):
    step = "serve"
