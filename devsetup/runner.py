"""
External command execution.

Runs one command per step and captures its output. There is no retry:
a step is attempted at most once per run.
"""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass

from .common import is_root, vlog


@dataclass(frozen=True)
class CommandStep:
    """
    Single external command.

    Attributes:
        description: Human-readable description of the step
        command: Command tuple to execute
        requires_sudo: Whether this step requires root privileges
        cwd: Working directory for the command
    """
    description: str
    command: tuple[str, ...]
    requires_sudo: bool = False
    cwd: str | None = None

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "command": list(self.command),
            "requires_sudo": self.requires_sudo,
            "cwd": self.cwd,
        }


@dataclass(frozen=True)
class StepResult:
    """
    Result of executing a single step.

    Attributes:
        step: The step that was executed
        success: Whether the step succeeded
        stdout: Standard output from command execution
        stderr: Standard error from command execution
        exit_code: Process exit code (-1 if the process could not run)
        duration_seconds: Time taken to execute step
        error_message: Human-readable error message if failed
    """
    step: CommandStep
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration_seconds: float
    error_message: str | None = None

    def to_dict(self) -> dict:
        return {
            "step": self.step.to_dict(),
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }


def build_command(step: CommandStep) -> list[str]:
    """Get the argv for a step, prefixed with sudo when needed."""
    command = list(step.command)
    if step.requires_sudo and not is_root():
        command = ["sudo"] + command
    return command


def execute_step(
    step: CommandStep,
    timeout: int | None = None,
    verbose: bool = False,
) -> StepResult:
    """
    Execute a single step.

    Args:
        step: Step to execute
        timeout: Command timeout in seconds (None waits for completion)
        verbose: Enable verbose logging

    Returns:
        StepResult with execution outcome
    """
    start_time = time.time()
    command = build_command(step)

    vlog(f"Executing: {' '.join(command)}", verbose)

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            cwd=step.cwd,
            check=False,
        )

        duration = time.time() - start_time
        success = result.returncode == 0

        error_msg = None
        if not success:
            error_msg = f"Command failed with exit code {result.returncode}"
            if result.stderr:
                error_msg += f": {result.stderr.strip()[:200]}"

        return StepResult(
            step=step,
            success=success,
            stdout=result.stdout,
            stderr=result.stderr,
            exit_code=result.returncode,
            duration_seconds=duration,
            error_message=error_msg,
        )

    except subprocess.TimeoutExpired as e:
        return StepResult(
            step=step,
            success=False,
            stdout=e.stdout.decode() if isinstance(e.stdout, bytes) else (e.stdout or ""),
            stderr=e.stderr.decode() if isinstance(e.stderr, bytes) else (e.stderr or ""),
            exit_code=-1,
            duration_seconds=time.time() - start_time,
            error_message=f"Command timed out after {timeout}s",
        )
    except FileNotFoundError:
        return StepResult(
            step=step,
            success=False,
            stdout="",
            stderr="",
            exit_code=-1,
            duration_seconds=time.time() - start_time,
            error_message=f"Command not found: {command[0]}",
        )
    except OSError as e:
        return StepResult(
            step=step,
            success=False,
            stdout="",
            stderr="",
            exit_code=-1,
            duration_seconds=time.time() - start_time,
            error_message=f"Could not run {command[0]}: {e}",
        )
