"""Common utilities and types for stack lifecycle testing."""

import logging
import signal
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass
class ActionResult:
    """Result returned by an action."""
    success: bool
    message: str = ''
    duration: float = 0.0
    context_updates: dict = field(default_factory=dict)
    continue_on_failure: bool = False


def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    capture: bool = True,
    env: Optional[dict] = None
) -> tuple[int, str, str]:
    """Run a command and return (returncode, stdout, stderr).

    timeout=None blocks until the command exits. Provisioning calls rely on
    this: a hung apply is surfaced by the enclosing test framework, not here.

    The child runs in its own session so a terminal Ctrl-C reaches only this
    process. On KeyboardInterrupt the child gets exactly one SIGINT (the
    tool's graceful stop, which still writes state) and is waited for before
    the interrupt propagates.
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    pipe = subprocess.PIPE if capture else None
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            stdout=pipe,
            stderr=pipe,
            text=True,
            env=env,
            start_new_session=True,
        )
    except FileNotFoundError:
        return 127, '', f'Command not found: {cmd[0]}'
    except OSError as e:
        return -1, '', str(e)

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()
        return -1, '', f'Command timed out after {timeout}s'
    except KeyboardInterrupt:
        logger.warning(f"Interrupted, waiting for {cmd[0]} to stop (pid {proc.pid})...")
        proc.send_signal(signal.SIGINT)
        proc.communicate()
        raise
    return proc.returncode, stdout or '', stderr or ''


def tail(text: str, lines: int = 20) -> str:
    """Return the last N non-empty lines of tool output for error messages."""
    kept = [line for line in text.strip().splitlines() if line.strip()]
    return '\n'.join(kept[-lines:])
