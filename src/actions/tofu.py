"""Provisioning tool (terraform/OpenTofu) CLI surface.

TofuRunner wraps the six commands the harness consumes: fmt -check,
validate, init, apply, destroy and output. Each is a blocking call that
returns (returncode, stdout, stderr). The static-check actions built on it
never touch live infrastructure.
"""

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from common import ActionResult, run_command, tail
from config import StackConfig

logger = logging.getLogger(__name__)


def create_temp_tfvars(stack: StackConfig) -> Path:
    """Write the stack's input variables to a unique temporary tfvars file.

    Variables are substituted verbatim. Caller is responsible for cleanup.
    """
    fd, path = tempfile.mkstemp(prefix=f'tfvars-{stack.name}-{stack.run_id}-', suffix='.tfvars.json')
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
        json.dump(stack.vars, f, indent=2)
    return Path(path)


class TofuRunner:
    """Runs provisioning tool commands against a stack's definition root.

    State isolation: each run gets its own state directory. TF_DATA_DIR
    points at its data/ subdirectory and the state file is passed with
    -state, so parallel runs never collide on provider caches or state.
    """

    def __init__(self, runner: Optional[Callable[..., tuple[int, str, str]]] = None):
        self._run = runner or run_command

    def _cmd(self, stack: StackConfig, *args: str) -> list[str]:
        cmd = [stack.binary, *args]
        if stack.no_color:
            cmd.append('-no-color')
        return cmd

    def _env(self, data_dir: Path) -> dict:
        data_dir.mkdir(parents=True, exist_ok=True)
        return {**os.environ, 'TF_DATA_DIR': str(data_dir), 'TF_IN_AUTOMATION': '1'}

    def fmt_check(self, stack: StackConfig) -> tuple[int, str, str]:
        """Check formatting only; rc 3 means files would be rewritten."""
        cmd = self._cmd(stack, 'fmt', '-check', '-recursive')
        return self._run(cmd, cwd=stack.tofu_dir, timeout=stack.timeout_init)

    def validate(self, stack: StackConfig) -> tuple[int, str, str]:
        """Static validation with no variables and no backend.

        Uses its own data directory so it shares nothing with a concurrent
        lifecycle run of the same stack.
        """
        env = self._env(stack.state_dir / 'validate')
        rc, out, err = self._run(
            self._cmd(stack, 'init', '-backend=false', '-input=false'),
            cwd=stack.tofu_dir, timeout=stack.timeout_init, env=env,
        )
        if rc != 0:
            return rc, out, err
        return self._run(self._cmd(stack, 'validate'), cwd=stack.tofu_dir,
                         timeout=stack.timeout_init, env=env)

    def init(self, stack: StackConfig) -> tuple[int, str, str]:
        cmd = self._cmd(stack, 'init', '-input=false')
        return self._run(cmd, cwd=stack.tofu_dir, timeout=stack.timeout_init,
                         env=self._env(stack.data_dir))

    def apply(self, stack: StackConfig) -> tuple[int, str, str]:
        return self._with_vars(stack, 'apply', stack.timeout_apply)

    def destroy(self, stack: StackConfig) -> tuple[int, str, str]:
        return self._with_vars(stack, 'destroy', stack.timeout_destroy)

    def output(self, stack: StackConfig, name: str) -> tuple[int, str, str]:
        cmd = self._cmd(stack, 'output', '-raw', f'-state={stack.state_file}', name)
        return self._run(cmd, cwd=stack.tofu_dir, env=self._env(stack.data_dir))

    def _with_vars(self, stack: StackConfig, verb: str, timeout: Optional[int]) -> tuple[int, str, str]:
        tfvars_path = create_temp_tfvars(stack)
        try:
            cmd = self._cmd(
                stack, verb, '-auto-approve', '-input=false',
                f'-state={stack.state_file}', f'-var-file={tfvars_path}',
            )
            logger.info(f"[{stack.name}] Running {stack.binary} {verb} (state: {stack.state_file})...")
            return self._run(cmd, cwd=stack.tofu_dir, timeout=timeout, env=self._env(stack.data_dir))
        finally:
            if tfvars_path.exists():
                tfvars_path.unlink()
                logger.debug(f"[{stack.name}] Cleaned up temp tfvars: {tfvars_path}")


@dataclass
class TofuFormatCheckAction:
    """Fail if any file in the definition root would be reformatted."""
    name: str
    runner: Optional[TofuRunner] = None

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()

        if not config.tofu_dir.exists():
            return ActionResult(
                success=False,
                message=f"Definition root not found: {config.tofu_dir}",
                duration=time.time() - start
            )

        runner = self.runner or context.get('runner') or TofuRunner()
        logger.info(f"[{self.name}] Running {config.binary} fmt -check in {config.tofu_dir}...")
        rc, out, err = runner.fmt_check(config)
        if rc != 0:
            files = [line.strip() for line in out.splitlines() if line.strip()]
            if files:
                message = f"Files need formatting: {', '.join(files)}"
            else:
                message = f"{config.binary} fmt -check failed: {tail(err)}"
            return ActionResult(success=False, message=message, duration=time.time() - start)

        return ActionResult(
            success=True,
            message=f"Formatting clean in {config.tofu_dir}",
            duration=time.time() - start
        )


@dataclass
class TofuValidateAction:
    """Run the tool's static validator against the definition root."""
    name: str
    runner: Optional[TofuRunner] = None

    def run(self, config: StackConfig, context: dict) -> ActionResult:
        start = time.time()

        if not config.tofu_dir.exists():
            return ActionResult(
                success=False,
                message=f"Definition root not found: {config.tofu_dir}",
                duration=time.time() - start
            )

        runner = self.runner or context.get('runner') or TofuRunner()
        logger.info(f"[{self.name}] Running {config.binary} validate in {config.tofu_dir}...")
        rc, out, err = runner.validate(config)
        if rc != 0:
            return ActionResult(
                success=False,
                message=f"{config.binary} validate failed: {tail(err or out)}",
                duration=time.time() - start
            )

        return ActionResult(
            success=True,
            message=f"Configuration valid: {config.tofu_dir}",
            duration=time.time() - start
        )
