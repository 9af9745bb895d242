"""Paired apply/destroy lifecycle for a stack.

StackLifecycle.run(stack, body) provisions the stack, hands the caller an
OutputReader for its assertions, and destroys the stack on every exit path:
normal return, assertion failure, provisioning failure, unexpected
exception, or KeyboardInterrupt. Destroy runs exactly once per run() and is
never retried; its failure is reported rather than swallowed.
"""

import logging
import time
from typing import Any, Callable, Optional

from actions.tofu import TofuRunner
from common import ActionResult, tail
from config import StackConfig
from outputs import OutputReader

logger = logging.getLogger(__name__)


class ProvisioningError(Exception):
    """init or apply returned non-success."""

    def __init__(self, stage: str, stack: str, detail: str):
        self.stage = stage
        self.stack = stack
        self.detail = detail
        super().__init__(f"{stage} failed for stack '{stack}': {detail}")


class DestroyError(Exception):
    """destroy returned non-success; live resources may have leaked."""

    def __init__(self, stack: str, detail: str):
        self.stack = stack
        self.detail = detail
        super().__init__(f"destroy failed for stack '{stack}': {detail}")


class StackLifecycle:
    """Runs init -> apply -> body -> destroy with guaranteed cleanup.

    Args:
        runner: Provisioning tool wrapper (TofuRunner or a fake with the same methods)
        report: Optional TestReport; init/apply/destroy are recorded as phases
    """

    def __init__(self, runner: Optional[TofuRunner] = None, report=None):
        self.runner = runner or TofuRunner()
        self.report = report
        self.destroy_result: Optional[ActionResult] = None

    def run(self, stack: StackConfig, body: Callable[[OutputReader], Any]) -> Any:
        """Provision stack, run body(outputs), then destroy.

        Returns:
            Whatever body returns

        Raises:
            ProvisioningError: init or apply failed (destroy still ran)
            DestroyError: destroy failed after body completed normally
        """
        outputs = OutputReader(self.runner, stack)
        pending: Optional[BaseException] = None
        apply_attempted = False

        # Release is registered before anything fallible runs
        try:
            self._step('init', stack, self.runner.init)
            apply_attempted = True
            self._step('apply', stack, self.runner.apply)
            outputs.mark_applied()
            return body(outputs)
        except BaseException as e:
            pending = e
            raise
        finally:
            self._release(stack, pending, apply_attempted)

    def _step(self, stage: str, stack: StackConfig, call) -> None:
        start = time.time()
        self._start_phase(stage, f"{stack.binary} {stage}")
        logger.info(f"[{stack.name}] Running {stack.binary} {stage}...")
        rc, out, err = call(stack)
        duration = time.time() - start
        if rc != 0:
            detail = tail(err or out)
            if self.report:
                self.report.fail_phase(stage, f"{stack.binary} {stage} failed: {detail}", duration)
            raise ProvisioningError(stage, stack.name, detail)
        if self.report:
            self.report.pass_phase(stage, f"{stack.binary} {stage} completed", duration)

    def _release(self, stack: StackConfig, pending: Optional[BaseException],
                 apply_attempted: bool) -> None:
        start = time.time()
        self._start_phase('destroy', f"{stack.binary} destroy")

        if not apply_attempted:
            # init failed before apply: nothing was created. Whether a local
            # state file exists is irrelevant (state may live in a backend).
            self.destroy_result = ActionResult(
                success=True,
                message=f"apply never ran for {stack.name}, nothing to destroy",
                duration=time.time() - start
            )
        else:
            logger.info(f"[{stack.name}] Destroying stack (run {stack.run_id})...")
            rc, out, err = self.runner.destroy(stack)
            if rc == 0:
                self.destroy_result = ActionResult(
                    success=True,
                    message=f"{stack.binary} destroy completed for {stack.name}",
                    duration=time.time() - start
                )
            else:
                self.destroy_result = ActionResult(
                    success=False,
                    message=f"{stack.binary} destroy failed: {tail(err or out)}",
                    duration=time.time() - start
                )

        result = self.destroy_result
        if result.success:
            logger.info(f"[{stack.name}] {result.message}")
            if self.report:
                self.report.pass_phase('destroy', result.message, result.duration)
            return

        logger.error(f"[{stack.name}] {result.message} - resources may still exist (state: {stack.state_file})")
        if self.report:
            self.report.fail_phase('destroy', result.message, result.duration)
        if pending is None:
            raise DestroyError(stack.name, result.message)

    def _start_phase(self, name: str, description: str) -> None:
        if self.report:
            self.report.start_phase(name, description)
