"""Stack output reading.

Outputs are only meaningful after a successful apply. The lifecycle binds an
OutputReader to the stack once apply returns; reading before that, reading a
key the tool does not know, or reading an empty value is an error.
"""

import logging

from common import tail
from config import StackConfig

logger = logging.getLogger(__name__)


class OutputMissingError(Exception):
    """A required stack output is absent or empty."""

    def __init__(self, stack: str, name: str, detail: str = ''):
        self.stack = stack
        self.output = name
        message = f"Output '{name}' missing for stack '{stack}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class OutputReader:
    """Reads named outputs from an applied stack.

    Attributes:
        values: Outputs read so far (name -> value)
    """

    def __init__(self, runner, stack: StackConfig, applied: bool = False):
        self._runner = runner
        self._stack = stack
        self._applied = applied
        self.values: dict[str, str] = {}

    @property
    def applied(self) -> bool:
        return self._applied

    def mark_applied(self) -> None:
        self._applied = True

    def read(self, name: str) -> str:
        """Return the output value for name.

        Raises:
            OutputMissingError: apply has not succeeded, the tool reports no
                such output, or the value is empty
        """
        if not self._applied:
            raise OutputMissingError(self._stack.name, name, 'apply has not succeeded')

        if name in self.values:
            return self.values[name]

        rc, out, err = self._runner.output(self._stack, name)
        if rc != 0:
            raise OutputMissingError(self._stack.name, name, tail(err or out, lines=5))

        value = out.strip()
        if not value:
            raise OutputMissingError(self._stack.name, name, 'value is empty')

        logger.debug(f"[{self._stack.name}] output {name}={value}")
        self.values[name] = value
        return value

    def require(self, *names: str) -> dict[str, str]:
        """Read several outputs, failing on the first missing one."""
        return {name: self.read(name) for name in names}
