"""Run gate for costly or destructive scenarios.

A scenario that creates real infrastructure only runs when its gate is open.
The decision is made once, at scenario start, from the stack's gate policy
and the process environment:

- ENABLED: the opt-in flag is set to a truthy value
- DISABLED_BY_FLAG: the opt-in flag is missing or falsy (cost/safety opt-out)
- DISABLED_UNCONDITIONALLY: the stack declares a fixed skip reason

Static checks (fmt, validate) have no gate and always run.
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

DEFAULT_GATE_ENV = 'RUN_INTEGRATION_TESTS'

TRUTHY = ('1', 'true', 'yes', 'on')


class GateState(Enum):
    """Outcome of evaluating a run gate."""
    ENABLED = 'enabled'
    DISABLED_BY_FLAG = 'disabled-by-flag'
    DISABLED_UNCONDITIONALLY = 'disabled-unconditionally'


@dataclass(frozen=True)
class GatePolicy:
    """How a stack's destructive scenarios are gated.

    Attributes:
        env: Environment variable that must be truthy to run
        skip: When set, scenarios never run and this is the skip reason
    """
    env: str = DEFAULT_GATE_ENV
    skip: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> 'GatePolicy':
        """Build from the `gate:` block of a stack file."""
        if not data:
            return cls()
        skip = data.get('skip')
        if skip is True:
            skip = 'integration scenarios disabled for this stack'
        return cls(
            env=str(data.get('env') or DEFAULT_GATE_ENV),
            skip=str(skip) if skip else None,
        )


@dataclass(frozen=True)
class GateDecision:
    """A gate evaluation: state plus a human-readable reason."""
    state: GateState
    reason: str

    @property
    def is_open(self) -> bool:
        return self.state is GateState.ENABLED


def evaluate_gate(policy: GatePolicy, environ: Optional[Mapping[str, str]] = None) -> GateDecision:
    """Decide whether a destructive scenario may run.

    Args:
        policy: Gate policy from the stack configuration
        environ: Environment to read (default: os.environ)

    Returns:
        GateDecision; closed decisions carry the skip reason to report
    """
    if policy.skip:
        return GateDecision(
            GateState.DISABLED_UNCONDITIONALLY,
            f"Integration scenario disabled unconditionally: {policy.skip}",
        )

    if environ is None:
        environ = os.environ
    value = environ.get(policy.env, '')
    if value.strip().lower() in TRUTHY:
        return GateDecision(GateState.ENABLED, f"{policy.env}={value}")

    return GateDecision(
        GateState.DISABLED_BY_FLAG,
        f"Integration test skipped - set {policy.env}=true to enable",
    )
