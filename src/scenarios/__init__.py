"""Scenario definitions and orchestration."""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, runtime_checkable

from config import StackConfig
from gate import GateDecision, evaluate_gate
from lifecycle import DestroyError, ProvisioningError, StackLifecycle
from reporting import TestReport, FAILED, PASSED, SKIPPED

logger = logging.getLogger(__name__)

# Static checks run first in every suite, whatever the gate says
STATIC_SCENARIOS = ['fmt-check', 'validate']


@runtime_checkable
class Scenario(Protocol):
    """Protocol for scenario definitions.

    Class attributes:
        name: Scenario identifier (e.g., 'pipelines-roundtrip')
        description: Human-readable description
        provisions: If True, phases run against live infrastructure inside
            StackLifecycle and the stack's run gate applies (default: False)
        expected_runtime: Expected runtime in seconds for --list-scenarios display (default: None)
    """
    name: str
    description: str
    # Optional attributes with defaults checked by the Orchestrator
    # provisions: bool = False
    # expected_runtime: int = None  # seconds

    def get_phases(self, config: StackConfig) -> list[tuple[str, Any, str]]:
        """Return list of (phase_name, action, description) tuples."""
        ...


class Orchestrator:
    """Coordinates one scenario run against one stack."""

    def __init__(
        self,
        scenario: Scenario,
        config: StackConfig,
        report_dir: Path,
        skip_phases: Optional[list[str]] = None,
        dry_run: bool = False,
        runner=None,
        environ: Optional[Mapping[str, str]] = None,
        aws=None,
        gate: Optional[GateDecision] = None,
    ):
        self.scenario = scenario
        self.config = config
        self.report_dir = report_dir
        self.skip_phases = skip_phases or []
        self.dry_run = dry_run
        self.runner = runner
        self.environ = environ
        self.gate = gate
        self.report = TestReport(
            stack=config.name,
            report_dir=report_dir,
            scenario=scenario.name,
            run_id=config.run_id,
        )
        self.context: dict[str, Any] = {}
        if runner is not None:
            self.context['runner'] = runner
        if aws is not None:
            self.context['aws'] = aws

    @property
    def provisions(self) -> bool:
        return getattr(self.scenario, 'provisions', False)

    @property
    def status(self) -> str:
        return self.report.status

    def gate_decision(self) -> GateDecision:
        """Run gate for this scenario, evaluated at most once.

        A decision passed in by the caller is used as-is so the pre-flight
        check and the run never disagree.
        """
        if self.gate is None:
            self.gate = evaluate_gate(self.config.gate, self.environ)
        return self.gate

    def preview(self) -> bool:
        """Show what would be executed without running. Returns True."""
        phases = self.scenario.get_phases(self.config)

        print("")
        print("═══════════════════════════════════════════════════════════════")
        print(f"  DRY-RUN: {self.scenario.name}")
        print(f"  Stack: {self.config.name} ({self.config.tofu_dir})")
        print("═══════════════════════════════════════════════════════════════")
        print("")

        if self.provisions:
            decision = self.gate_decision()
            gate_label = 'open' if decision.is_open else 'closed'
            print(f"Run gate: {gate_label} ({decision.reason})")
            print(f"  [ OK ] init: {self.config.binary} init")
            print(f"  [ OK ] apply: {self.config.binary} apply ({len(self.config.vars)} variables)")
            print("")

        print("Phases to execute:")
        phase_count = 0
        skip_count = 0

        for phase_name, action, description in phases:
            action_type = type(action).__name__
            if phase_name in self.skip_phases:
                print(f"  [SKIP] {phase_name}: {description}")
                print(f"         Action: {action_type}")
                skip_count += 1
            else:
                print(f"  [ OK ] {phase_name}: {description}")
                print(f"         Action: {action_type}")
                if hasattr(action, 'output'):
                    print(f"         Output: {action.output}")
                phase_count += 1
            print("")

        if self.provisions:
            print(f"  [ OK ] destroy: {self.config.binary} destroy (always runs)")
            print("")

        print("═══════════════════════════════════════════════════════════════")
        print(f"  Summary: {phase_count} phases to execute, {skip_count} to skip")
        print("  Mode: DRY-RUN (no changes made)")
        print("═══════════════════════════════════════════════════════════════")
        print("")
        print("Remove --dry-run to execute the scenario.")
        print("")

        return True

    def run(self) -> bool:
        """Run the scenario. Returns False only if it ran and failed."""
        if self.dry_run:
            return self.preview()

        logger.info(f"Starting scenario '{self.scenario.name}' on stack: {self.config.name} (run {self.config.run_id})")
        self.report.start()
        start_time = time.time()

        if self.provisions:
            decision = self.gate_decision()
            if not decision.is_open:
                logger.info(f"Skipping scenario '{self.scenario.name}': {decision.reason}")
                self.report.skip(decision.reason)
                return True
            all_passed = self._run_lifecycle()
        else:
            all_passed = self._run_phases()

        total_time = time.time() - start_time
        logger.info(f"Scenario completed in {total_time:.1f}s")
        self.report.finish(all_passed)
        return all_passed

    def _run_lifecycle(self) -> bool:
        lifecycle = StackLifecycle(runner=self.runner, report=self.report)
        try:
            return lifecycle.run(self.config, self._run_body)
        except ProvisioningError as e:
            logger.error(f"Provisioning failed: {e}")
            return False
        except DestroyError as e:
            logger.error(f"Cleanup failed: {e}")
            return False
        except KeyboardInterrupt:
            logger.error(f"Scenario '{self.scenario.name}' interrupted")
            self.report.finish(False)
            raise

    def _run_body(self, outputs) -> bool:
        self.context['outputs'] = outputs
        return self._run_phases()

    def _run_phases(self) -> bool:
        phases = self.scenario.get_phases(self.config)
        all_passed = True

        for phase_name, action, description in phases:
            if phase_name in self.skip_phases:
                logger.info(f"Skipping phase: {phase_name}")
                self.report.skip_phase(phase_name, description)
                continue

            logger.info(f"Running phase: {phase_name} - {description}")
            self.report.start_phase(phase_name, description)

            try:
                result = action.run(self.config, self.context)
                if result.success:
                    logger.info(f"Phase {phase_name} passed")
                    self.report.pass_phase(phase_name, result.message, result.duration)
                    self.context.update(result.context_updates or {})
                else:
                    logger.error(f"Phase {phase_name} failed: {result.message}")
                    self.report.fail_phase(phase_name, result.message, result.duration)
                    all_passed = False
                    if not result.continue_on_failure:
                        break
            except Exception as e:
                logger.exception(f"Phase {phase_name} raised exception")
                self.report.fail_phase(phase_name, str(e), 0)
                all_passed = False
                break

        return all_passed


@dataclass
class SuiteResult:
    """Outcome of running several scenarios against one stack."""
    stack: str
    reports: list[TestReport] = field(default_factory=list)

    def _with_status(self, status: str) -> list[str]:
        return [r.scenario for r in self.reports if r.status == status]

    @property
    def passed(self) -> list[str]:
        return self._with_status(PASSED)

    @property
    def failed(self) -> list[str]:
        return self._with_status(FAILED)

    @property
    def skipped(self) -> list[str]:
        return self._with_status(SKIPPED)

    @property
    def exit_code(self) -> int:
        """Non-zero iff a scenario that actually ran failed."""
        return 1 if self.failed else 0

    def to_dict(self) -> dict:
        return {
            'stack': self.stack,
            'success': self.exit_code == 0,
            'passed': self.passed,
            'failed': self.failed,
            'skipped': self.skipped,
            'scenarios': [r.to_dict() for r in self.reports],
        }


def suite_scenarios(config: StackConfig, names: Optional[list[str]] = None) -> list[str]:
    """Scenario names for a suite: static checks first, then the stack's own."""
    ordered: list[str] = []
    for name in STATIC_SCENARIOS + list(names if names is not None else config.scenarios):
        if name not in ordered:
            ordered.append(name)
    return ordered


def run_suite(
    config: StackConfig,
    report_dir: Path,
    names: Optional[list[str]] = None,
    skip_phases: Optional[list[str]] = None,
    runner=None,
    environ: Optional[Mapping[str, str]] = None,
    aws=None,
    gate: Optional[GateDecision] = None,
) -> SuiteResult:
    """Run static checks and the stack's provisioning scenarios in order.

    Each scenario is independent: a failure aborts only that scenario. The
    run gate is evaluated once for the whole suite unless passed in.
    """
    if gate is None:
        gate = evaluate_gate(config.gate, environ)
    suite = SuiteResult(stack=config.name)
    for name in suite_scenarios(config, names):
        orchestrator = Orchestrator(
            scenario=get_scenario(name),
            config=config,
            report_dir=report_dir,
            skip_phases=skip_phases,
            runner=runner,
            environ=environ,
            aws=aws,
            gate=gate,
        )
        orchestrator.run()
        suite.reports.append(orchestrator.report)

    logger.info(
        f"Suite for stack '{config.name}': {len(suite.passed)} passed, "
        f"{len(suite.failed)} failed, {len(suite.skipped)} skipped"
    )
    return suite


# Registry of available scenarios
_scenarios: dict[str, type[Scenario]] = {}


def register_scenario(cls: type[Scenario]) -> type[Scenario]:
    """Decorator to register a scenario class."""
    _scenarios[cls.name] = cls
    return cls


def get_scenario(name: str) -> Scenario:
    """Get a scenario instance by name."""
    if name not in _scenarios:
        available = list(_scenarios.keys())
        raise ValueError(f"Unknown scenario: {name}. Available: {available}")
    return _scenarios[name]()


def list_scenarios() -> list[str]:
    """List available scenario names."""
    return sorted(_scenarios.keys())


# Import scenarios to trigger registration
from scenarios import static  # noqa: E402, F401
from scenarios import roundtrip  # noqa: E402, F401
