"""Test reporting and logging."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

PASSED = 'passed'
FAILED = 'failed'
SKIPPED = 'skipped'


@dataclass
class PhaseResult:
    """Result of a test phase."""
    name: str
    description: str
    status: str  # 'passed', 'failed', 'skipped'
    message: str = ''
    duration: float = 0.0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass
class TestReport:
    """Collects and generates test reports for one scenario run."""
    __test__ = False  # not a pytest test class

    stack: str
    report_dir: Path
    scenario: str = ''
    run_id: str = ''
    phases: list[PhaseResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    status: str = FAILED
    skip_reason: str = ''

    _current_phase: Optional[str] = field(default=None, repr=False)
    _phase_start: Optional[datetime] = field(default=None, repr=False)
    _descriptions: dict = field(default_factory=dict, repr=False)

    @property
    def success(self) -> bool:
        """True when the scenario passed. Skipped scenarios are not successes."""
        return self.status == PASSED

    def start(self):
        """Mark test run start."""
        self.started_at = datetime.now()
        self.report_dir.mkdir(parents=True, exist_ok=True)

    def start_phase(self, name: str, description: str):
        """Mark phase start."""
        self._current_phase = name
        self._phase_start = datetime.now()
        self._descriptions[name] = description

    def pass_phase(self, name: str, message: str = '', duration: float = 0.0):
        """Record passed phase."""
        self._record_phase(name, PASSED, message, duration)

    def fail_phase(self, name: str, message: str = '', duration: float = 0.0):
        """Record failed phase."""
        self._record_phase(name, FAILED, message, duration)

    def skip_phase(self, name: str, description: str):
        """Record skipped phase."""
        self.phases.append(PhaseResult(
            name=name,
            description=description,
            status=SKIPPED
        ))

    def _record_phase(self, name: str, status: str, message: str, duration: float):
        """Record phase result."""
        now = datetime.now()
        if duration == 0.0 and self._phase_start:
            duration = (now - self._phase_start).total_seconds()

        self.phases.append(PhaseResult(
            name=name,
            description=self._descriptions.get(name, name),
            status=status,
            message=message,
            duration=duration,
            started_at=self._phase_start,
            finished_at=now
        ))
        self._current_phase = None
        self._phase_start = None

    def failed_phases(self) -> list[PhaseResult]:
        return [p for p in self.phases if p.status == FAILED]

    def skip(self, reason: str):
        """Finalize a scenario that was not executed."""
        self.skip_reason = reason
        self._finalize(SKIPPED)

    def finish(self, success: bool):
        """Finalize report and write files."""
        self._finalize(PASSED if success else FAILED)

    def _finalize(self, status: str):
        if self.started_at is None:
            self.start()
        self.finished_at = datetime.now()
        self.status = status
        self._write_json()
        self._write_markdown()

    def _duration(self) -> float:
        if self.finished_at and self.started_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0

    def _write_json(self):
        """Write JSON report."""
        data = {
            'scenario': self.scenario,
            'stack': self.stack,
            'run_id': self.run_id,
            'status': self.status,
            'skip_reason': self.skip_reason or None,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'finished_at': self.finished_at.isoformat() if self.finished_at else None,
            'duration': self._duration(),
            'phases': [
                {
                    'name': p.name,
                    'description': p.description,
                    'status': p.status,
                    'message': p.message,
                    'duration': p.duration
                }
                for p in self.phases
            ]
        }
        filename = self._report_filename('json')
        with open(filename, 'w', encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _write_markdown(self):
        """Write markdown report."""
        lines = [
            f"# {self.scenario}",
            "",
            f"**Stack**: {self.stack}",
            f"**Run**: {self.run_id}",
            f"**Status**: {self.status.upper()}",
            f"**Date**: {self.started_at.strftime('%Y-%m-%d %H:%M:%S') if self.started_at else 'N/A'}",
            f"**Duration**: {self._duration():.1f}s",
        ]
        if self.skip_reason:
            lines.append(f"**Skipped**: {self.skip_reason}")

        lines.extend([
            "",
            "## Phases",
            "",
            "| Phase | Status | Duration | Message |",
            "|-------|--------|----------|---------|",
        ])

        for p in self.phases:
            status_emoji = {PASSED: '✅', FAILED: '❌', SKIPPED: '⏭️'}.get(p.status, '❓')
            message = p.message.replace('\n', ' ').replace('|', '\\|')
            lines.append(f"| {p.name} | {status_emoji} {p.status} | {p.duration:.1f}s | {message} |")

        lines.extend(["", "---", f"Generated: {datetime.now().isoformat()}"])

        filename = self._report_filename('md')
        with open(filename, 'w', encoding="utf-8") as f:
            f.write('\n'.join(lines))

    def _report_filename(self, ext: str) -> Path:
        """Generate report filename.

        Includes scenario name and run id to avoid collisions when tests run in parallel.
        """
        timestamp = self.started_at.strftime('%Y%m%d-%H%M%S') if self.started_at else 'unknown'
        scenario_slug = self.scenario.replace('/', '-') if self.scenario else 'scenario'
        parts = [timestamp, self.stack, scenario_slug]
        if self.run_id:
            parts.append(self.run_id)
        parts.extend([self.status, ext])
        return self.report_dir / '.'.join(parts)

    def to_dict(self, context: Optional[dict] = None) -> dict:
        """Return report as dictionary for JSON output.

        Args:
            context: Optional context dict to include in output.
                     Only JSON-serializable values are included.
        """
        result = {
            'scenario': self.scenario,
            'stack': self.stack,
            'status': self.status,
            'duration_seconds': round(self._duration(), 1),
            'phases': [
                {
                    'name': p.name,
                    'status': p.status,
                    'duration': round(p.duration, 1),
                }
                for p in self.phases
            ]
        }

        if self.status == SKIPPED:
            result['skip_reason'] = self.skip_reason

        # Include error message on failure
        if self.status == FAILED:
            errors = [p.message for p in self.phases if p.status == FAILED and p.message]
            if errors:
                result['error'] = errors[0]
                result['errors'] = errors

        # Include context if provided
        if context:
            serializable_context = {}
            for key, value in context.items():
                # Skip internal/private keys
                if key.startswith('_'):
                    continue
                try:
                    json.dumps(value)
                    serializable_context[key] = value
                except (TypeError, ValueError):
                    # Skip non-serializable values
                    pass
            if serializable_context:
                result['context'] = serializable_context

        return result
