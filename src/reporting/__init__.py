"""Test reporting."""

from reporting.report import PhaseResult, TestReport, PASSED, FAILED, SKIPPED

__all__ = ['PhaseResult', 'TestReport', 'PASSED', 'FAILED', 'SKIPPED']
