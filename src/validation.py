"""Validation gate and pre-flight checks.

The validation gate runs the two static checks on a stack's definition root:
format check and semantic validate. Neither touches live infrastructure,
neither depends on the run gate, and both are safe to repeat.

Pre-flight checks catch environment problems (missing tool binary, missing
AWS credentials) before a provisioning scenario spends time on apply.
"""

import logging
import shutil
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from actions.tofu import TofuFormatCheckAction, TofuRunner, TofuValidateAction
from common import ActionResult, run_command
from config import StackConfig

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Validation Gate
# -----------------------------------------------------------------------------

def check_format(stack: StackConfig, runner: Optional[TofuRunner] = None) -> ActionResult:
    """Fail if any file under the definition root would be reformatted."""
    return TofuFormatCheckAction(name='fmt', runner=runner).run(stack, {})


def check_validate(stack: StackConfig, runner: Optional[TofuRunner] = None) -> ActionResult:
    """Fail on any structural or reference error the tool reports."""
    return TofuValidateAction(name='validate', runner=runner).run(stack, {})


def run_validation_gate(stack: StackConfig,
                        runner: Optional[TofuRunner] = None) -> tuple[bool, dict[str, ActionResult]]:
    """Run both static checks independently.

    Returns:
        (all_passed, {'fmt': result, 'validate': result})
    """
    results = {
        'fmt': check_format(stack, runner),
        'validate': check_validate(stack, runner),
    }
    for name, result in results.items():
        if result.success:
            logger.info(f"[{stack.name}] {name}: {result.message}")
        else:
            logger.error(f"[{stack.name}] {name}: {result.message}")
    return all(r.success for r in results.values()), results


def format_gate_results(stack: StackConfig, results: dict[str, ActionResult]) -> str:
    """Format validation gate results for display."""
    lines = [f"\nValidation gate for stack '{stack.name}' ({stack.tofu_dir}):\n"]
    for name, result in results.items():
        mark = '✓' if result.success else '✗'
        message_lines = result.message.split('\n')
        lines.append(f"{mark} {name}: {message_lines[0]}")
        for line in message_lines[1:]:
            lines.append(f"  {line}")
    lines.append("")
    if all(r.success for r in results.values()):
        lines.append("All static checks passed.")
    else:
        lines.append("Static checks failed. No infrastructure was touched.")
    return '\n'.join(lines)


# -----------------------------------------------------------------------------
# Tool Validation
# -----------------------------------------------------------------------------

def validate_tool_installed(binary: str) -> list[str]:
    """Check the provisioning tool is on PATH and runs."""
    if not shutil.which(binary):
        return [
            f"Provisioning tool '{binary}' not found on PATH\n"
            f"  Install it, or set STACK_HARNESS_TOFU_BIN / 'binary' in the stack file"
        ]

    rc, out, err = run_command([binary, 'version'], timeout=30)
    if rc != 0:
        return [f"'{binary} version' failed: {(err or out).strip()[:200]}"]

    logger.info(f"{binary}: {out.splitlines()[0] if out else 'unknown version'}")
    return []


def validate_definition_root(stack: StackConfig) -> list[str]:
    """Check the definition root exists and contains configuration files."""
    if not stack.tofu_dir.is_dir():
        return [
            f"Definition root not found for stack '{stack.name}': {stack.tofu_dir}\n"
            f"  Check 'tofu_dir' in {stack.config_file or 'the stack file'}"
        ]
    if not any(stack.tofu_dir.glob('*.tf')) and not any(stack.tofu_dir.glob('*.tofu')):
        return [f"No .tf files in definition root: {stack.tofu_dir}"]
    return []


# -----------------------------------------------------------------------------
# AWS Credentials Validation
# -----------------------------------------------------------------------------

def validate_aws_credentials(region: str, session: Optional[boto3.session.Session] = None) -> list[str]:
    """Check AWS credentials resolve and are accepted by STS.

    Args:
        region: Region the stack will be applied to
        session: Optional boto3 session (default: new session for region)

    Returns:
        List of validation error messages (empty if valid)
    """
    session = session or boto3.session.Session(region_name=region)
    if session.get_credentials() is None:
        return [
            "No AWS credentials found\n"
            "  Set AWS_PROFILE or AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY"
        ]

    try:
        identity = session.client('sts', region_name=region).get_caller_identity()
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code', 'Unknown')
        return [f"AWS credentials rejected ({code}): {e}"]
    except BotoCoreError as e:
        return [f"Cannot reach AWS STS in {region}: {e}"]

    logger.info(f"AWS identity: {identity.get('Arn', 'unknown')} ({region})")
    return []


# -----------------------------------------------------------------------------
# Combined Validation
# -----------------------------------------------------------------------------

def validate_readiness(stack: StackConfig, scenario_class,
                       session: Optional[boto3.session.Session] = None) -> list[str]:
    """Run all readiness checks for a scenario.

    Args:
        stack: StackConfig instance
        scenario_class: Scenario class; `provisions` enables credential checks
        session: Optional boto3 session for the credential check

    Returns:
        Combined list of all validation errors
    """
    errors = []
    errors.extend(validate_tool_installed(stack.binary))
    errors.extend(validate_definition_root(stack))

    if getattr(scenario_class, 'provisions', False):
        errors.extend(validate_aws_credentials(stack.aws_region, session=session))

    return errors
