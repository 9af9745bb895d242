#!/usr/bin/env python3
"""CLI entry point for stack-harness.

Commands:
- test: Run the full suite for a stack (static checks, then gated roundtrips)
- validate: Run the validation gate only (fmt -check, validate)
- scenario: Run a single scenario (scenario run <name> -k <stack>, scenario --list-scenarios)
- list: List stacks and scenarios

Examples:
    ./run.sh validate -k pipelines
    RUN_INTEGRATION_TESTS=true ./run.sh test -k pipelines
    ./run.sh scenario run contact-table-roundtrip -k contact-lambda --dry-run
"""

import argparse
import json
import logging
import signal
import subprocess
import sys
from pathlib import Path

from config import ConfigError, get_base_dir, list_stacks, load_stack_config, load_stack_file
from gate import evaluate_gate
from scenarios import Orchestrator, get_scenario, list_scenarios, run_suite, suite_scenarios
from validation import format_gate_results, run_validation_gate, validate_readiness

COMMANDS = {
    "test": "Run static checks and gated roundtrip scenarios for a stack",
    "validate": "Run the validation gate only (no infrastructure touched)",
    "scenario": "Run a single scenario (run <name>)",
    "list": "List available stacks and scenarios",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def get_version():
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'


def _handle_sigterm(signum, frame):
    """Turn SIGTERM into KeyboardInterrupt so pending destroys still run."""
    logger.warning("Received SIGTERM, stopping (registered destroy will still run)")
    raise KeyboardInterrupt


def _add_common_args(parser: argparse.ArgumentParser):
    """Add arguments shared by every command that targets a stack."""
    parser.add_argument(
        '--stack', '-k',
        help='Stack name from the stacks directory'
    )
    parser.add_argument(
        '--stack-file',
        type=Path,
        help='Path to a stack YAML file (instead of --stack)'
    )
    parser.add_argument(
        '--run-id',
        help='Run id for state isolation (default: $STACK_HARNESS_RUN_ID or <pid>-<timestamp>)'
    )
    parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        default=get_base_dir() / 'reports',
        help='Directory for test reports'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )


def _add_run_args(parser: argparse.ArgumentParser):
    """Add arguments for commands that execute scenarios."""
    parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Phases to skip (can be repeated)'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    parser.add_argument(
        '--skip-preflight',
        action='store_true',
        help='Skip preflight checks before scenario execution'
    )


def _configure_logging(args):
    """Apply --verbose and --json-output to the root logger."""
    if args.json_output:
        # Remove existing handlers and redirect to stderr
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        root_logger.addHandler(stderr_handler)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _load_stack(args):
    """Resolve StackConfig from --stack or --stack-file.

    Returns:
        (config, exit_code): StackConfig on success (exit_code=None),
        or (None, exit_code) on error.
    """
    if not args.stack and not args.stack_file:
        available = list_stacks()
        print("Error: --stack or --stack-file is required")
        print(f"Available stacks: {', '.join(available) if available else 'none configured'}")
        return (None, 1)

    try:
        if args.stack_file:
            config = load_stack_file(args.stack_file, run_id=args.run_id)
        else:
            config = load_stack_config(args.stack, run_id=args.run_id)
    except ConfigError as e:
        print(f"Error: {e}")
        return (None, 1)

    logger.debug(f"Loaded stack '{config.name}' (run {config.run_id}, dir {config.tofu_dir})")
    return (config, None)


def _preflight(config, names: list[str], gate) -> int | None:
    """Check readiness for the scenarios that will actually execute.

    Provisioning scenarios behind a closed gate are left out, so a skipped
    roundtrip never fails on missing credentials. gate is the GateDecision
    the run itself will use.
    """
    errors: list[str] = []
    for name in names:
        scenario = get_scenario(name)
        if getattr(scenario, 'provisions', False) and not gate.is_open:
            continue
        for error in validate_readiness(config, type(scenario)):
            if error not in errors:
                errors.append(error)

    if errors:
        print("\nPre-flight validation failed:")
        for error in errors:
            # Indent multi-line errors
            for i, line in enumerate(error.split('\n')):
                prefix = "  ✗ " if i == 0 else "    "
                print(f"{prefix}{line}")
        print("\nUse --skip-preflight to bypass these checks")
        print()
        return 1

    logger.info("Pre-flight validation passed")
    return None


def _handle_test(argv: list) -> int:
    parser = argparse.ArgumentParser(
        prog='run.sh test',
        description='Run static checks, then gated roundtrip scenarios, for one stack'
    )
    _add_common_args(parser)
    _add_run_args(parser)
    parser.add_argument(
        '--scenario', '-S',
        action='append',
        help='Roundtrip scenario to run instead of the stack file list (can be repeated)'
    )
    args = parser.parse_args(argv)
    _configure_logging(args)

    config, exit_code = _load_stack(args)
    if exit_code is not None:
        return exit_code

    names = suite_scenarios(config, args.scenario)
    unknown = [n for n in names if n not in list_scenarios()]
    if unknown:
        print(f"Error: Unknown scenario(s): {', '.join(unknown)}")
        print(f"Available scenarios: {', '.join(list_scenarios())}")
        return 1

    gate = evaluate_gate(config.gate)

    if args.dry_run:
        for name in names:
            Orchestrator(get_scenario(name), config, args.report_dir,
                         skip_phases=args.skip, dry_run=True, gate=gate).run()
        return 0

    if not args.skip_preflight:
        exit_code = _preflight(config, names, gate)
        if exit_code is not None:
            return exit_code

    suite = run_suite(config, args.report_dir, names=names, skip_phases=args.skip, gate=gate)

    if args.json_output:
        print(json.dumps(suite.to_dict(), indent=2))
    else:
        print(f"\nStack '{config.name}' (run {config.run_id}):")
        for report in suite.reports:
            line = f"  {report.status.upper():8} {report.scenario}"
            if report.skip_reason:
                line += f" ({report.skip_reason})"
            print(line)
            for phase in report.failed_phases():
                print(f"           ✗ {phase.name}: {phase.message.splitlines()[0] if phase.message else ''}")
        print(f"\n{len(suite.passed)} passed, {len(suite.failed)} failed, {len(suite.skipped)} skipped")

    return suite.exit_code


def _handle_validate(argv: list) -> int:
    parser = argparse.ArgumentParser(
        prog='run.sh validate',
        description='Run fmt -check and validate against a stack definition (no infrastructure touched)'
    )
    _add_common_args(parser)
    args = parser.parse_args(argv)
    _configure_logging(args)

    config, exit_code = _load_stack(args)
    if exit_code is not None:
        return exit_code

    success, results = run_validation_gate(config)
    if args.json_output:
        print(json.dumps({
            'stack': config.name,
            'success': success,
            'checks': {name: {'success': r.success, 'message': r.message} for name, r in results.items()},
        }, indent=2))
    else:
        print(format_gate_results(config, results))
    return 0 if success else 1


def _handle_scenario(argv: list) -> int:
    if argv and argv[0] == '--list-scenarios':
        _print_scenarios()
        return 0

    if not argv or argv[0] in ('-h', '--help') or argv[0] != 'run':
        print("Usage: ./run.sh scenario run <name> -k <stack> [options]")
        print()
        print("Available scenarios:")
        _print_scenarios()
        return 0 if not argv or argv[0] in ('-h', '--help') else 1

    parser = argparse.ArgumentParser(
        prog='run.sh scenario run',
        description='Run a single scenario against a stack'
    )
    parser.add_argument('name', choices=list_scenarios(), help='Scenario name')
    _add_common_args(parser)
    _add_run_args(parser)
    parser.add_argument(
        '--list-phases',
        action='store_true',
        help='List phases for the selected scenario and exit'
    )
    args = parser.parse_args(argv[1:])
    _configure_logging(args)

    scenario = get_scenario(args.name)

    config, exit_code = _load_stack(args)
    if exit_code is not None:
        return exit_code

    if args.list_phases:
        print(f"Phases for scenario '{args.name}':")
        if getattr(scenario, 'provisions', False):
            print("  init: provisioning tool init")
            print("  apply: provisioning tool apply")
        for name, _action, desc in scenario.get_phases(config):
            print(f"  {name}: {desc}")
        if getattr(scenario, 'provisions', False):
            print("  destroy: provisioning tool destroy (always runs)")
        return 0

    gate = evaluate_gate(config.gate)

    if not args.skip_preflight and not args.dry_run:
        exit_code = _preflight(config, [args.name], gate)
        if exit_code is not None:
            return exit_code

    orchestrator = Orchestrator(
        scenario=scenario,
        config=config,
        report_dir=args.report_dir,
        skip_phases=args.skip,
        dry_run=args.dry_run,
        gate=gate,
    )
    success = orchestrator.run()

    if args.json_output and not args.dry_run:
        print(json.dumps(orchestrator.report.to_dict(orchestrator.context), indent=2))

    return 0 if success else 1


def _print_scenarios():
    for name in list_scenarios():
        scenario = get_scenario(name)
        runtime = getattr(scenario, 'expected_runtime', None)
        gated = ' [gated]' if getattr(scenario, 'provisions', False) else ''
        if runtime:
            # Format runtime nicely (e.g., 30 -> "~30s", 540 -> "~9m")
            runtime_str = f"~{runtime // 60}m" if runtime >= 60 else f"~{runtime}s"
            print(f"  {name:28} {runtime_str:>6}  {scenario.description}{gated}")
        else:
            print(f"  {name:28}         {scenario.description}{gated}")


def _handle_list(argv: list) -> int:
    stacks = list_stacks()
    print("Available stacks:")
    for name in stacks:
        print(f"  {name}")
    if not stacks:
        print("  (none configured)")
    print()
    print("Available scenarios:")
    _print_scenarios()
    return 0


def print_usage():
    """Print top-level usage."""
    print(f"stack-harness {get_version()}")
    print()
    print("Usage: ./run.sh <command> [options]")
    print()
    print("Commands:")
    for name, desc in COMMANDS.items():
        print(f"  {name:<10} {desc}")
    print()
    print("Run './run.sh <command> --help' for command-specific options.")


def main(argv=None):
    """CLI entry point. Dispatches to command handlers.

    Returns:
        Exit code: 0 when every executed scenario passed (skips never count
        as failures), 1 otherwise, 130 when interrupted.
    """
    if argv is None:
        argv = sys.argv[1:]

    handlers = {
        "test": _handle_test,
        "validate": _handle_validate,
        "scenario": _handle_scenario,
        "list": _handle_list,
    }

    if not argv or argv[0] in ('-h', '--help'):
        print_usage()
        return 0

    if argv[0] == '--version':
        print(f"stack-harness {get_version()}")
        return 0

    command = argv[0]
    if command not in handlers:
        print(f"Error: Unknown command '{command}'")
        print_usage()
        return 1

    signal.signal(signal.SIGTERM, _handle_sigterm)
    try:
        return handlers[command](argv[1:])
    except KeyboardInterrupt:
        logger.error("Interrupted")
        return 130


if __name__ == '__main__':
    sys.exit(main())
