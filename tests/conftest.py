"""Shared pytest fixtures for stack-harness tests."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))


def _has_infrastructure(environ=None):
    """Check if live lifecycle tests are opted into and can reach AWS.

    Opt-in follows the same run gate the harness applies to scenarios.
    """
    from gate import GatePolicy, evaluate_gate

    if not evaluate_gate(GatePolicy(), environ).is_open:
        return False
    try:
        import boto3
        return boto3.session.Session().get_credentials() is not None
    except Exception:
        return False


def pytest_collection_modifyitems(config, items):
    """Skip tests marked with requires_infrastructure when infra not available."""
    if _has_infrastructure():
        return
    skip_marker = pytest.mark.skip(
        reason="requires infrastructure (RUN_INTEGRATION_TESTS=true and AWS credentials)"
    )
    for item in items:
        if "requires_infrastructure" in item.keywords:
            item.add_marker(skip_marker)


class FakeTofuRunner:
    """Provisioning backend double that records every call.

    Args:
        outputs: Values returned by output(name)
        fail: verb -> (rc, stdout, stderr) for calls that should fail
        write_state: apply creates the state file, as the real tool does
            even when apply fails partway
    """

    def __init__(self, outputs=None, fail=None, write_state=True):
        self.outputs = dict(outputs or {})
        self.fail = dict(fail or {})
        self.write_state = write_state
        self.calls = []

    def count(self, verb):
        return sum(1 for c in self.calls if c == verb)

    def _call(self, verb):
        self.calls.append(verb)
        return self.fail.get(verb, (0, '', ''))

    def fmt_check(self, stack):
        return self._call('fmt')

    def validate(self, stack):
        return self._call('validate')

    def init(self, stack):
        return self._call('init')

    def apply(self, stack):
        if self.write_state:
            stack.state_file.parent.mkdir(parents=True, exist_ok=True)
            stack.state_file.write_text('{"version": 4}')
        return self._call('apply')

    def destroy(self, stack):
        return self._call('destroy')

    def output(self, stack, name):
        self.calls.append(f'output:{name}')
        if name in self.outputs:
            return (0, self.outputs[name], '')
        return (1, '', f'Error: Output "{name}" not found')


@pytest.fixture
def fake_runner():
    """FakeTofuRunner with the pipeline stack's outputs."""
    return FakeTofuRunner(outputs={
        's3_bucket_name': 'b1',
        'cloudfront_distribution_id': 'E2ABCDEF123456',
        'cloudfront_domain_name': 'd123.cloudfront.net',
        'api_gateway_url': 'https://abc123.execute-api.us-east-1.amazonaws.com/prod',
        'dynamodb_table_name': 'terraform-lock-x',
        'contact_submissions_table_name': 'contact-submissions',
    })


@pytest.fixture
def fake_runner_cls():
    """The FakeTofuRunner class, for tests that need custom failures."""
    return FakeTofuRunner


@pytest.fixture
def definition_dir(tmp_path):
    """Minimal definition root with one .tf file."""
    tofu_dir = tmp_path / 'terraform'
    tofu_dir.mkdir()
    (tofu_dir / 'main.tf').write_text('output "s3_bucket_name" {\n  value = "b1"\n}\n')
    return tofu_dir


@pytest.fixture
def stack(tmp_path, definition_dir):
    """StackConfig with state isolated under tmp_path."""
    from config import StackConfig
    from gate import GatePolicy
    return StackConfig(
        name='pipelines',
        tofu_dir=definition_dir,
        vars={
            'aws_region': 'us-east-1',
            'project_name': 'test-pipelines',
            'environment': 'test',
            'deployment_id': 'terratest',
        },
        gate=GatePolicy(env='RUN_INTEGRATION_TESTS'),
        scenarios=('pipelines-roundtrip',),
        run_id='test-run',
        state_root=tmp_path / '.states',
    )


@pytest.fixture
def stacks_dir(tmp_path, definition_dir, monkeypatch):
    """Stacks directory with one stack file, exported via STACK_HARNESS_STACKS."""
    stacks = tmp_path / 'stacks'
    stacks.mkdir()
    (stacks / 'pipelines.yaml').write_text(f"""
tofu_dir: {definition_dir}
binary: tofu
region: us-east-1
vars:
  aws_region: us-east-1
  project_name: test-pipelines
  environment: test
  deployment_id: terratest
gate:
  env: RUN_INTEGRATION_TESTS
scenarios:
  - pipelines-roundtrip
""")
    monkeypatch.setenv('STACK_HARNESS_STACKS', str(stacks))
    monkeypatch.setenv('STACK_HARNESS_STATE_DIR', str(tmp_path / '.states'))
    monkeypatch.delenv('STACK_HARNESS_TOFU_BIN', raising=False)
    return stacks


@pytest.fixture
def present_aws():
    """AwsResourceClient double where every resource exists."""
    from unittest.mock import MagicMock
    from actions.aws import AwsResourceClient
    aws = MagicMock(spec=AwsResourceClient)
    aws.region = 'us-east-1'
    aws.require_exists.return_value = None
    return aws
