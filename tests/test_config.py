"""Tests for stack configuration loading."""

import os
from pathlib import Path

import pytest

from config import (
    ConfigError,
    StackConfig,
    default_run_id,
    get_stacks_dir,
    list_stacks,
    load_stack_config,
    load_stack_file,
)
from gate import GatePolicy


class TestLoadStackConfig:
    """Test loading stacks from the stacks directory."""

    def test_loads_named_stack(self, stacks_dir, definition_dir):
        config = load_stack_config('pipelines', run_id='r1')
        assert config.name == 'pipelines'
        assert config.tofu_dir == definition_dir
        assert config.binary == 'tofu'
        assert config.vars['deployment_id'] == 'terratest'
        assert config.gate == GatePolicy(env='RUN_INTEGRATION_TESTS')
        assert config.scenarios == ('pipelines-roundtrip',)
        assert config.run_id == 'r1'

    def test_unknown_stack_lists_available(self, stacks_dir):
        with pytest.raises(ConfigError, match='Available: pipelines'):
            load_stack_config('nope')

    def test_list_stacks(self, stacks_dir):
        assert list_stacks() == ['pipelines']

    def test_missing_stacks_env_dir_raises(self, monkeypatch, tmp_path):
        monkeypatch.setenv('STACK_HARNESS_STACKS', str(tmp_path / 'missing'))
        with pytest.raises(ConfigError, match='does not exist'):
            get_stacks_dir()

    def test_list_stacks_empty_when_dir_missing(self, monkeypatch, tmp_path):
        monkeypatch.setenv('STACK_HARNESS_STACKS', str(tmp_path / 'missing'))
        assert list_stacks() == []

    def test_binary_env_override(self, stacks_dir, monkeypatch):
        monkeypatch.setenv('STACK_HARNESS_TOFU_BIN', '/opt/bin/terraform')
        assert load_stack_config('pipelines').binary == '/opt/bin/terraform'


class TestLoadStackFile:
    """Test stack file parsing and errors."""

    def _write(self, tmp_path, text):
        path = tmp_path / 'stack.yaml'
        path.write_text(text)
        return path

    def test_relative_tofu_dir_resolves_from_file(self, tmp_path):
        (tmp_path / 'infra').mkdir()
        path = self._write(tmp_path, "tofu_dir: infra\n")
        config = load_stack_file(path)
        assert config.tofu_dir == (tmp_path / 'infra').resolve()
        assert config.name == 'stack'

    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv('STACK_HARNESS_TOFU_BIN', raising=False)
        config = load_stack_file(self._write(tmp_path, "tofu_dir: /tmp/x\n"))
        assert config.binary == 'terraform'
        assert config.no_color is True
        assert config.vars == {}
        assert config.scenarios == ()
        assert config.timeout_apply is None
        assert config.run_id

    def test_missing_tofu_dir_raises(self, tmp_path):
        with pytest.raises(ConfigError, match="'tofu_dir' is required"):
            load_stack_file(self._write(tmp_path, "vars: {}\n"))

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ConfigError, match='not found'):
            load_stack_file(tmp_path / 'absent.yaml')

    def test_invalid_yaml_raises(self, tmp_path):
        with pytest.raises(ConfigError, match='Invalid YAML'):
            load_stack_file(self._write(tmp_path, "tofu_dir: [unclosed\n"))

    def test_non_mapping_raises(self, tmp_path):
        with pytest.raises(ConfigError, match='expected a mapping'):
            load_stack_file(self._write(tmp_path, "- a\n- b\n"))

    def test_non_scalar_var_raises(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\nvars:\n  tags: {a: b}\n")
        with pytest.raises(ConfigError, match="variable 'tags' must be a scalar"):
            load_stack_file(path)

    def test_mixed_scalar_vars_kept_verbatim(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\nvars:\n  count: 2\n  enabled: true\n  name: n\n")
        assert load_stack_file(path).vars == {'count': 2, 'enabled': True, 'name': 'n'}

    def test_bad_timeout_raises(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\ntimeout_apply: -5\n")
        with pytest.raises(ConfigError, match='timeout_apply'):
            load_stack_file(path)

    def test_scenarios_must_be_list_of_names(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\nscenarios: pipelines-roundtrip\n")
        with pytest.raises(ConfigError, match='scenarios'):
            load_stack_file(path)

    def test_unconditional_skip_gate(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\ngate:\n  skip: retired module\n")
        assert load_stack_file(path).gate.skip == 'retired module'

    def test_non_mapping_gate_raises(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\ngate: RUN_INTEGRATION_TESTS\n")
        with pytest.raises(ConfigError, match="'gate' must be a mapping"):
            load_stack_file(path)

    def test_list_gate_raises(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\ngate:\n  - env\n")
        with pytest.raises(ConfigError, match="'gate' must be a mapping"):
            load_stack_file(path)

    def test_empty_gate_env_uses_default(self, tmp_path):
        path = self._write(tmp_path, "tofu_dir: x\ngate:\n  env:\n")
        assert load_stack_file(path).gate.env == 'RUN_INTEGRATION_TESTS'

    def test_empty_region_is_blank(self, tmp_path, monkeypatch):
        monkeypatch.delenv('AWS_REGION', raising=False)
        monkeypatch.delenv('AWS_DEFAULT_REGION', raising=False)
        config = load_stack_file(self._write(tmp_path, "tofu_dir: x\nregion:\n"))
        assert config.region == ''
        assert config.aws_region == 'us-east-1'

    def test_empty_name_and_binary_use_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv('STACK_HARNESS_TOFU_BIN', raising=False)
        config = load_stack_file(self._write(tmp_path, "tofu_dir: x\nname:\nbinary:\n"))
        assert config.name == 'stack'
        assert config.binary == 'terraform'


class TestStackConfig:
    """Test derived StackConfig properties."""

    def test_state_paths_isolated_per_run(self, tmp_path):
        a = StackConfig(name='s', tofu_dir=tmp_path, run_id='a', state_root=tmp_path)
        b = a.with_run_id('b')
        assert a.state_dir != b.state_dir
        assert a.state_file == tmp_path / 's-a' / 'terraform.tfstate'
        assert a.data_dir == tmp_path / 's-a' / 'data'

    def test_state_root_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv('STACK_HARNESS_STATE_DIR', str(tmp_path / 'st'))
        config = StackConfig(name='s', tofu_dir=tmp_path, run_id='r')
        assert config.state_dir == tmp_path / 'st' / 's-r'

    def test_with_run_id_sanitizes(self, tmp_path):
        config = StackConfig(name='s', tofu_dir=tmp_path).with_run_id('pr/42 build')
        assert config.run_id == 'pr-42-build'

    def test_frozen(self, tmp_path):
        config = StackConfig(name='s', tofu_dir=tmp_path)
        with pytest.raises(AttributeError):
            config.name = 'other'

    def test_aws_region_prefers_vars(self, tmp_path):
        config = StackConfig(name='s', tofu_dir=tmp_path, vars={'aws_region': 'eu-west-1'},
                             region='us-east-1')
        assert config.aws_region == 'eu-west-1'

    def test_aws_region_falls_back_to_region(self, tmp_path):
        config = StackConfig(name='s', tofu_dir=tmp_path, region='us-west-2')
        assert config.aws_region == 'us-west-2'

    def test_default_run_id_from_env(self, monkeypatch):
        monkeypatch.setenv('STACK_HARNESS_RUN_ID', 'ci 17')
        assert default_run_id() == 'ci-17'

    def test_default_run_id_unique_per_process(self, monkeypatch):
        monkeypatch.delenv('STACK_HARNESS_RUN_ID', raising=False)
        assert default_run_id().startswith(f"{os.getpid()}-")


def test_shipped_stack_files_parse(monkeypatch):
    """Stack files in the repository parse cleanly."""
    stacks = Path(__file__).parent.parent / 'stacks'
    monkeypatch.setenv('STACK_HARNESS_STACKS', str(stacks))
    for name in list_stacks():
        config = load_stack_config(name, run_id='check')
        assert config.scenarios
