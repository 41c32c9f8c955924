"""
Tests for configuration loading and merging.

Covers:
- YAML config files with ${VAR} substitution
- OSA_* environment variables
- CLI > file > env precedence
- ReportPolicy construction from merged config
"""
import os
import sys
from argparse import Namespace

import pytest
import yaml

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from osaudit.config import (
    ENV_VAR_MAPPING,
    args_to_config,
    generate_sample_config,
    load_config,
    load_config_file,
    load_env_config,
    merge_configs,
    policy_from_config,
)
from osaudit.constants import LICENSE_FALLBACK_GENERIC


def make_args(**overrides):
    """argparse Namespace shaped like the collector's parsed arguments."""
    values = dict(
        config=None,
        cloud=None,
        region=None,
        output=None,
        log_level=None,
        fallback_license=None,
        skip_snapshots=False,
        no_excel=False,
        generate_config=False,
    )
    values.update(overrides)
    return Namespace(**values)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate tests from OSA_* variables and config files in the cwd."""
    for env_var in ENV_VAR_MAPPING.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('HOME', str(tmp_path))


def write_config(path, content):
    path.write_text(content)
    path.chmod(0o600)
    return str(path)


class TestLoadConfigFile:
    """Tests for load_config_file."""

    def test_load_nested(self, tmp_path):
        path = write_config(tmp_path / "cfg.yaml", """
output: ./out
openstack:
  cloud: production
report:
  fallback_license: no-OS
""")

        config = load_config_file(path)

        assert config['output'] == './out'
        assert config['openstack']['cloud'] == 'production'
        assert config['report']['fallback_license'] == 'no-OS'

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv('AUDIT_CLOUD', 'staging')
        path = write_config(tmp_path / "cfg.yaml", """
openstack:
  cloud: ${AUDIT_CLOUD}
  region: ${AUDIT_REGION:-RegionOne}
""")

        config = load_config_file(path)

        assert config['openstack'] == {'cloud': 'staging', 'region': 'RegionOne'}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_file(str(tmp_path / "nope.yaml"))

    def test_invalid_yaml(self, tmp_path):
        path = write_config(tmp_path / "bad.yaml", "report: [unclosed\n")

        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_file(path)

    def test_non_mapping_rejected(self, tmp_path):
        path = write_config(tmp_path / "list.yaml", "- a\n- b\n")

        with pytest.raises(ValueError, match="mapping"):
            load_config_file(path)

    def test_empty_file(self, tmp_path):
        path = write_config(tmp_path / "empty.yaml", "")
        assert load_config_file(path) == {}


class TestEnvConfig:
    """Tests for load_env_config."""

    def test_env_vars(self, monkeypatch):
        monkeypatch.setenv('OSA_CLOUD', 'production')
        monkeypatch.setenv('OSA_FALLBACK_LICENSE', 'no-OS')
        monkeypatch.setenv('OSA_INCLUDE_SNAPSHOTS', 'false')

        config = load_env_config()

        assert config['openstack']['cloud'] == 'production'
        assert config['report']['fallback_license'] == 'no-OS'
        assert config['report']['include_snapshots'] is False

    def test_no_env_vars(self):
        assert load_env_config() == {}


class TestMergeConfigs:
    """Tests for merge_configs."""

    def test_later_wins(self):
        merged = merge_configs(
            {'output': 'a', 'report': {'fallback_license': 'x', 'include_snapshots': True}},
            {'report': {'fallback_license': 'y'}},
        )

        assert merged == {'output': 'a', 'report': {'fallback_license': 'y', 'include_snapshots': True}}

    def test_none_does_not_override(self):
        assert merge_configs({'output': 'a'}, {'output': None}) == {'output': 'a'}


class TestLoadConfig:
    """Tests for load_config precedence."""

    def test_cli_overrides_file(self, tmp_path):
        path = write_config(tmp_path / "cfg.yaml", """
openstack:
  cloud: from-file
  region: RegionTwo
""")
        args = make_args(config=path, cloud='from-cli')

        load_config(args)

        assert args.cloud == 'from-cli'
        assert args.region == 'RegionTwo'

    def test_file_overrides_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv('OSA_OUTPUT', '/env/out')
        path = write_config(tmp_path / "cfg.yaml", "output: /file/out\n")
        args = make_args(config=path)

        load_config(args)

        assert args.output == '/file/out'

    def test_default_config_location(self, tmp_path):
        write_config(tmp_path / "osa-config.yaml", "log_level: DEBUG\n")
        args = make_args()

        load_config(args)

        assert args.log_level == 'DEBUG'

    def test_skip_snapshots_flag(self):
        args = make_args(skip_snapshots=True)

        config = load_config(args)

        assert policy_from_config(config).include_snapshots is False

    def test_file_disables_snapshots(self, tmp_path):
        path = write_config(tmp_path / "cfg.yaml", "report:\n  include_snapshots: false\n")
        args = make_args(config=path)

        config = load_config(args)

        assert args.skip_snapshots is True
        assert policy_from_config(config).include_snapshots is False


class TestArgsToConfig:
    """Tests for args_to_config."""

    def test_only_set_values(self):
        config = args_to_config(make_args(region='RegionOne'))
        assert config == {'openstack': {'region': 'RegionOne'}}

    def test_fallback_license(self):
        config = args_to_config(make_args(fallback_license='no-OS'))
        assert config == {'report': {'fallback_license': 'no-OS'}}


class TestPolicyFromConfig:
    """Tests for policy_from_config."""

    def test_defaults(self):
        policy = policy_from_config({})

        assert policy.fallback_license == LICENSE_FALLBACK_GENERIC
        assert policy.include_snapshots is True

    def test_string_boolean(self):
        policy = policy_from_config({'report': {'include_snapshots': 'no'}})
        assert policy.include_snapshots is False


class TestSampleConfig:
    """Tests for generate_sample_config."""

    def test_sample_is_valid_yaml(self):
        config = yaml.safe_load(generate_sample_config())

        assert config['report']['fallback_license'] == LICENSE_FALLBACK_GENERIC
        assert config['report']['include_snapshots'] is True
