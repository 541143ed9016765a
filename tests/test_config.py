from pathlib import Path

import pytest

from ethstaking.config import (
    StakingSettings,
    Toggle,
    _deep_merge,
    load_config,
    load_settings,
    parse_toggle,
)
from ethstaking.exceptions import ConfigurationError

FLAGS = {
    "selfHostExecutionClient": "no",
    "selfHostConsensusClient": "yes",
    "validatorWithConsensusClient": "no",
}


def _settings(tmp_path: Path, context: dict[str, object], project: str | None = None) -> StakingSettings:
    if project is not None:
        (tmp_path / "ethstaking.toml").write_text(project)
    return load_settings(context, project_dir=tmp_path, global_path=tmp_path / "nonexistent.toml")


class TestDeepMerge:
    def test_shallow_override(self):
        assert _deep_merge({"a": 1, "b": 2}, {"b": 3}) == {"a": 1, "b": 3}

    def test_nested_merge(self):
        base = {"deployment": {"vpcCidr": "10.0.0.0/24", "availabilityZone": "us-west-2b"}}
        override = {"deployment": {"vpcCidr": "10.1.0.0/24"}}
        assert _deep_merge(base, override) == {
            "deployment": {"vpcCidr": "10.1.0.0/24", "availabilityZone": "us-west-2b"}
        }

    def test_does_not_mutate_inputs(self):
        base = {"deployment": {"a": 1}}
        _deep_merge(base, {"deployment": {"b": 2}})
        assert base == {"deployment": {"a": 1}}

    def test_empty_sides(self):
        assert _deep_merge({}, {"a": 1}) == {"a": 1}
        assert _deep_merge({"a": 1}, {}) == {"a": 1}


class TestLoadConfig:
    def test_no_files(self, tmp_path: Path):
        result = load_config(project_dir=tmp_path, global_path=tmp_path / "nonexistent.toml")
        assert result == {"deployment": {}}

    def test_project_overrides_global(self, tmp_path: Path):
        global_toml = tmp_path / "defaults.toml"
        global_toml.write_text('[deployment]\nvpcCidr = "10.0.0.0/24"\nkeyPairName = "laptop"\n')
        project_dir = tmp_path / "project"
        project_dir.mkdir()
        (project_dir / "ethstaking.toml").write_text('[deployment]\nvpcCidr = "10.9.0.0/24"\n')

        result = load_config(project_dir=project_dir, global_path=global_toml)
        assert result["deployment"] == {"vpcCidr": "10.9.0.0/24", "keyPairName": "laptop"}

    def test_invalid_toml(self, tmp_path: Path):
        (tmp_path / "ethstaking.toml").write_text("[deployment\n")
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            load_config(project_dir=tmp_path, global_path=tmp_path / "nonexistent.toml")


class TestParseToggle:
    @pytest.mark.parametrize(("raw", "expected"), [
        ("yes", Toggle.YES),
        ("no", Toggle.NO),
    ])
    def test_accepted_values(self, raw, expected):
        assert parse_toggle("selfHostConsensusClient", raw) is expected

    @pytest.mark.parametrize("raw", ["maybe", "YES", "true", "", 1, 0, True, False])
    def test_rejected_values(self, raw):
        with pytest.raises(ConfigurationError, match="Valid: yes, no"):
            parse_toggle("selfHostConsensusClient", raw)

    def test_missing(self):
        with pytest.raises(ConfigurationError, match="Missing required setting 'selfHostConsensusClient'"):
            parse_toggle("selfHostConsensusClient", None)


class TestLoadSettings:
    def test_context_only(self, tmp_path: Path):
        settings = _settings(tmp_path, FLAGS)
        assert settings.flags.self_host_execution is Toggle.NO
        assert settings.flags.self_host_consensus is Toggle.YES
        assert settings.flags.validator_with_consensus is Toggle.NO

    def test_defaults(self, tmp_path: Path):
        settings = _settings(tmp_path, FLAGS)
        assert settings.availability_zone == "us-west-2b"
        assert settings.vpc_cidr == "192.168.0.0/24"
        assert settings.dashboard_name == "EthStaking"
        assert settings.key_pair_name is None
        assert settings.alarm_email is None

    def test_flags_from_toml(self, tmp_path: Path):
        settings = _settings(tmp_path, {}, project=(
            "[deployment]\n"
            'selfHostExecutionClient = "no"\n'
            'selfHostConsensusClient = "yes"\n'
            'validatorWithConsensusClient = "no"\n'
        ))
        assert settings.flags.self_host_consensus is Toggle.YES
        assert settings.flags.validator_with_consensus is Toggle.NO

    def test_toml_booleans_rejected(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Invalid value True for 'selfHostConsensusClient'"):
            _settings(tmp_path, {}, project=(
                "[deployment]\n"
                'selfHostExecutionClient = "no"\n'
                "selfHostConsensusClient = true\n"
                'validatorWithConsensusClient = "no"\n'
            ))

    def test_context_booleans_rejected(self, tmp_path: Path):
        context = {
            "selfHostExecutionClient": False,
            "selfHostConsensusClient": True,
            "validatorWithConsensusClient": True,
        }
        with pytest.raises(ConfigurationError, match="selfHostExecutionClient"):
            _settings(tmp_path, context)

    def test_context_overrides_toml(self, tmp_path: Path):
        settings = _settings(
            tmp_path,
            {**FLAGS, "keyPairName": "desktop", "availabilityZone": None},
            project='[deployment]\nkeyPairName = "laptop"\navailabilityZone = "eu-west-1a"\n',
        )
        assert settings.key_pair_name == "desktop"
        assert settings.availability_zone == "eu-west-1a"

    def test_missing_flag(self, tmp_path: Path):
        context = {k: v for k, v in FLAGS.items() if k != "validatorWithConsensusClient"}
        with pytest.raises(ConfigurationError, match="validatorWithConsensusClient"):
            _settings(tmp_path, context)

    def test_invalid_flag(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="'maybe'"):
            _settings(tmp_path, {**FLAGS, "selfHostExecutionClient": "maybe"})

    def test_unknown_toml_key(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="Unknown deployment settings: natGateways"):
            _settings(tmp_path, FLAGS, project="[deployment]\nnatGateways = 1\n")

    def test_unrelated_context_keys_ignored(self, tmp_path: Path):
        settings = _settings(tmp_path, {**FLAGS, "@aws-cdk/core:newStyleStackSynthesis": True})
        assert settings.flags.self_host_consensus is Toggle.YES

    def test_cidr_normalized(self, tmp_path: Path):
        settings = _settings(tmp_path, {**FLAGS, "vpcCidr": "10.0.0.0/16"})
        assert settings.vpc_cidr == "10.0.0.0/16"

    @pytest.mark.parametrize("cidr", ["10.0.0.1/16", "not-a-cidr", "fd00::/56"])
    def test_invalid_cidr(self, tmp_path: Path, cidr):
        with pytest.raises(ConfigurationError, match="vpcCidr"):
            _settings(tmp_path, {**FLAGS, "vpcCidr": cidr})

    def test_non_string_setting(self, tmp_path: Path):
        with pytest.raises(ConfigurationError, match="alarmEmail"):
            _settings(tmp_path, {**FLAGS, "alarmEmail": 42})

    def test_empty_string_means_unset(self, tmp_path: Path):
        settings = _settings(tmp_path, {**FLAGS, "alarmEmail": ""})
        assert settings.alarm_email is None
