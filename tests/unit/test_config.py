"""
Unit tests for configuration schema validation and loading
"""

from pathlib import Path

import pytest

from casper_dex.config import QuoterConfig, TokenConfig, load_config, validate_config
from casper_dex.exceptions import ConfigurationError, MalformedIdentifier
from casper_dex.keys import encode_identifier
from tests.fakes import ECTO, STATE_UREF, WCSPR


@pytest.fixture
def valid_config():
    """Minimal valid configuration"""
    return {
        "node_url": "http://localhost:7777",
        "state_uref": STATE_UREF,
        "tokens": {
            "WCSPR": {"package_hash": WCSPR, "decimals": 9},
            "ECTO": {"package_hash": ECTO},
        },
    }


class TestValidateConfig:
    def test_defaults(self, valid_config):
        config = validate_config(valid_config)
        assert isinstance(config, QuoterConfig)
        assert config.max_probe_index == 10
        assert config.fee_bps == 30
        assert config.slippage_bps == 50
        assert config.timeout_policy == "raise"
        assert config.probe_concurrency == 1
        assert config.tokens["ECTO"].decimals == 18

    def test_missing_state_uref(self, valid_config):
        del valid_config["state_uref"]
        with pytest.raises(ConfigurationError):
            validate_config(valid_config)

    @pytest.mark.parametrize(
        "uref",
        ["hash-" + "ab" * 32, "uref-" + "ab" * 32, "uref-" + "ab" * 31 + "-007"],
    )
    def test_bad_state_uref(self, valid_config, uref):
        valid_config["state_uref"] = uref
        with pytest.raises(ConfigurationError, match="state_uref"):
            validate_config(valid_config)

    def test_bad_token_hash(self, valid_config):
        valid_config["tokens"]["BAD"] = {"package_hash": "hash-1234"}
        with pytest.raises(ConfigurationError):
            validate_config(valid_config)

    @pytest.mark.parametrize(
        "field,value",
        [
            ("slippage_bps", 10_000),
            ("fee_bps", -1),
            ("probe_concurrency", 0),
            ("timeout_policy", "ignore"),
            ("rpc_timeout_sec", 0),
        ],
    )
    def test_out_of_range_fields(self, valid_config, field, value):
        valid_config[field] = value
        with pytest.raises(ConfigurationError):
            validate_config(valid_config)

    def test_unknown_field_rejected(self, valid_config):
        valid_config["gas_price"] = 1
        with pytest.raises(ConfigurationError):
            validate_config(valid_config)

    def test_env_overrides(self, valid_config):
        other_uref = "uref-" + "cd" * 32 + "-007"
        config = validate_config(
            valid_config,
            environ={"VITE_NODE_ADDRESS": "http://node.testnet:7777", "STATE_UREF": other_uref},
        )
        assert config.node_url == "http://node.testnet:7777"
        assert config.state_uref == other_uref

    def test_node_address_takes_precedence(self, valid_config):
        config = validate_config(
            valid_config,
            environ={"NODE_ADDRESS": "http://a:7777", "VITE_NODE_ADDRESS": "http://b:7777"},
        )
        assert config.node_url == "http://a:7777"

    def test_env_supplies_missing_values(self):
        config = validate_config(
            {}, environ={"NODE_ADDRESS": "http://a:7777", "STATE_UREF": STATE_UREF}
        )
        assert config.state_uref == STATE_UREF


class TestTokens:
    def test_resolve_symbol(self, valid_config):
        config = validate_config(valid_config)
        assert config.resolve_token("WCSPR") == encode_identifier(WCSPR)
        assert config.resolve_token("ecto") == encode_identifier(ECTO)

    def test_resolve_raw_identifier(self, valid_config):
        config = validate_config(valid_config)
        raw = "hash-" + "11" * 32
        assert config.resolve_token(raw) == encode_identifier(raw)

    def test_resolve_unknown_symbol(self, valid_config):
        config = validate_config(valid_config)
        with pytest.raises(MalformedIdentifier):
            config.resolve_token("DOGE")

    def test_decimals_for(self, valid_config):
        config = validate_config(valid_config)
        assert config.decimals_for(encode_identifier(WCSPR)) == 9
        assert config.decimals_for(encode_identifier(ECTO)) == 18
        assert config.decimals_for(encode_identifier("hash-" + "11" * 32)) == 18

    def test_token_identifier_uses_package_hash(self):
        token = TokenConfig(package_hash=WCSPR, contract_hash="hash-" + "22" * 32)
        assert token.identifier == encode_identifier(WCSPR)


class TestLoadConfig:
    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "node_url: http://localhost:7777\n"
            f"state_uref: {STATE_UREF}\n"
            "probe_concurrency: 4\n"
            "tokens:\n"
            "  WCSPR:\n"
            f"    package_hash: {WCSPR}\n"
        )
        config = load_config(path, environ={})
        assert config.probe_concurrency == 4
        assert "WCSPR" in config.tokens

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(tmp_path / "missing.yaml", environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("node_url: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(path, environ={})

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="dictionary"):
            load_config(path, environ={})

    def test_empty_file_uses_environment(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        config = load_config(
            path, environ={"NODE_ADDRESS": "http://a:7777", "STATE_UREF": STATE_UREF}
        )
        assert config.node_url == "http://a:7777"

    def test_process_environment(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("NODE_ADDRESS", "http://from-env:7777")
        path = tmp_path / "config.yaml"
        path.write_text(f"node_url: http://file:7777\nstate_uref: {STATE_UREF}\n")
        config = load_config(path)
        assert config.node_url == "http://from-env:7777"

    def test_shipped_config(self):
        path = Path(__file__).resolve().parents[2] / "configs" / "casper_dex.yaml"
        config = load_config(path, environ={})
        assert config.resolve_token("WCSPR") == encode_identifier(WCSPR)
        assert config.state_uref == STATE_UREF
