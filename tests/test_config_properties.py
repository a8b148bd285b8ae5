"""
Property-based tests for configuration module.

Uses Hypothesis for property-based testing of JSON round-trips, file
loading and environment overrides.
"""

import json
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_watcher.config import (
    BatchConfig,
    LoggingConfig,
    LookupConfig,
    RetryConfig,
    StoreConfig,
    SystemConfig,
    VerificationConfig,
    config_from_dict,
    config_to_dict,
    create_default_config,
    load_config_from_env,
    load_config_from_file,
    save_config_to_file,
)

from doubles import CONFIG_ENV_VARS


# Strategies for generating valid configuration objects

@st.composite
def batch_config_strategy(draw) -> BatchConfig:
    return BatchConfig(
        batch_size=draw(st.integers(min_value=1, max_value=50)),
        delay_seconds=draw(st.floats(min_value=0.0, max_value=10.0)),
    )


@st.composite
def system_config_strategy(draw) -> SystemConfig:
    """Generate valid SystemConfig objects."""
    return SystemConfig(
        verification=VerificationConfig(
            routine=draw(batch_config_strategy()),
            expired=draw(batch_config_strategy()),
            manual_limit=draw(st.integers(min_value=1, max_value=500)),
            expiring_window_days=draw(st.integers(min_value=1, max_value=365)),
        ),
        lookup=LookupConfig(
            api_key=draw(st.one_of(st.none(), st.text(min_size=1, max_size=40))),
            base_url=draw(st.sampled_from(["https://whoisjson.com/api/v1", "http://localhost:8080/api"])),
            timeout_seconds=draw(st.floats(min_value=0.5, max_value=120.0)),
        ),
        retry=RetryConfig(
            max_retries=draw(st.integers(min_value=0, max_value=10)),
            base_delay_seconds=draw(st.floats(min_value=0.1, max_value=10.0)),
            max_delay_seconds=draw(st.floats(min_value=10.0, max_value=300.0)),
            retryable_errors=draw(st.lists(
                st.sampled_from(["network_error", "rate_limited", "server_error"]),
                max_size=3,
                unique=True,
            )),
        ),
        store=StoreConfig(database_path=Path(draw(st.sampled_from(["watchlist.db", "/var/lib/dw/w.db"])))),
        logging=LoggingConfig(
            level=draw(st.sampled_from(["debug", "info", "warn", "error"])),
            output_format=draw(st.sampled_from(["json", "text", "both"])),
        ),
        timezone=draw(st.sampled_from(["UTC", "Europe/Berlin", "America/New_York"])),
        demo_mode=draw(st.booleans()),
        simulation_mode=draw(st.booleans()),
    )


class TestConfigurationRoundTripProperty:
    """
    Property: configuration round-trips through JSON without data loss.
    """

    @given(config=system_config_strategy())
    @settings(max_examples=100)
    def test_config_round_trip_preserves_data(self, config: SystemConfig) -> None:
        serialized = json.dumps(config_to_dict(config), sort_keys=True)

        assert config_from_dict(json.loads(serialized)) == config

    @given(config=system_config_strategy())
    @settings(max_examples=50)
    def test_config_serialization_produces_valid_json(self, config: SystemConfig) -> None:
        parsed = json.loads(json.dumps(config_to_dict(config)))

        expected_keys = {
            "verification", "lookup", "retry", "store", "logging",
            "timezone", "demo_mode", "simulation_mode",
        }
        assert expected_keys == set(parsed.keys())

    def test_missing_sections_use_defaults(self) -> None:
        config = config_from_dict({"timezone": "Europe/Berlin"})

        assert config.timezone == "Europe/Berlin"
        assert config.verification == VerificationConfig()
        assert config.retry == RetryConfig()
        assert config.lookup.api_key is None

    def test_wrong_shape_raises(self) -> None:
        with pytest.raises(ValueError):
            config_from_dict({"verification": {"manual_limit": "many"}})


class TestConfigFiles:
    def test_save_then_load(self, tmp_path) -> None:
        path = tmp_path / "nested" / "config.json"
        config = create_default_config(simulation_mode=True, database_path=tmp_path / "w.db")

        assert save_config_to_file(config, path)
        assert load_config_from_file(path) == config

    def test_missing_file_gives_none(self, tmp_path) -> None:
        assert load_config_from_file(tmp_path / "absent.json") is None

    def test_invalid_json_gives_none(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json", encoding="utf-8")

        assert load_config_from_file(path) is None


class TestEnvironmentOverrides:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in CONFIG_ENV_VARS:
            monkeypatch.delenv(name, raising=False)

    def test_defaults_without_environment(self, tmp_path) -> None:
        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")

        assert config == create_default_config()

    def test_environment_values_are_applied(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("ENVIRONMENT", "demo")
        monkeypatch.setenv("SIMULATION_MODE", "1")
        monkeypatch.setenv("WHOIS_API_KEY", "  key-123 ")
        monkeypatch.setenv("BATCH_SIZE", "8")
        monkeypatch.setenv("BATCH_DELAY_SECONDS", "0.5")
        monkeypatch.setenv("MANUAL_CHECK_LIMIT", "50")
        monkeypatch.setenv("TIMEZONE", "Europe/Berlin")
        monkeypatch.setenv("DOMAIN_WATCHER_DB", str(tmp_path / "env.db"))
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")

        assert config.demo_mode and config.simulation_mode
        assert config.lookup.api_key == "key-123"
        assert config.verification.routine == BatchConfig(batch_size=8, delay_seconds=0.5)
        assert config.verification.expired == BatchConfig(batch_size=8, delay_seconds=0.5)
        assert config.verification.manual_limit == 50
        assert config.timezone == "Europe/Berlin"
        assert config.store.database_path == tmp_path / "env.db"
        assert config.logging.level == "debug"

    def test_invalid_numbers_fall_back(self, monkeypatch, tmp_path) -> None:
        monkeypatch.setenv("BATCH_SIZE", "lots")
        monkeypatch.setenv("BATCH_DELAY_SECONDS", "soon")

        config = load_config_from_env(dotenv_path=tmp_path / "missing.env")

        assert config.verification.routine == BatchConfig()

    def test_environment_overlays_base(self, monkeypatch, tmp_path) -> None:
        base = create_default_config()
        base.lookup.api_key = "from-file"
        base.verification.manual_limit = 7
        monkeypatch.setenv("WHOIS_API_KEY", "from-env")

        config = load_config_from_env(base=base, dotenv_path=tmp_path / "missing.env")

        assert config.lookup.api_key == "from-env"
        assert config.verification.manual_limit == 7

    def test_unset_batch_variables_keep_each_sweep(self, tmp_path) -> None:
        base = create_default_config()
        base.verification.routine = BatchConfig(batch_size=5, delay_seconds=0.1)
        base.verification.expired = BatchConfig(batch_size=1, delay_seconds=2.0)

        config = load_config_from_env(base=base, dotenv_path=tmp_path / "missing.env")

        assert config.verification.routine == BatchConfig(batch_size=5, delay_seconds=0.1)
        assert config.verification.expired == BatchConfig(batch_size=1, delay_seconds=2.0)

    def test_one_batch_variable_leaves_the_other_field(self, monkeypatch, tmp_path) -> None:
        base = create_default_config()
        base.verification.routine = BatchConfig(batch_size=5, delay_seconds=0.1)
        base.verification.expired = BatchConfig(batch_size=1, delay_seconds=2.0)
        monkeypatch.setenv("BATCH_SIZE", "9")

        config = load_config_from_env(base=base, dotenv_path=tmp_path / "missing.env")

        assert config.verification.routine == BatchConfig(batch_size=9, delay_seconds=0.1)
        assert config.verification.expired == BatchConfig(batch_size=9, delay_seconds=2.0)

    def test_dotenv_file_is_read(self, monkeypatch, tmp_path) -> None:
        dotenv = tmp_path / ".env"
        dotenv.write_text("WHOIS_API_KEY=dotenv-key\nENVIRONMENT=production\n", encoding="utf-8")
        # load_dotenv writes into os.environ; register the keys so they are restored.
        monkeypatch.setenv("WHOIS_API_KEY", "")
        monkeypatch.delenv("WHOIS_API_KEY")
        monkeypatch.setenv("ENVIRONMENT", "")
        monkeypatch.delenv("ENVIRONMENT")

        config = load_config_from_env(dotenv_path=dotenv)

        assert config.lookup.api_key == "dotenv-key"
        assert not config.demo_mode
