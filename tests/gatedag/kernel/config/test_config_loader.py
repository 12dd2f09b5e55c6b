"""Tests for the TOML configuration loader."""

from __future__ import annotations

import textwrap

import pytest

from gatedag.kernel.config import (
    ConfigLoader,
    EnvironmentConfig,
    SchedulerConfig,
    get_default_config,
    load_config,
)
from gatedag.kernel.exceptions import ConfigurationError, ValidationError

GATEDAG_ENV_VARS = (
    "GATEDAG_CONFIG_PATH",
    "GATEDAG_LOG_LEVEL",
    "GATEDAG_LOG_FORMAT",
    "GATEDAG_LOG_FILE",
    "GATEDAG_LOG_COLOR",
    "GATEDAG_MAX_CONCURRENT_STAGES",
    "GATEDAG_TAG_DB",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in GATEDAG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def write_toml(path, content: str):
    path.write_text(textwrap.dedent(content))
    return path


class TestLoadFromToml:
    """Tests for ConfigLoader.load_from_toml."""

    def test_standalone_file(self, tmp_path) -> None:
        """Test a gatedag.toml with every section."""
        path = write_toml(
            tmp_path / "gatedag.toml",
            """
            default_environment = "staging"

            [logging]
            level = "DEBUG"
            format = "json"

            [scheduler]
            max_concurrent_stages = 2
            default_stage_timeout = 900

            [tag_store]
            path = "state/tags.db"

            [environments.staging]
            registry = "ghcr.io/acme/"
            image = "app"
            namespace = "apps"

            [environments.staging.severity_thresholds]
            scan = "CRITICAL,HIGH"
            """,
        )

        config = ConfigLoader().load_from_toml(path)

        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"
        assert config.scheduler == SchedulerConfig(2, 900)
        assert config.tag_store.path == "state/tags.db"
        staging = config.environment()
        assert staging.name == "staging"
        assert staging.image_repository == "ghcr.io/acme/app"
        assert staging.release_name == "app"
        assert staging.severity_thresholds == {"scan": "CRITICAL,HIGH"}

    def test_pyproject_tool_table(self, tmp_path) -> None:
        """Test that only the [tool.gatedag] table is read from pyproject.toml."""
        path = write_toml(
            tmp_path / "pyproject.toml",
            """
            [project]
            name = "app"

            [tool.gatedag.scheduler]
            max_concurrent_stages = 8
            """,
        )

        config = ConfigLoader().load_from_toml(path)

        assert config.scheduler.max_concurrent_stages == 8
        assert config.environments == {}

    def test_pyproject_without_tool_table_uses_defaults(self, tmp_path) -> None:
        """Test a pyproject.toml that has no gatedag section."""
        path = write_toml(tmp_path / "pyproject.toml", '[project]\nname = "app"\n')

        config = ConfigLoader().load_from_toml(path)

        assert config.scheduler == SchedulerConfig()

    def test_environment_variable_substitution(self, tmp_path, monkeypatch) -> None:
        """Test ${VAR} placeholders, including unset ones."""
        monkeypatch.setenv("TEST_REGISTRY", "registry.example.com")
        monkeypatch.delenv("TEST_UNSET_CLUSTER", raising=False)
        path = write_toml(
            tmp_path / "gatedag.toml",
            """
            [environments.prod]
            registry = "${TEST_REGISTRY}"
            image = "app"
            cluster = "${TEST_UNSET_CLUSTER}"
            """,
        )

        prod = ConfigLoader().load_from_toml(path).environment("prod")

        assert prod.registry == "registry.example.com"
        assert prod.cluster == "${TEST_UNSET_CLUSTER}"

    def test_environment_overrides(self, tmp_path, monkeypatch) -> None:
        """Test that GATEDAG_* variables win over the file."""
        monkeypatch.setenv("GATEDAG_LOG_LEVEL", "warning")
        monkeypatch.setenv("GATEDAG_LOG_COLOR", "off")
        monkeypatch.setenv("GATEDAG_MAX_CONCURRENT_STAGES", "6")
        monkeypatch.setenv("GATEDAG_TAG_DB", "/var/lib/gatedag/tags.db")
        path = write_toml(
            tmp_path / "gatedag.toml",
            """
            [logging]
            level = "DEBUG"

            [scheduler]
            max_concurrent_stages = 2
            """,
        )

        config = ConfigLoader().load_from_toml(path)

        assert config.logging.level == "WARNING"
        assert config.logging.use_color is False
        assert config.scheduler.max_concurrent_stages == 6
        assert config.tag_store.path == "/var/lib/gatedag/tags.db"

    def test_invalid_bool_override_is_ignored(self, tmp_path, monkeypatch) -> None:
        """Test that an unparseable GATEDAG_LOG_COLOR keeps the file value."""
        monkeypatch.setenv("GATEDAG_LOG_COLOR", "sometimes")
        path = write_toml(tmp_path / "gatedag.toml", "[logging]\nuse_color = false\n")

        assert ConfigLoader().load_from_toml(path).logging.use_color is False


class TestInvalidConfiguration:
    """Tests for configuration errors."""

    def test_invalid_toml(self, tmp_path) -> None:
        """Test that a syntax error is reported with the file name."""
        path = write_toml(tmp_path / "gatedag.toml", "[logging\nlevel = 1\n")

        with pytest.raises(ConfigurationError, match="invalid TOML"):
            ConfigLoader().load_from_toml(path)

    def test_default_environment_must_exist(self, tmp_path) -> None:
        """Test a default_environment without a matching table."""
        path = write_toml(
            tmp_path / "gatedag.toml",
            'default_environment = "prod"\n\n[environments.staging]\nimage = "app"\n',
        )

        with pytest.raises(ConfigurationError, match="default_environment"):
            ConfigLoader().load_from_toml(path)

    def test_unknown_severity_threshold(self, tmp_path) -> None:
        """Test a threshold naming a severity that does not exist."""
        path = write_toml(
            tmp_path / "gatedag.toml",
            """
            [environments.staging.severity_thresholds]
            scan = "CRITICAL,SEVERE"
            """,
        )

        with pytest.raises(ConfigurationError, match="severity_thresholds.scan"):
            ConfigLoader().load_from_toml(path)

    def test_unknown_environment_key(self, tmp_path) -> None:
        """Test a misspelled environment field."""
        path = write_toml(tmp_path / "gatedag.toml", '[environments.staging]\nimgae = "app"\n')

        with pytest.raises(ConfigurationError, match="imgae"):
            ConfigLoader().load_from_toml(path)

    def test_invalid_scheduler_values(self, tmp_path) -> None:
        """Test scheduler bounds."""
        path = write_toml(tmp_path / "gatedag.toml", "[scheduler]\nmax_concurrent_stages = 0\n")

        with pytest.raises(ConfigurationError, match="max_concurrent_stages"):
            ConfigLoader().load_from_toml(path)

    def test_non_integer_concurrency_override(self, tmp_path, monkeypatch) -> None:
        """Test that a malformed GATEDAG_MAX_CONCURRENT_STAGES is a configuration error."""
        monkeypatch.setenv("GATEDAG_MAX_CONCURRENT_STAGES", "many")
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError, match="GATEDAG_MAX_CONCURRENT_STAGES"):
            get_default_config()
        with pytest.raises(ConfigurationError, match="expected an integer"):
            load_config()


class TestLoadConfig:
    """Tests for load_config and defaults."""

    def test_missing_explicit_path(self, tmp_path) -> None:
        """Test that an explicit path must exist."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.toml")

    def test_no_file_found_returns_defaults(self, tmp_path, monkeypatch) -> None:
        """Test the search falling back to defaults."""
        monkeypatch.chdir(tmp_path)

        config = load_config()

        assert config.tag_store.path == ".gatedag/tags.db"
        assert config.environment() is None

    def test_search_finds_local_file(self, tmp_path, monkeypatch) -> None:
        """Test that gatedag.toml in the working directory is picked up."""
        write_toml(tmp_path / "gatedag.toml", "[scheduler]\nmax_concurrent_stages = 3\n")
        monkeypatch.chdir(tmp_path)

        assert load_config().scheduler.max_concurrent_stages == 3

    def test_config_path_variable(self, tmp_path, monkeypatch) -> None:
        """Test GATEDAG_CONFIG_PATH."""
        path = write_toml(tmp_path / "ci.toml", "[scheduler]\nmax_concurrent_stages = 5\n")
        monkeypatch.setenv("GATEDAG_CONFIG_PATH", str(path))
        monkeypatch.chdir(tmp_path)

        assert load_config().scheduler.max_concurrent_stages == 5

    def test_defaults(self) -> None:
        """Test default values."""
        config = get_default_config()

        assert config.logging.level == "INFO"
        assert config.logging.format == "structured"
        assert config.scheduler.max_concurrent_stages == 4
        assert config.scheduler.default_stage_timeout is None


class TestEnvironmentConfig:
    """Tests for EnvironmentConfig."""

    def test_unknown_environment_lookup(self) -> None:
        """Test that naming an unconfigured environment is an error."""
        config = get_default_config()

        with pytest.raises(ValidationError, match="not configured"):
            config.environment("qa")

    def test_image_repository_without_registry(self) -> None:
        """Test the image name alone when no registry is set."""
        env = EnvironmentConfig(name="dev", image="app", release="app-dev")

        assert env.image_repository == "app"
        assert env.release_name == "app-dev"
        assert EnvironmentConfig(name="dev").image_repository is None

    def test_empty_name(self) -> None:
        """Test that an environment needs a name."""
        with pytest.raises(ValidationError):
            EnvironmentConfig(name="")
