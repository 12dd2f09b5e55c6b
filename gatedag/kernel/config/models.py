"""Configuration data models for gatedag."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from gatedag.kernel.domain.findings import Severity
from gatedag.kernel.exceptions import ValidationError


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration.

    Attributes
    ----------
    level : str, default="INFO"
        Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        Output format (console, json, structured, rich)
    output_file : str | None, default=None
        Optional file path that also receives JSON records
    use_color : bool, default=True
        Use ANSI color codes (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.gatedag.logging]
    level = "DEBUG"
    format = "rich"
    ```
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True


@dataclass(frozen=True, slots=True)
class SchedulerConfig:
    """Stage scheduler defaults.

    Attributes
    ----------
    max_concurrent_stages : int
        Upper bound on stages running at the same time
    default_stage_timeout : float | None
        Seconds before a stage without its own timeout is cancelled and
        hard-failed. None disables the default.
    """

    max_concurrent_stages: int = 4
    default_stage_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.max_concurrent_stages < 1:
            raise ValidationError(
                "max_concurrent_stages", "must be >= 1", self.max_concurrent_stages
            )
        if self.default_stage_timeout is not None and self.default_stage_timeout <= 0:
            raise ValidationError(
                "default_stage_timeout", "must be positive", self.default_stage_timeout
            )


@dataclass(frozen=True, slots=True)
class TagStoreConfig:
    """Location of the tag ledger database."""

    path: str = ".gatedag/tags.db"


@dataclass(frozen=True, slots=True)
class EnvironmentConfig:
    """One deployment target.

    Attributes
    ----------
    name : str
        Environment name (the table key in TOML)
    registry : str | None
        Registry endpoint images are pushed to, e.g. ``ghcr.io/acme``
    image : str | None
        Image name within the registry
    credentials_ref : str | None
        Name of the environment variable holding the kubeconfig path
    cluster : str | None
        Kube context of the target cluster
    namespace : str | None
        Namespace the release is installed into
    state_backend : str | None
        Location of the infrastructure state backend, passed to stages
    chart : str | None
        Chart reference for the deployment step
    release : str | None
        Release name; defaults to the image name
    severity_thresholds : dict[str, str]
        Stage name -> severities that block, e.g. ``{"scan": "CRITICAL,HIGH"}``

    Examples
    --------
    ```toml
    [tool.gatedag.environments.staging]
    registry = "ghcr.io/acme"
    image = "devsecops-app"
    cluster = "staging-aks"
    namespace = "apps"
    chart = "./charts/app"
    credentials_ref = "STAGING_KUBECONFIG"

    [tool.gatedag.environments.staging.severity_thresholds]
    scan = "CRITICAL,HIGH"
    sast = "CRITICAL,HIGH"
    ```
    """

    name: str
    registry: str | None = None
    image: str | None = None
    credentials_ref: str | None = None
    cluster: str | None = None
    namespace: str | None = None
    state_backend: str | None = None
    chart: str | None = None
    release: str | None = None
    severity_thresholds: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValidationError("name", "environment name cannot be empty")
        for stage, threshold in self.severity_thresholds.items():
            try:
                Severity.parse_list(threshold)
            except ValueError as e:
                raise ValidationError(
                    f"severity_thresholds.{stage}", "unknown severity", threshold
                ) from e

    @property
    def image_repository(self) -> str | None:
        if not self.image:
            return None
        return f"{self.registry.rstrip('/')}/{self.image}" if self.registry else self.image

    @property
    def release_name(self) -> str:
        return self.release or self.image or self.name


@dataclass(slots=True)
class GateDAGConfig:
    """Complete gatedag configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.gatedag]
    default_environment = "staging"

    [tool.gatedag.logging]
    level = "INFO"

    [tool.gatedag.scheduler]
    max_concurrent_stages = 4
    default_stage_timeout = 900

    [tool.gatedag.tag_store]
    path = ".gatedag/tags.db"
    ```
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    tag_store: TagStoreConfig = field(default_factory=TagStoreConfig)
    environments: dict[str, EnvironmentConfig] = field(default_factory=dict)
    default_environment: str | None = None

    def environment(self, name: str | None = None) -> EnvironmentConfig | None:
        """Return the named environment, the default one, or None.

        Raises
        ------
        ValidationError
            If *name* is given but not configured.
        """
        key = name or self.default_environment
        if key is None:
            return None
        if key not in self.environments:
            raise ValidationError("environment", "not configured", key)
        return self.environments[key]
