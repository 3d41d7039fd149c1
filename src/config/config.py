"""Provisioning configuration from YAML file.

Loads from config/config.yaml with all settings in one place:
- Identity provider connection (URL, realm, public client, redirect URI)
- HTTP transport timeout and retry policy
- Document ingestion limits
- Sync engine settings (dry-run simulation, organisational attributes)
- Institutional ID policy

Environment variables ARE supported using ${VAR_NAME} syntax in YAML files.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core.resilience.retry import RetryConfig
from core.security.document_gate import DocumentLimits
from core.security.events import SecurityEventType, Severity, log_security_event
from core.security.validators import validate_provider_config

logger = logging.getLogger(__name__)


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-(([^}]*))?)?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


def _as_bool(value: Any) -> bool:
    # bool('false') would be True
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


DEFAULT_CONFIG_FILE = Path(__file__).parent / "config.yaml"


@dataclass
class IdentityProviderConfig:
    url: str = ""
    realm: str = ""
    client_id: str = ""
    redirect_uri: str = ""


@dataclass
class HttpConfig:
    timeout_seconds: float = 30.0
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass
class IngestionConfig:
    max_document_bytes: int = 10 * 1024 * 1024
    max_element_depth: int = 50
    max_entity_references: int = 1000
    max_records: int = 10_000

    def to_limits(self) -> DocumentLimits:
        return DocumentLimits(
            max_document_bytes=int(self.max_document_bytes),
            max_element_depth=int(self.max_element_depth),
            max_entity_references=int(self.max_entity_references),
            max_records=int(self.max_records),
        )


@dataclass
class SyncConfig:
    """Sync engine settings.

    Organisational attributes written on every created account. Their values
    come from the administrator's own profile, never from imported records.
    """

    dry_run_exists_probability: float = 0.3
    dry_run_failure_probability: float = 0.1
    dry_run_min_latency_seconds: float = 0.1
    dry_run_max_latency_seconds: float = 0.3
    required_actions: List[str] = field(
        default_factory=lambda: ["VERIFY_EMAIL", "UPDATE_PASSWORD"]
    )
    send_actions_email: bool = True
    created_role: str = "LEHR"
    required_admin_role: str = "LEIT"
    role_attribute: str = "rolle"
    school_number_attribute: str = "schulnummer"
    school_admin_attribute: str = "schuladmin"
    attribute_names: Dict[str, str] = field(
        default_factory=lambda: {
            "institutional_id": "schildId",
            "class_label": "klasse",
            "user_type": "userType",
        }
    )


@dataclass
class InstitutionalIdConfig:
    enforce_real_teacher_ids: bool = False
    real_id_pattern: str = r"^ID-\d{6}-\d{4,5}$"
    school_number_pattern: str = ""


@dataclass
class LoggingConfig:
    log_dir: Optional[str] = None
    json_format: bool = True
    console_level: str = "INFO"
    file_level: str = "DEBUG"

    def level(self, name: str) -> int:
        value = getattr(logging, name.upper(), None)
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level: {name}")
        return value


@dataclass
class AppConfig:
    """Toolkit configuration.

    Configuration structure:
        identity_provider: {url, realm, client_id, redirect_uri}
        http: {timeout_seconds, retry: {...}}
        ingestion: {max_document_bytes, ...}
        sync: {...}
        institutional_ids: {...}
        logging: {log_dir, json_format, console_level, file_level}
        environment: development | production
    """

    identity_provider: IdentityProviderConfig = field(default_factory=IdentityProviderConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    institutional_ids: InstitutionalIdConfig = field(default_factory=InstitutionalIdConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def validate(self, require_identity_provider: bool = True) -> List[str]:
        """Validate configuration for correctness and constraints.

        Returns:
            Warnings that do not block startup

        Raises:
            ValueError: If a setting is invalid
        """
        warnings: List[str] = []

        if require_identity_provider:
            idp = self.identity_provider
            result = validate_provider_config(
                idp.url, idp.realm, idp.client_id, idp.redirect_uri, production=self.is_production
            )
            if not result.is_valid:
                log_security_event(
                    SecurityEventType.CONFIGURATION_ERROR,
                    "Invalid identity provider configuration",
                    Severity.HIGH,
                    errors=result.errors,
                )
                raise ValueError(
                    "identity_provider: " + "; ".join(result.errors)
                )
            warnings.extend(result.warnings)

        self._validate_range("http.timeout_seconds", self.http.timeout_seconds, 0.001, 600)
        self._validate_range(
            "sync.dry_run_exists_probability", self.sync.dry_run_exists_probability, 0.0, 1.0
        )
        self._validate_range(
            "sync.dry_run_failure_probability", self.sync.dry_run_failure_probability, 0.0, 1.0
        )
        if self.sync.dry_run_min_latency_seconds > self.sync.dry_run_max_latency_seconds:
            raise ValueError("sync: dry_run_min_latency_seconds must be <= dry_run_max_latency_seconds")
        for name in ("max_document_bytes", "max_element_depth", "max_entity_references", "max_records"):
            self._validate_range(f"ingestion.{name}", getattr(self.ingestion, name), 1, float("inf"))

        for pattern_name in ("real_id_pattern", "school_number_pattern"):
            pattern = getattr(self.institutional_ids, pattern_name)
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"institutional_ids.{pattern_name} is not a valid regex: {e}") from e

        self.logging.level(self.logging.console_level)
        self.logging.level(self.logging.file_level)

        return warnings

    @staticmethod
    def _validate_range(name: str, value: float, min_value: float, max_value: float) -> None:
        """Validate that a setting's value is within a range (inclusive)."""
        if not (min_value <= value <= max_value):
            raise ValueError(f"{name} must be between {min_value} and {max_value}, got {value}")


def _deep_merge(base: Dict[str, Any], overlay: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge overlay into base dict."""
    result = base.copy()
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


# Environment variables that override YAML values
ENV_OVERRIDES = {
    "KEYCLOAK_URL": ("identity_provider", "url"),
    "KEYCLOAK_REALM": ("identity_provider", "realm"),
    "KEYCLOAK_CLIENT_ID": ("identity_provider", "client_id"),
    "KEYCLOAK_REDIRECT_URI": ("identity_provider", "redirect_uri"),
    "APP_ENV": ("environment",),
}


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    for var_name, path in ENV_OVERRIDES.items():
        value = os.getenv(var_name)
        if not value:
            continue
        target = data
        for key in path[:-1]:
            target = target.setdefault(key, {})
        target[path[-1]] = value
    return data


def _build_config(data: Dict[str, Any]) -> AppConfig:
    idp = data.get("identity_provider", {}) or {}
    http = data.get("http", {}) or {}
    ingestion = data.get("ingestion", {}) or {}
    sync = data.get("sync", {}) or {}
    ids = data.get("institutional_ids", {}) or {}
    log = data.get("logging", {}) or {}

    sync_defaults = SyncConfig()
    return AppConfig(
        identity_provider=IdentityProviderConfig(
            url=str(idp.get("url", "")).strip(),
            realm=str(idp.get("realm", "")).strip(),
            client_id=str(idp.get("client_id", "")).strip(),
            redirect_uri=str(idp.get("redirect_uri", "")).strip(),
        ),
        http=HttpConfig(
            timeout_seconds=float(http.get("timeout_seconds", 30.0)),
            retry=RetryConfig(**(http.get("retry", {}) or {})),
        ),
        ingestion=IngestionConfig(
            **{k: int(v) for k, v in ingestion.items() if k in IngestionConfig.__dataclass_fields__}
        ),
        sync=SyncConfig(
            dry_run_exists_probability=float(
                sync.get("dry_run_exists_probability", sync_defaults.dry_run_exists_probability)
            ),
            dry_run_failure_probability=float(
                sync.get("dry_run_failure_probability", sync_defaults.dry_run_failure_probability)
            ),
            dry_run_min_latency_seconds=float(
                sync.get("dry_run_min_latency_seconds", sync_defaults.dry_run_min_latency_seconds)
            ),
            dry_run_max_latency_seconds=float(
                sync.get("dry_run_max_latency_seconds", sync_defaults.dry_run_max_latency_seconds)
            ),
            required_actions=list(sync.get("required_actions", sync_defaults.required_actions)),
            send_actions_email=_as_bool(sync.get("send_actions_email", True)),
            created_role=str(sync.get("created_role", sync_defaults.created_role)),
            required_admin_role=str(sync.get("required_admin_role", sync_defaults.required_admin_role)),
            role_attribute=str(sync.get("role_attribute", sync_defaults.role_attribute)),
            school_number_attribute=str(
                sync.get("school_number_attribute", sync_defaults.school_number_attribute)
            ),
            school_admin_attribute=str(
                sync.get("school_admin_attribute", sync_defaults.school_admin_attribute)
            ),
            attribute_names={
                **sync_defaults.attribute_names,
                **(sync.get("attribute_names", {}) or {}),
            },
        ),
        institutional_ids=InstitutionalIdConfig(
            enforce_real_teacher_ids=_as_bool(ids.get("enforce_real_teacher_ids", False)),
            real_id_pattern=str(ids.get("real_id_pattern", InstitutionalIdConfig.real_id_pattern)),
            school_number_pattern=str(ids.get("school_number_pattern", "") or ""),
        ),
        logging=LoggingConfig(
            log_dir=log.get("log_dir") or None,
            json_format=_as_bool(log.get("json_format", True)),
            console_level=str(log.get("console_level", "INFO")),
            file_level=str(log.get("file_level", "DEBUG")),
        ),
        environment=str(data.get("environment", "development") or "development"),
    )


def load_config(
    config_path: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
    require_identity_provider: bool = True,
) -> AppConfig:
    """Load configuration from config.yaml file.

    Priority (highest to lowest): environment variables (KEYCLOAK_*, APP_ENV),
    overrides, YAML (with ${VAR} expansion), dataclass defaults.

    Raises:
        FileNotFoundError: Explicit config_path does not exist
        ValueError: Configuration is invalid
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    path = config_path or DEFAULT_CONFIG_FILE
    logger.info(f"Loading configuration from file: {path}")
    data = _expand_env_vars(load_yaml(path))

    if overrides:
        logger.debug(f"Applying overrides: {list(overrides.keys())}")
        data = _deep_merge(data, overrides)

    data = _apply_env_overrides(data)
    config = _build_config(data)

    for warning in config.validate(require_identity_provider=require_identity_provider):
        logger.warning(warning)

    logger.debug(
        "Configuration loaded",
        extra={"realm": config.identity_provider.realm, "client_id": config.identity_provider.client_id},
    )
    return config


_app_config: Optional[AppConfig] = None


def get_config() -> AppConfig:
    """Get or load the singleton config instance."""
    global _app_config
    if _app_config is None:
        _app_config = load_config()
    return _app_config


def set_config(config: AppConfig) -> None:
    """Set the singleton config instance (useful for testing)."""
    global _app_config
    _app_config = config


def reset_config() -> None:
    """Reset the singleton config instance (forces reload on next get_config() call)."""
    global _app_config
    _app_config = None
