"""Dataclasses for top-level application config."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


DEFAULT_API_CORS_ALLOW_ORIGINS = [
    "http://127.0.0.1:3000",
    "http://localhost:3000",
]


@dataclass(slots=True)
class APIConfig:
    docs_enabled: bool = False
    cors_allow_origins: list[str] = field(
        default_factory=lambda: list(DEFAULT_API_CORS_ALLOW_ORIGINS)
    )
    max_request_body_bytes: int = 1048576


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    fmt: str = "ecs_json"
    sink: str = "stdout"
    file_path: str | None = None
    service_name: str = "sporeops"


@dataclass(slots=True)
class TenantConfig:
    tenant_id: str
    display_name: str
    enabled: bool = True
    federation_id: str | None = None
    facilities: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


@dataclass(slots=True)
class MultiTenantConfig:
    enabled: bool = False
    default_tenant: str = "default"
    tenants: list[TenantConfig] = field(default_factory=list)


@dataclass(slots=True)
class ReportingConfig:
    policy_version: str = "1.0.0"
    long_range_days: int = 90
    default_format: str = "json"
    default_time_period: str = "monthly"
    critical_drift_threshold: float = 80.0
    completion_target_percent: float = 80.0
    sla_at_risk_seconds: int = 3600
    top_performer_limit: int = 5
    log_retention_days: int = 90
    max_bundles: int = 200


@dataclass(slots=True)
class ActionsConfig:
    default_sort_by: str = "severity"
    default_sort_order: str = "desc"
    max_tasks: int = 0
    merge_duplicates: bool = True
    log_retention_days: int = 90


@dataclass(slots=True)
class AppConfig:
    environment: str
    api: APIConfig
    logging: LoggingConfig
    multi_tenant: MultiTenantConfig
    reporting: ReportingConfig
    actions: ActionsConfig


VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
VALID_LOG_FORMATS = {"ecs_json", "plain"}
VALID_LOG_SINKS = {"stdout", "file"}
VALID_REPORT_FORMATS = {"json", "markdown", "html", "csv"}
VALID_REPORT_TIME_PERIODS = {"daily", "weekly", "monthly", "quarterly", "custom"}
VALID_ACTION_SORT_FIELDS = {"severity", "createdAt", "category", "status", "priority"}
VALID_SORT_ORDERS = {"asc", "desc"}


def _parse_bool_value(raw: Any, *, field_name: str, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        normalized = raw.strip().lower()
        if normalized in {"1", "true", "yes", "on"}:
            return True
        if normalized in {"0", "false", "no", "off"}:
            return False
    raise ValueError(f"'{field_name}' must be a boolean")


def _parse_token_list(raw: Any, *, field_name: str) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValueError(f"'{field_name}' must be a list")
    values: list[str] = []
    seen: set[str] = set()
    for item in raw:
        token = str(item).strip()
        if not token:
            continue
        if " " in token:
            raise ValueError(f"'{field_name}' entries must not include spaces")
        if token in seen:
            continue
        seen.add(token)
        values.append(token)
    return values


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    raw = data.get(name, {})
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"'{name}' must be an object")
    return raw


def _parse_tenants(raw: Any) -> list[TenantConfig]:
    if not isinstance(raw, list):
        raise ValueError("'multi_tenant.tenants' must be a list")
    tenants: list[TenantConfig] = []
    seen: set[str] = set()
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"tenant #{index} must be an object")
        tenant_id = str(item.get("id", "")).strip()
        if not tenant_id:
            raise ValueError(f"tenant #{index} requires non-empty 'id'")
        if tenant_id in seen:
            raise ValueError(f"duplicate tenant id '{tenant_id}'")
        seen.add(tenant_id)
        tags_raw = item.get("tags", [])
        if not isinstance(tags_raw, list):
            raise ValueError(f"tenant '{tenant_id}' tags must be a list")
        federation_id = str(item.get("federation_id", "") or "").strip() or None
        tenants.append(
            TenantConfig(
                tenant_id=tenant_id,
                display_name=str(item.get("display_name", tenant_id)),
                enabled=_parse_bool_value(item.get("enabled"), field_name=f"tenant '{tenant_id}' enabled", default=True),
                federation_id=federation_id,
                facilities=_parse_token_list(
                    item.get("facilities"), field_name=f"tenant '{tenant_id}' facilities"
                ),
                tags=[str(tag) for tag in tags_raw],
            )
        )
    return tenants


def parse_config(data: dict[str, Any]) -> AppConfig:
    environment = str(data.get("environment", "development"))

    api_raw = _section(data, "api")
    cors_allow_origins_raw = api_raw.get("cors_allow_origins", DEFAULT_API_CORS_ALLOW_ORIGINS)
    if not isinstance(cors_allow_origins_raw, list):
        raise ValueError("'api.cors_allow_origins' must be a list")
    cors_allow_origins = [str(item).strip() for item in cors_allow_origins_raw if str(item).strip()]
    max_request_body_bytes = int(api_raw.get("max_request_body_bytes", 1048576))
    if max_request_body_bytes < 1024:
        raise ValueError("api max_request_body_bytes must be at least 1024")
    api_config = APIConfig(
        docs_enabled=_parse_bool_value(api_raw.get("docs_enabled"), field_name="api.docs_enabled", default=False),
        cors_allow_origins=cors_allow_origins or list(DEFAULT_API_CORS_ALLOW_ORIGINS),
        max_request_body_bytes=max_request_body_bytes,
    )

    logging_raw = _section(data, "logging")
    level = str(logging_raw.get("level", "INFO")).upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"invalid log level '{level}'")
    log_format = str(logging_raw.get("format", "ecs_json"))
    if log_format not in VALID_LOG_FORMATS:
        raise ValueError(f"invalid log format '{log_format}'")
    sink = str(logging_raw.get("sink", "stdout"))
    if sink not in VALID_LOG_SINKS:
        raise ValueError(f"invalid log sink '{sink}'")
    logging_config = LoggingConfig(
        level=level,
        fmt=log_format,
        sink=sink,
        file_path=logging_raw.get("file_path"),
        service_name=str(logging_raw.get("service_name", "sporeops")),
    )

    multi_tenant_raw = _section(data, "multi_tenant")
    multi_tenant_config = MultiTenantConfig(
        enabled=_parse_bool_value(multi_tenant_raw.get("enabled"), field_name="multi_tenant.enabled", default=False),
        default_tenant=str(multi_tenant_raw.get("default_tenant", "default")).strip() or "default",
        tenants=_parse_tenants(multi_tenant_raw.get("tenants", []) or []),
    )

    reporting_raw = _section(data, "reporting")
    default_format = str(reporting_raw.get("default_format", "json")).lower()
    if default_format not in VALID_REPORT_FORMATS:
        raise ValueError(f"invalid report format '{default_format}'")
    default_time_period = str(reporting_raw.get("default_time_period", "monthly")).lower()
    if default_time_period not in VALID_REPORT_TIME_PERIODS - {"custom"}:
        raise ValueError(f"invalid report time period '{default_time_period}'")
    long_range_days = int(reporting_raw.get("long_range_days", 90))
    if long_range_days <= 0:
        raise ValueError("reporting long_range_days must be greater than zero")
    critical_drift_threshold = float(reporting_raw.get("critical_drift_threshold", 80.0))
    if not 0.0 <= critical_drift_threshold <= 100.0:
        raise ValueError("reporting critical_drift_threshold must be between 0 and 100")
    completion_target = float(reporting_raw.get("completion_target_percent", 80.0))
    if not 0.0 <= completion_target <= 100.0:
        raise ValueError("reporting completion_target_percent must be between 0 and 100")
    sla_at_risk_seconds = int(reporting_raw.get("sla_at_risk_seconds", 3600))
    if sla_at_risk_seconds < 0:
        raise ValueError("reporting sla_at_risk_seconds must be greater than or equal to zero")
    top_performer_limit = int(reporting_raw.get("top_performer_limit", 5))
    if top_performer_limit <= 0:
        raise ValueError("reporting top_performer_limit must be greater than zero")
    reporting_retention = int(reporting_raw.get("log_retention_days", 90))
    if reporting_retention <= 0:
        raise ValueError("reporting log_retention_days must be greater than zero")
    max_bundles = int(reporting_raw.get("max_bundles", 200))
    if max_bundles <= 0:
        raise ValueError("reporting max_bundles must be greater than zero")
    reporting_config = ReportingConfig(
        policy_version=str(reporting_raw.get("policy_version", "1.0.0")).strip() or "1.0.0",
        long_range_days=long_range_days,
        default_format=default_format,
        default_time_period=default_time_period,
        critical_drift_threshold=critical_drift_threshold,
        completion_target_percent=completion_target,
        sla_at_risk_seconds=sla_at_risk_seconds,
        top_performer_limit=top_performer_limit,
        log_retention_days=reporting_retention,
        max_bundles=max_bundles,
    )

    actions_raw = _section(data, "actions")
    default_sort_by = str(actions_raw.get("default_sort_by", "severity"))
    if default_sort_by not in VALID_ACTION_SORT_FIELDS:
        raise ValueError(f"invalid action sort field '{default_sort_by}'")
    default_sort_order = str(actions_raw.get("default_sort_order", "desc")).lower()
    if default_sort_order not in VALID_SORT_ORDERS:
        raise ValueError(f"invalid action sort order '{default_sort_order}'")
    max_tasks = int(actions_raw.get("max_tasks", 0))
    if max_tasks < 0:
        raise ValueError("actions max_tasks must be greater than or equal to zero")
    actions_retention = int(actions_raw.get("log_retention_days", 90))
    if actions_retention <= 0:
        raise ValueError("actions log_retention_days must be greater than zero")
    actions_config = ActionsConfig(
        default_sort_by=default_sort_by,
        default_sort_order=default_sort_order,
        max_tasks=max_tasks,
        merge_duplicates=_parse_bool_value(
            actions_raw.get("merge_duplicates"), field_name="actions.merge_duplicates", default=True
        ),
        log_retention_days=actions_retention,
    )

    return AppConfig(
        environment=environment,
        api=api_config,
        logging=logging_config,
        multi_tenant=multi_tenant_config,
        reporting=reporting_config,
        actions=actions_config,
    )
