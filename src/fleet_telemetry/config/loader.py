from __future__ import annotations

import importlib
from collections.abc import Mapping, Sequence
from importlib import resources
from pathlib import Path

from fleet_telemetry.config.schema import (
    EntityConfig,
    FleetConfig,
    HistoryConfig,
    LedgerConfig,
    LedgerProbabilities,
    SchedulerConfig,
    SnapshotConfig,
    TelemetryConfig,
    validate_config,
)

_ROOT_KEYS = {"scheduler", "history", "ledgers", "snapshots", "fleet"}
_SCHEDULER_KEYS = {"tick_interval_ms"}
_HISTORY_KEYS = {"capacity", "active_output_cap"}
_LEDGER_KEYS = {"alert_cap", "initial_alerts", "probabilities"}
_PROBABILITY_KEYS = {
    "queued_to_running",
    "completed_to_queued",
    "alert_emission",
    "max_progress_step",
}
_SNAPSHOT_KEYS = {"lookback_cap_minutes"}
_FLEET_KEYS = {"entities"}
_ENTITY_KEYS = {"entity_id", "name", "region"}


def load_default_config() -> TelemetryConfig:
    text = (
        resources.files("fleet_telemetry.config")
        .joinpath("default.yaml")
        .read_text(encoding="utf-8")
    )
    return _load_text(text, label="telemetry default config")


def load_config(path: str | Path) -> TelemetryConfig:
    text = Path(path).read_text(encoding="utf-8")
    return _load_text(text, label=f"telemetry config {path}")


def _load_text(text: str, *, label: str) -> TelemetryConfig:
    yaml = importlib.import_module("yaml")
    data = yaml.safe_load(text)
    if not isinstance(data, Mapping):
        raise ValueError(f"{label} must be a mapping")
    config = _parse_config(data)
    validate_config(config)
    return config


def _parse_config(payload: Mapping[str, object]) -> TelemetryConfig:
    _reject_unknown(payload, _ROOT_KEYS, "telemetry config")
    defaults = TelemetryConfig()
    return TelemetryConfig(
        scheduler=_parse_scheduler(payload.get("scheduler"), defaults.scheduler),
        history=_parse_history(payload.get("history"), defaults.history),
        ledgers=_parse_ledgers(payload.get("ledgers"), defaults.ledgers),
        snapshots=_parse_snapshots(payload.get("snapshots"), defaults.snapshots),
        fleet=_parse_fleet(payload.get("fleet"), defaults.fleet),
    )


def _parse_scheduler(data: object, default: SchedulerConfig) -> SchedulerConfig:
    if data is None:
        return default
    section = _require_mapping(data, "scheduler", _SCHEDULER_KEYS)
    return SchedulerConfig(
        tick_interval_ms=_int_field(
            section, "tick_interval_ms", "scheduler", default.tick_interval_ms
        ),
    )


def _parse_history(data: object, default: HistoryConfig) -> HistoryConfig:
    if data is None:
        return default
    section = _require_mapping(data, "history", _HISTORY_KEYS)
    return HistoryConfig(
        capacity=_int_field(section, "capacity", "history", default.capacity),
        active_output_cap=_int_field(
            section, "active_output_cap", "history", default.active_output_cap
        ),
    )


def _parse_ledgers(data: object, default: LedgerConfig) -> LedgerConfig:
    if data is None:
        return default
    section = _require_mapping(data, "ledgers", _LEDGER_KEYS)
    return LedgerConfig(
        alert_cap=_int_field(section, "alert_cap", "ledgers", default.alert_cap),
        initial_alerts=_int_field(section, "initial_alerts", "ledgers", default.initial_alerts),
        probabilities=_parse_probabilities(section.get("probabilities"), default.probabilities),
    )


def _parse_probabilities(data: object, default: LedgerProbabilities) -> LedgerProbabilities:
    if data is None:
        return default
    label = "ledgers.probabilities"
    section = _require_mapping(data, label, _PROBABILITY_KEYS)
    return LedgerProbabilities(
        queued_to_running=_float_field(
            section, "queued_to_running", label, default.queued_to_running
        ),
        completed_to_queued=_float_field(
            section, "completed_to_queued", label, default.completed_to_queued
        ),
        alert_emission=_float_field(section, "alert_emission", label, default.alert_emission),
        max_progress_step=_int_field(
            section, "max_progress_step", label, default.max_progress_step
        ),
    )


def _parse_snapshots(data: object, default: SnapshotConfig) -> SnapshotConfig:
    if data is None:
        return default
    section = _require_mapping(data, "snapshots", _SNAPSHOT_KEYS)
    return SnapshotConfig(
        lookback_cap_minutes=_int_field(
            section, "lookback_cap_minutes", "snapshots", default.lookback_cap_minutes
        ),
    )


def _parse_fleet(data: object, default: FleetConfig) -> FleetConfig:
    if data is None:
        return default
    section = _require_mapping(data, "fleet", _FLEET_KEYS)
    entities = section.get("entities")
    if entities is None:
        return default
    if not isinstance(entities, Sequence) or isinstance(entities, (str, bytes)):
        raise ValueError("fleet.entities must be a list")
    parsed: list[EntityConfig] = []
    for item in entities:
        if not isinstance(item, Mapping):
            raise ValueError("fleet.entities entries must be mappings")
        _reject_unknown(item, _ENTITY_KEYS, "fleet entity")
        entity_id = item.get("entity_id")
        name = item.get("name")
        region = item.get("region")
        if not isinstance(entity_id, str) or not entity_id:
            raise ValueError("entity_id must be set for each entity")
        if not isinstance(name, str) or not name:
            raise ValueError(f"name must be set for entity_id={entity_id}")
        if not isinstance(region, str) or not region:
            raise ValueError(f"region must be set for entity_id={entity_id}")
        parsed.append(EntityConfig(entity_id=entity_id, name=name, region=region))
    return FleetConfig(entities=parsed)


def _require_mapping(data: object, label: str, allowed: set[str]) -> Mapping[str, object]:
    if not isinstance(data, Mapping):
        raise ValueError(f"{label} must be a mapping")
    _reject_unknown(data, allowed, label)
    return data


def _int_field(section: Mapping[str, object], key: str, label: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label}.{key} must be an int")
    return value


def _float_field(section: Mapping[str, object], key: str, label: str, default: float) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{label}.{key} must be a number")
    return float(value)


def _reject_unknown(payload: Mapping[str, object], allowed: set[str], label: str) -> None:
    unknown = set(payload.keys()) - allowed
    if unknown:
        unknown_list = ", ".join(sorted(str(item) for item in unknown))
        raise ValueError(f"unknown {label} keys: {unknown_list}")
