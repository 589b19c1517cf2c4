"""Profile loading and validation for YAML-based am43ctl device profiles."""

from __future__ import annotations

import logging
import json
import os
import re
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from am43ctl.core.errors import ProfileLoadError, ProfileValidationError
from am43ctl.core.model import Profile, ProtocolConstants, TimingSettings

_HEX_RE = re.compile(r"^[0-9a-f]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_MAX_PREFIX_BYTES = 16
LOGGER = logging.getLogger(__name__)

# (section, key) -> ProtocolConstants field for single-byte values.
_BYTE_FIELDS = {
    ("commands", "set_move"): "set_move",
    ("commands", "set_position"): "set_position",
    ("commands", "get_position"): "get_position",
    ("commands", "get_light_sensor"): "get_light_sensor",
    ("commands", "get_battery_status"): "get_battery_status",
    ("notifications", "position"): "notify_position",
    ("move", "open"): "move_open",
    ("move", "close"): "move_close",
    ("move", "stop"): "move_stop",
    ("responses", "ack"): "response_ack",
    ("responses", "nack"): "response_nack",
}


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

for first_char, mappings in list(UniqueKeyLoader.yaml_implicit_resolvers.items()):
    UniqueKeyLoader.yaml_implicit_resolvers[first_char] = [
        (tag, regexp)
        for tag, regexp in mappings
        if tag != "tag:yaml.org,2002:bool"
    ]


def _construct_mapping(loader: UniqueKeyLoader, node: yaml.Node, deep: bool = False) -> dict[str, Any]:
    mapping: dict[str, Any] = {}
    for key_node, value_node in node.value:
        key = loader.construct_object(key_node, deep=deep)
        if key in mapping:
            raise ProfileValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class LoadedProfiles:
    profiles: dict[str, Profile]
    warnings: tuple[str, ...]


def _load_schema_validator() -> Any:
    schema_text = resources.files("am43ctl.schemas").joinpath("profile.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _profile_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "am43ctl/profiles", xdg_data / "am43ctl/profiles"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ProfileLoadError(f"Could not read profile file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise ProfileValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise ProfileValidationError(f"Profile file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str) -> bytes:
    normalized = str(value).strip().lower().replace(" ", "")
    if normalized.startswith("0x"):
        normalized = normalized[2:]
    if len(normalized) == 0:
        raise ProfileValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise ProfileValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise ProfileValidationError(f"{context} must contain only [0-9a-f]")
    return bytes.fromhex(normalized)


def _normalize_byte(value: str, *, context: str) -> int:
    data = _normalize_hex(value, context=context)
    if len(data) != 1:
        raise ProfileValidationError(f"{context} must be exactly one byte")
    return data[0]


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise ProfileValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ProfileValidationError(f"{context} must be boolean true/false")


def _build_profile(doc: dict[str, Any], source: Path | Traversable) -> Profile:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise ProfileValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc

    profile_id = doc["id"]
    protocol: dict[str, Any] = {
        "service_uuid": _normalize_uuid(
            doc["ble"]["service_uuid"],
            context=f"{profile_id}.ble.service_uuid",
        ),
        "characteristic_uuid": _normalize_uuid(
            doc["ble"]["characteristic_uuid"],
            context=f"{profile_id}.ble.characteristic_uuid",
        ),
    }

    if "prefix" in doc.get("frame", {}):
        prefix = _normalize_hex(doc["frame"]["prefix"], context=f"{profile_id}.frame.prefix")
        if len(prefix) > _MAX_PREFIX_BYTES:
            raise ProfileValidationError(
                f"{profile_id}.frame.prefix exceeds max size {_MAX_PREFIX_BYTES} bytes"
            )
        protocol["command_prefix"] = prefix

    for (section, key), field_name in _BYTE_FIELDS.items():
        if key in doc.get(section, {}):
            protocol[field_name] = _normalize_byte(
                doc[section][key],
                context=f"{profile_id}.{section}.{key}",
            )

    tracking = doc.get("tracking", {})
    if "history_length" in tracking:
        protocol["history_length"] = int(tracking["history_length"])

    connection = doc.get("connection", {})
    defaults = TimingSettings()
    write_timeout = connection.get("write_timeout_s", defaults.write_timeout_s)
    timing = TimingSettings(
        settle_delay_s=float(connection.get("settle_delay_s", defaults.settle_delay_s)),
        poll_interval_s=float(tracking.get("poll_interval_s", defaults.poll_interval_s)),
        write_timeout_s=float(write_timeout) if write_timeout is not None else None,
        connect_timeout_s=float(connection.get("connect_timeout_s", defaults.connect_timeout_s)),
    )

    return Profile(
        id=profile_id,
        name=doc["name"],
        protocol=ProtocolConstants(**protocol),
        timing=timing,
        write_with_response=_normalize_bool(
            doc["ble"].get("write_with_response", True),
            context=f"{profile_id}.ble.write_with_response",
        ),
    )


def _iter_packaged_profile_paths() -> list[Traversable]:
    profile_root = resources.files("am43ctl.profiles")
    return [item for item in profile_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_profile_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _profile_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_profiles() -> LoadedProfiles:
    profiles: dict[str, Profile] = {}
    warnings: list[str] = []

    for path in sorted(_iter_packaged_profile_paths(), key=lambda p: p.name):
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        profiles[profile.id] = profile

    for path in _iter_user_profile_paths():
        doc = _read_yaml(path)
        profile = _build_profile(doc, path)
        if profile.id in profiles:
            warning = f"User profile '{profile.id}' overrides packaged profile"
            LOGGER.warning(warning)
            warnings.append(warning)
        profiles[profile.id] = profile

    return LoadedProfiles(profiles=profiles, warnings=tuple(warnings))
