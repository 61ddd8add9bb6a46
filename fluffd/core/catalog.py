"""Command catalog loading, validation and payload encoding.

Commands are declared in YAML files. The packaged ``furby.yaml`` is loaded
first, then user files from ``$XDG_CONFIG_HOME/fluffd/commands`` and
``$XDG_DATA_HOME/fluffd/commands`` which may add or override commands.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any

import yaml
from jsonschema import ValidationError, validators

from fluffd.core.errors import CatalogLoadError, CatalogValidationError, CommandResolutionError
from fluffd.core.model import CommandSpec, ParamSpec

_HEX_RE = re.compile(r"^[0-9a-f]+$")
_UUID_RE = re.compile(r"^[0-9a-f]{4}$|^[0-9a-f]{8}$|^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")
_MAX_PAYLOAD_BYTES = 512
LOGGER = logging.getLogger(__name__)


class UniqueKeyLoader(yaml.SafeLoader):
    """YAML loader that rejects duplicate mapping keys."""


UniqueKeyLoader.yaml_implicit_resolvers = {
    key: list(value) for key, value in yaml.SafeLoader.yaml_implicit_resolvers.items()
}

# Keeps keys such as ``on`` from turning into booleans.
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
            raise CatalogValidationError(f"Duplicate key '{key}' in YAML document")
        mapping[key] = loader.construct_object(value_node, deep=deep)
    return mapping


UniqueKeyLoader.add_constructor(
    yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG,
    _construct_mapping,
)


@dataclass(frozen=True)
class CommandCatalog:
    commands: dict[str, CommandSpec]
    write_char_uuid: str
    notify_char_uuid: str | None
    warnings: tuple[str, ...] = ()

    def list(self) -> list[dict[str, Any]]:
        """Describe every command for the ``/list`` endpoint."""
        descriptors: list[dict[str, Any]] = []
        for name in sorted(self.commands):
            spec = self.commands[name]
            descriptors.append(
                {
                    "name": spec.name,
                    "description": spec.description,
                    "params": {
                        param_name: {
                            "type": param.type,
                            "required": param.required,
                            **({"description": param.description} if param.description else {}),
                        }
                        for param_name, param in spec.params.items()
                    },
                }
            )
        return descriptors

    def encode(self, name: str, params: Any = None) -> tuple[str, bytes]:
        """Return the characteristic UUID and payload for a command invocation."""
        spec = self.commands.get(name)
        if spec is None:
            available = ", ".join(sorted(self.commands))
            raise CommandResolutionError(f"Unknown command '{name}'. Available: {available}")

        if params is None:
            params = {}
        if not isinstance(params, Mapping):
            if spec.params:
                raise CommandResolutionError(
                    f"Command '{name}' expects params as an object, got {type(params).__name__}"
                )
            params = {}

        unknown = sorted(set(params) - set(spec.params))
        if unknown:
            raise CommandResolutionError(f"Command '{name}' does not accept params: {', '.join(unknown)}")

        payload = bytearray()
        for chunk in spec.payload:
            if isinstance(chunk, bytes):
                payload.extend(chunk)
                continue
            payload.extend(_encode_param(name, chunk, spec.params[chunk], params))

        if len(payload) > _MAX_PAYLOAD_BYTES:
            raise CommandResolutionError(
                f"Command '{name}' payload exceeds max size {_MAX_PAYLOAD_BYTES} bytes"
            )
        return spec.characteristic or self.write_char_uuid, bytes(payload)


def _encode_param(command: str, param_name: str, param: ParamSpec, params: Mapping[str, Any]) -> bytes:
    context = f"{command}.{param_name}"
    if param_name in params:
        value = params[param_name]
    elif param.default is not None:
        value = param.default
    elif param.required:
        raise CommandResolutionError(f"Command '{command}' requires param '{param_name}'")
    else:
        return b""

    try:
        if param.type == "byte":
            return bytes([_coerce_byte(value, context=context)])
        if param.type == "bool":
            return b"\x01" if _normalize_bool(value, context=context) else b"\x00"
        if not isinstance(value, str):
            raise CatalogValidationError(f"{context} must be a hex string")
        return _normalize_hex(value, context=context)
    except CatalogValidationError as exc:
        raise CommandResolutionError(str(exc)) from exc


def _coerce_byte(value: Any, *, context: str) -> int:
    if isinstance(value, bool):
        raise CatalogValidationError(f"{context} must be an integer 0-255")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or not 0 <= value <= 255:
        raise CatalogValidationError(f"{context} must be an integer 0-255")
    return value


def _load_schema_validator() -> Any:
    schema_text = resources.files("fluffd.schemas").joinpath("catalog.schema.json").read_text(
        encoding="utf-8"
    )
    schema = json.loads(schema_text)
    validator_cls = validators.validator_for(schema)
    validator_cls.check_schema(schema)
    return validator_cls(schema)


def _catalog_dirs() -> tuple[Path, Path]:
    xdg_config = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
    xdg_data = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local/share"))
    return xdg_config / "fluffd/commands", xdg_data / "fluffd/commands"


def _read_yaml(path: Path | Traversable) -> dict[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CatalogLoadError(f"Could not read command file {path}: {exc}") from exc

    try:
        loaded = yaml.load(content, Loader=UniqueKeyLoader)
    except yaml.YAMLError as exc:
        raise CatalogValidationError(f"Invalid YAML in {path}: {exc}") from exc

    if not isinstance(loaded, dict):
        raise CatalogValidationError(f"Command file {path} must contain a mapping at root")
    return loaded


def _normalize_hex(value: str, *, context: str) -> bytes:
    normalized = value.strip().lower().replace(" ", "")
    if len(normalized) == 0:
        raise CatalogValidationError(f"{context} must not be empty")
    if len(normalized) % 2 != 0:
        raise CatalogValidationError(f"{context} must have even-length hex")
    if not _HEX_RE.match(normalized):
        raise CatalogValidationError(f"{context} must contain only [0-9a-f]")
    return bytes.fromhex(normalized)


def _normalize_uuid(value: str, *, context: str) -> str:
    normalized = value.strip().lower()
    if not _UUID_RE.match(normalized):
        raise CatalogValidationError(
            f"{context} must be a 16-bit, 32-bit, or 128-bit UUID string"
        )
    return normalized


def _normalize_bool(value: Any, *, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "on", "1"):
            return True
        if lowered in ("false", "off", "0"):
            return False
    raise CatalogValidationError(f"{context} must be boolean true/false")


def _build_command(name: str, doc: dict[str, Any], source: Path | Traversable) -> CommandSpec:
    params: dict[str, ParamSpec] = {}
    for param_name, param_doc in (doc.get("params") or {}).items():
        context = f"{name}.{param_name}"
        default = param_doc.get("default")
        if default is not None:
            if param_doc["type"] == "bool":
                default = _normalize_bool(default, context=f"{context}.default")
            elif param_doc["type"] == "byte":
                default = _coerce_byte(default, context=f"{context}.default")
        params[str(param_name)] = ParamSpec(
            type=param_doc["type"],
            required=_normalize_bool(param_doc.get("required", True), context=f"{context}.required"),
            default=default,
            description=param_doc.get("description"),
        )

    payload: list[bytes | str] = []
    for index, chunk in enumerate(doc["payload"]):
        if isinstance(chunk, str):
            payload.append(_normalize_hex(chunk, context=f"{name}.payload[{index}]"))
            continue
        param_name = chunk["param"]
        if param_name not in params:
            raise CatalogValidationError(
                f"Command '{name}' in {source} references undeclared param '{param_name}'"
            )
        payload.append(param_name)

    characteristic = doc.get("characteristic")
    return CommandSpec(
        name=name,
        description=doc["description"],
        params=params,
        payload=tuple(payload),
        characteristic=_normalize_uuid(characteristic, context=f"{name}.characteristic")
        if characteristic
        else None,
    )


def _validate(doc: dict[str, Any], source: Path | Traversable) -> None:
    validator = _load_schema_validator()
    try:
        validator.validate(doc)
    except ValidationError as exc:
        path = ".".join(str(p) for p in exc.path)
        where = f" ({path})" if path else ""
        raise CatalogValidationError(f"Schema validation failed for {source}{where}: {exc.message}") from exc


def _iter_packaged_command_paths() -> list[Traversable]:
    command_root = resources.files("fluffd.commands")
    return [item for item in command_root.iterdir() if item.name.endswith((".yml", ".yaml"))]


def _iter_user_command_paths() -> list[Path]:
    paths: list[Path] = []
    for directory in _catalog_dirs():
        if not directory.exists() or not directory.is_dir():
            continue
        paths.extend(sorted(p for p in directory.iterdir() if p.suffix in {".yml", ".yaml"}))
    return paths


def load_catalog() -> CommandCatalog:
    commands: dict[str, CommandSpec] = {}
    warnings: list[str] = []
    write_char_uuid: str | None = None
    notify_char_uuid: str | None = None

    packaged = sorted(_iter_packaged_command_paths(), key=lambda p: p.name)
    for origin, paths in (("packaged", packaged), ("user", _iter_user_command_paths())):
        for path in paths:
            doc = _read_yaml(path)
            _validate(doc, path)
            if "write_char_uuid" in doc:
                write_char_uuid = _normalize_uuid(doc["write_char_uuid"], context=f"{path}.write_char_uuid")
            if "notify_char_uuid" in doc:
                notify_char_uuid = _normalize_uuid(doc["notify_char_uuid"], context=f"{path}.notify_char_uuid")
            for name, command_doc in doc["commands"].items():
                command = _build_command(name, command_doc, path)
                if origin == "user" and name in commands:
                    warning = f"User command '{name}' overrides packaged command"
                    LOGGER.warning(warning)
                    warnings.append(warning)
                commands[name] = command

    if write_char_uuid is None:
        raise CatalogValidationError("No command file declares a write_char_uuid")

    return CommandCatalog(
        commands=commands,
        write_char_uuid=write_char_uuid,
        notify_char_uuid=notify_char_uuid,
        warnings=tuple(warnings),
    )
