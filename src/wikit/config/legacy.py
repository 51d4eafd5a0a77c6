"""
Legacy environment-variable credential source.

Before the encrypted store existed, each instance was configured with a
pair of environment variables, ``<PREFIX>_API_URL`` and ``<PREFIX>_API_KEY``.
This module reads those variables for the statically known instances and
renders/parses the same format for export and re-import.
"""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from wikit.config.store import WikiInstance

DEFAULT_INSTANCE_ENV = "WIKIJS_DEFAULT_INSTANCE"

_ENV_LINE = re.compile(r"^(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)_API_(URL|KEY)\s*=\s*(.*)$")


@dataclass(frozen=True)
class LegacyMapping:
    """Environment variable prefix and display label for a known instance."""

    prefix: str
    label: str


@dataclass(frozen=True)
class WikiConfig:
    """The effective credential used to talk to an instance."""

    url: str
    key: str

    def __repr__(self) -> str:
        return f"WikiConfig(url={self.url!r}, key='***')"


LEGACY_INSTANCES: dict[str, LegacyMapping] = {
    "rmwiki": LegacyMapping(prefix="WIKIJS", label="RM Wiki"),
    "tlwiki": LegacyMapping(prefix="TLWIKI", label="TL Wiki"),
}


def env_prefix(instance_id: str) -> str:
    """Map an instance id to its environment variable prefix."""
    mapping = LEGACY_INSTANCES.get(instance_id)
    if mapping is not None:
        return mapping.prefix
    return instance_id.upper().replace("-", "_")


def instance_id_for_prefix(prefix: str) -> str:
    """Reverse of env_prefix() for known prefixes; lower-cases the rest."""
    for instance_id, mapping in LEGACY_INSTANCES.items():
        if mapping.prefix == prefix:
            return instance_id
    return prefix.lower()


def get_legacy_config(
    instance_id: str, environ: Mapping[str, str] | None = None
) -> WikiConfig | None:
    """
    Read the legacy credential for a known instance.

    Returns None unless the id is one of LEGACY_INSTANCES and both its URL
    and key variables are non-empty.
    """
    env = os.environ if environ is None else environ
    mapping = LEGACY_INSTANCES.get(instance_id)
    if mapping is None:
        return None

    url = env.get(f"{mapping.prefix}_API_URL", "")
    key = env.get(f"{mapping.prefix}_API_KEY", "")
    if not url or not key:
        return None
    return WikiConfig(url=url, key=key)


def get_env_instances(environ: Mapping[str, str] | None = None) -> list[WikiInstance]:
    """List the legacy instances that are fully configured in the environment."""
    instances = []
    for instance_id, mapping in LEGACY_INSTANCES.items():
        config = get_legacy_config(instance_id, environ)
        if config is not None:
            instances.append(
                WikiInstance(
                    id=instance_id,
                    name=mapping.label,
                    url=config.url,
                    key=config.key,
                )
            )
    return instances


def render_env_lines(instances: Iterable[WikiInstance]) -> list[str]:
    """Render instances as ``.env`` lines, one commented block each."""
    lines: list[str] = []
    for instance in instances:
        prefix = env_prefix(instance.id)
        lines.append(f"# {instance.name}")
        lines.append(f"{prefix}_API_URL={_quote(instance.url)}")
        lines.append(f"{prefix}_API_KEY={_quote(instance.key)}")
        lines.append("")
    return lines


def _quote(value: str) -> str:
    # Plain values must come back unchanged through _unquote
    if value != value.strip() or value[:1] in ("'", '"'):
        return f'"{value}"'
    return value


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


def parse_env_text(text: str) -> list[WikiInstance]:
    """
    Parse ``.env`` text back into instances.

    Only prefixes with both a URL and a key line produce an instance. The
    name is taken from the comment line directly above the block when
    present, else from the legacy label, else the id.
    """
    values: dict[str, dict[str, str]] = {}
    names: dict[str, str] = {}
    order: list[str] = []
    last_comment = ""

    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            last_comment = ""
            continue
        if line.startswith("#"):
            last_comment = line.lstrip("#").strip()
            continue

        match = _ENV_LINE.match(line)
        if not match:
            last_comment = ""
            continue

        prefix, kind, value = match.groups()
        if prefix not in values:
            values[prefix] = {}
            order.append(prefix)
            if last_comment:
                names[prefix] = last_comment
        values[prefix][kind] = _unquote(value)

    instances = []
    for prefix in order:
        url = values[prefix].get("URL", "")
        key = values[prefix].get("KEY", "")
        if not url or not key:
            continue
        instance_id = instance_id_for_prefix(prefix)
        mapping = LEGACY_INSTANCES.get(instance_id)
        name = names.get(prefix) or (mapping.label if mapping else instance_id)
        instances.append(WikiInstance(id=instance_id, name=name, url=url, key=key))
    return instances
