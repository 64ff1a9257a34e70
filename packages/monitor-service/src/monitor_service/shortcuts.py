"""
Alert expression shortcuts.

An alert expression beginning with "@" names a macro from the shortcut
table, optionally followed by ":" and comma-separated arguments:

    @service_mem_limit:0.8
    @resp_time_above:0.1,5m,0.99

Macros can be chained with the infix keywords _and_, _or_ and _unless_.
Each segment expands independently and the results are joined with the
matching PromQL operator:

    @service_mem_limit:0.8_and_@replicas_less_than

Expansion also fills default annotations and labels. A key already
present on the alert - set by the caller or by an earlier segment - is
never overwritten.

Unknown macros leave the alert untouched. Alert expressions are operator
authored free text, so a typo degrades to the literal expression instead
of failing the reconfiguration.

Templates are filled by plain placeholder substitution; no template
logic is executed.
"""

import logging
import re
from collections.abc import Iterator, Mapping
from importlib import resources
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ShortcutLoadError
from .types import AlertRule, ShortcutDefinition

logger = logging.getLogger(__name__)

SIGIL = "@"

# Keyword in the raw expression -> PromQL binary operator
COMPOUND_OPERATORS = {
    "_and_": "and",
    "_or_": "or",
    "_unless_": "unless",
}

OVERRIDE_FILE_PREFIX = "alertif"

_PLACEHOLDER = re.compile(r"\[(SERVICE_NAME|REPLICAS|VALUE(?:_(\d+))?)\]")


def split_compound(expression: str) -> tuple[str, str, str]:
    """
    Split the leftmost segment off a compound expression.

    The earliest occurring operator keyword wins, so chains are consumed
    left to right regardless of which keywords they use.

    Returns:
        (segment, operator, rest). operator and rest are empty when the
        expression holds no operator keyword.
    """
    found: tuple[int, str] | None = None
    for keyword in COMPOUND_OPERATORS:
        index = expression.find(keyword)
        if index >= 0 and (found is None or index < found[0]):
            found = (index, keyword)

    if found is None:
        return expression, "", ""

    index, keyword = found
    return (
        expression[:index],
        COMPOUND_OPERATORS[keyword],
        expression[index + len(keyword):],
    )


def substitute(template: str, alert: AlertRule, value: str) -> str:
    """
    Fill a shortcut template for one alert.

    [SERVICE_NAME] and [REPLICAS] come from the alert, [VALUE] is the whole
    argument string and [VALUE_<n>] its n-th comma-separated element.
    Placeholders with no matching argument are left as they are.
    """
    args = value.split(",")

    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name == "SERVICE_NAME":
            return alert.service_name
        if name == "REPLICAS":
            return str(alert.replicas)
        if match.group(2) is None:
            return value
        position = int(match.group(2))
        if position < len(args):
            return args[position]
        return match.group(0)

    return _PLACEHOLDER.sub(replace, template)


def _parse_definitions(text: str, source: str) -> dict[str, ShortcutDefinition]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ShortcutLoadError(source, str(e)) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ShortcutLoadError(source, "top level must be a mapping")

    definitions = {}
    for raw_name, body in data.items():
        name = str(raw_name)
        if not name.startswith(SIGIL):
            name = SIGIL + name
        if not isinstance(body, dict) or not isinstance(body.get("expanded"), str):
            raise ShortcutLoadError(source, f"{name} needs an 'expanded' string")
        definitions[name] = ShortcutDefinition(
            name=name,
            expanded=body["expanded"],
            annotations=_string_map(body.get("annotations"), source, name),
            labels=_string_map(body.get("labels"), source, name),
        )
    return definitions


def _string_map(value: Any, source: str, name: str) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ShortcutLoadError(source, f"{name} annotations and labels must be mappings")
    return {str(k): str(v) for k, v in value.items()}


class ShortcutTable:
    """
    The effective set of shortcut macros.

    Built once at startup from the packaged shortcuts.yaml, then merged
    with operator override files. Later definitions replace earlier ones
    with the same name. Read-only after loading.
    """

    def __init__(self, definitions: Mapping[str, ShortcutDefinition] | None = None):
        self._definitions: dict[str, ShortcutDefinition] = dict(definitions or {})

    @classmethod
    def builtin(cls) -> "ShortcutTable":
        """Table holding only the packaged definitions."""
        text = resources.files("monitor_service").joinpath("shortcuts.yaml").read_text(
            encoding="utf-8"
        )
        return cls(_parse_definitions(text, "shortcuts.yaml"))

    @classmethod
    def load(cls, override_dir: Path | None = None) -> "ShortcutTable":
        """Packaged definitions merged with the override files in override_dir."""
        table = cls.builtin()
        if override_dir is not None:
            table.merge_dir(override_dir)
        return table

    def merge_yaml(self, text: str, source: str = "<string>") -> None:
        """Merge definitions from a YAML document, replacing same-named macros."""
        definitions = _parse_definitions(text, source)
        self._definitions.update(definitions)
        logger.info("Loaded %d shortcut(s) from %s", len(definitions), source)

    def merge_dir(self, directory: Path, prefix: str = OVERRIDE_FILE_PREFIX) -> None:
        """
        Merge every file in directory whose name starts with prefix.

        The prefix match is case-insensitive. Files are merged in sorted
        name order, so a later file overrides an earlier one.
        """
        if not directory.is_dir():
            return
        for path in sorted(directory.iterdir()):
            if path.is_file() and path.name.lower().startswith(prefix.lower()):
                self.merge_yaml(path.read_text(encoding="utf-8"), str(path))

    def get(self, name: str) -> ShortcutDefinition | None:
        return self._definitions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def __iter__(self) -> Iterator[ShortcutDefinition]:
        for name in sorted(self._definitions):
            yield self._definitions[name]

    def expand(self, alert: AlertRule) -> bool:
        """
        Expand alert.expression in place if it is a shortcut.

        Every segment of a compound expression must name a known macro;
        otherwise nothing on the alert changes.

        Returns:
            True if the alert was expanded.
        """
        if not alert.expression.startswith(SIGIL):
            return False

        segments: list[tuple[ShortcutDefinition, str, str]] = []
        rest = alert.expression
        while rest:
            segment, operator, rest = split_compound(rest)
            # "@name:value"; anything after a second colon is ignored
            name, value = (segment.split(":") + [""])[:2]
            definition = self.get(name)
            if definition is None:
                logger.warning(
                    "Unknown shortcut %s in alert %s of service %s",
                    name,
                    alert.alert_name,
                    alert.service_name,
                )
                return False
            segments.append((definition, value, operator))

        expression = ""
        for definition, value, operator in segments:
            expression += substitute(definition.expanded, alert, value)
            if operator:
                expression += f" {operator} "

        for definition, value, _ in segments:
            for key, template in definition.annotations.items():
                if key not in alert.annotations:
                    alert.annotations[key] = substitute(template, alert, value)
            for key, template in definition.labels.items():
                if key not in alert.labels:
                    alert.labels[key] = substitute(template, alert, value)

        alert.expression = expression
        return True
