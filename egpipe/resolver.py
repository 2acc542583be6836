"""Field resolution: literal values or JMESPath queries against a JSON line."""

import json
import logging
import threading

import jmespath
from jmespath.exceptions import JMESPathError

from egpipe.errors import ConfigError, EvaluationError, ParseError
from egpipe.models import loads_strict

logger = logging.getLogger(__name__)

QUERY_PREFIX = "jp:"

_UNPARSED = object()


class LineData:
    """One input line whose JSON form is parsed on first demand and reused."""

    def __init__(self, raw: str):
        self.raw = raw
        self._document = _UNPARSED

    @property
    def parsed(self) -> bool:
        return self._document is not _UNPARSED

    def document(self):
        if self._document is _UNPARSED:
            try:
                self._document = loads_strict(self.raw)
            except ValueError as exc:
                raise ParseError(f"line is not valid JSON: {exc}") from exc
        return self._document


def is_query(spec: str) -> bool:
    return spec.startswith(QUERY_PREFIX)


def stringify(value) -> str:
    """Render a query result as an event field value."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return json.dumps(value)
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer():
            return "%.0f" % value
        return repr(value)
    return json.dumps(value, separators=(",", ":"))


class FieldResolver:
    """Resolves field specs, compiling each field's query once and caching it."""

    def __init__(self, specs: dict[str, str]):
        self._specs = dict(specs)
        self._compiled: dict = {}
        self._lock = threading.Lock()

    def spec(self, field_name: str) -> str:
        return self._specs.get(field_name, "")

    def compiled(self, field_name: str):
        """Return the compiled query for *field_name*, or None for a literal."""
        spec = self.spec(field_name)
        if not is_query(spec):
            return None
        with self._lock:
            expression = self._compiled.get(field_name)
            if expression is None:
                source = spec[len(QUERY_PREFIX):]
                try:
                    expression = jmespath.compile(source)
                except JMESPathError as exc:
                    raise ConfigError(
                        f"invalid query for {field_name}: {source!r}: {exc}"
                    ) from exc
                self._compiled[field_name] = expression
                logger.debug("Compiled query for %s: %s", field_name, source)
        return expression

    def compile_all(self) -> None:
        """Compile every query up front so bad expressions fail at startup."""
        for field_name in self._specs:
            self.compiled(field_name)

    def resolve(self, field_name: str, line: LineData) -> str:
        expression = self.compiled(field_name)
        if expression is None:
            return self.spec(field_name)
        document = line.document()
        try:
            result = expression.search(document)
        except JMESPathError as exc:
            raise EvaluationError(
                f"evaluating {field_name} query {expression.expression!r}: {exc}"
            ) from exc
        return stringify(result)
