# influx_catalog/query/flux.py
# Flux text for the measurement catalog. Each strategy renders one query shape and names the
# column that carries the measurement name in its result records.
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from influx_catalog.errors import QueryError, QueryErrorKind

Bound = Union[datetime, timedelta, str]

_DURATION = re.compile(r"^-?(\d+(ns|us|µs|ms|s|m|h|d|w|mo|y))+$")
_NOW = "now()"


def _malformed(message: str) -> QueryError:
    return QueryError(message, kind=QueryErrorKind.MALFORMED)


def string_literal(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def render_bound(value: Bound) -> str:
    """
    Render a range bound as a Flux literal.

    datetime -> RFC3339 UTC (naive values are taken as UTC), timedelta -> duration relative to
    now (e.g. -300000ms), str -> a Flux duration such as -5y, or now().
    """
    if isinstance(value, datetime):
        return _as_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    if isinstance(value, timedelta):
        return f"{int(value / timedelta(milliseconds=1))}ms"
    if isinstance(value, str):
        text = value.strip()
        if text == _NOW or _DURATION.match(text):
            return text
        raise _malformed(f"Unsupported range bound {value!r}")
    raise _malformed(f"Unsupported range bound type {type(value).__name__}")


def range_is_empty(start: Bound, stop: Optional[Bound]) -> bool:
    """True for a zero-width range; raises when start is after stop."""
    if stop is None:
        stop = _NOW
    if isinstance(start, datetime) and isinstance(stop, datetime):
        start, stop = _as_utc(start), _as_utc(stop)
    elif isinstance(start, timedelta) and isinstance(stop, timedelta):
        pass
    else:
        return render_bound(start) == render_bound(stop)
    if start > stop:
        raise _malformed(f"Range start {start} is after stop {stop}")
    return start == stop


class CatalogQuery:
    name = ""
    column = "_value"

    def render(self, bucket: str, start: Bound, stop: Optional[Bound] = None) -> str:
        raise NotImplementedError


class SchemaMeasurementsQuery(CatalogQuery):
    """schema.measurements(): the server lists distinct measurement names itself."""

    name = "schema"

    def render(self, bucket, start, stop=None):
        return (
            'import "influxdata/influxdb/schema"\n\n'
            f"schema.measurements(bucket: {string_literal(bucket)}, "
            f"start: {render_bound(start)}, stop: {render_bound(stop or _NOW)})"
        )


class DistinctMeasurementQuery(CatalogQuery):
    """Project to _measurement, ungroup and let the server deduplicate."""

    name = "distinct"

    def render(self, bucket, start, stop=None):
        return (
            f"from(bucket: {string_literal(bucket)})\n"
            f"  |> range(start: {render_bound(start)}, stop: {render_bound(stop or _NOW)})\n"
            '  |> keep(columns: ["_measurement"])\n'
            "  |> group()\n"
            '  |> distinct(column: "_measurement")'
        )


class KeysScanQuery(CatalogQuery):
    """
    range() |> keys(): returns records for every series group, so the same measurement comes back
    many times. Correct but wasteful; only for backends without the schema package.
    """

    name = "keys"
    column = "_measurement"

    def render(self, bucket, start, stop=None):
        return (
            f"from(bucket: {string_literal(bucket)})\n"
            f"  |> range(start: {render_bound(start)}, stop: {render_bound(stop or _NOW)})\n"
            "  |> keys()"
        )


STRATEGIES = {cls.name: cls for cls in (SchemaMeasurementsQuery, DistinctMeasurementQuery, KeysScanQuery)}


def strategy_for(name: str) -> CatalogQuery:
    try:
        return STRATEGIES[name]()
    except KeyError:
        raise ValueError(f"Unknown catalog query strategy {name!r}, expected one of {', '.join(STRATEGIES)}") from None
