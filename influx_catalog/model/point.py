# influx_catalog/model/point.py
# Immutable representation of one sample (measurement, tags, fields, timestamp, precision).
# Line protocol encoding is delegated to influxdb_client.Point so the wire text matches the client library.
import math
from dataclasses import dataclass
from datetime import datetime
from numbers import Integral, Real
from typing import Mapping, Tuple, Union

from influxdb_client import Point as InfluxPoint, WritePrecision

from influx_catalog.errors import InvalidPointError

FieldValue = Union[int, float, str, bool]
Timestamp = Union[datetime, int]

PRECISIONS = (WritePrecision.NS, WritePrecision.US, WritePrecision.MS, WritePrecision.S)
_PRECISION_ALIASES = {"µs": WritePrecision.US, "u": WritePrecision.US}


def normalize_precision(precision: str) -> str:
    value = _PRECISION_ALIASES.get(precision, precision)
    if value not in PRECISIONS:
        raise InvalidPointError(f"Unsupported precision {precision!r}, expected one of {', '.join(PRECISIONS)}")
    return value


def _check_field(key, value) -> FieldValue:
    if not isinstance(key, str) or not key:
        raise InvalidPointError(f"Field keys must be non-empty strings, got {key!r}")
    if isinstance(value, (bool, str, Integral)):
        return value
    if isinstance(value, Real):
        if not math.isfinite(value):
            raise InvalidPointError(f"Field {key!r} is not a finite number: {value!r}")
        return float(value)
    raise InvalidPointError(f"Field {key!r} has unsupported type {type(value).__name__}")


@dataclass(frozen=True)
class Point:
    """
    One time-series sample.

    Tags and fields are kept as key-sorted tuples of pairs so two points built from the same
    mappings compare equal, hash equal and encode to the same line regardless of insertion order.
    Use new_point() to build one from plain dicts.
    """

    measurement: str
    tags: Tuple[Tuple[str, str], ...]
    fields: Tuple[Tuple[str, FieldValue], ...]
    timestamp: Timestamp
    precision: str = WritePrecision.NS

    def __post_init__(self):
        if not isinstance(self.measurement, str) or not self.measurement:
            raise InvalidPointError("Point measurement must be a non-empty string")
        if not self.fields:
            raise InvalidPointError(f"Point {self.measurement!r} needs at least one field")
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, (datetime, Integral)):
            raise InvalidPointError(f"Point {self.measurement!r} has unsupported timestamp {self.timestamp!r}")
        object.__setattr__(self, "precision", normalize_precision(self.precision))

    def tag_map(self) -> dict:
        return dict(self.tags)

    def field_map(self) -> dict:
        return dict(self.fields)

    def to_influx(self) -> InfluxPoint:
        p = InfluxPoint(self.measurement)
        for k, v in self.tags:
            p.tag(k, v)
        for k, v in self.fields:
            p.field(k, v)
        p.time(self.timestamp, self.precision)
        return p

    def to_line_protocol(self) -> str:
        return self.to_influx().to_line_protocol()


def new_point(measurement: str, tags: Mapping[str, object], fields: Mapping[str, FieldValue],
              timestamp: Timestamp, precision: str = WritePrecision.NS) -> Point:
    """
    Build a Point from plain mappings.

    Tag values are coerced to str. Field values must be int, float, bool or str;
    None, NaN and infinities are rejected instead of being silently dropped on the wire.

    Raises:
        InvalidPointError: empty measurement, no fields, or an unsupported key/value.
    """
    tags = tags or {}
    fields = fields or {}
    tag_pairs = []
    for k, v in tags.items():
        if not isinstance(k, str) or not k:
            raise InvalidPointError(f"Tag keys must be non-empty strings, got {k!r}")
        if v is None:
            raise InvalidPointError(f"Tag {k!r} has no value")
        tag_pairs.append((k, str(v)))
    field_pairs = [(k, _check_field(k, v)) for k, v in fields.items()]
    return Point(
        measurement=measurement,
        tags=tuple(sorted(tag_pairs)),
        fields=tuple(sorted(field_pairs, key=lambda kv: kv[0])),
        timestamp=timestamp,
        precision=precision,
    )
