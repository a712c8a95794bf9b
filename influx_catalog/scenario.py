# influx_catalog/scenario.py
# Write-then-read check: write N points with distinct measurements, flush, wait for them to become
# visible and compare the catalog against what was written.
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Set

from influxdb_client import WritePrecision
from loguru import logger

from influx_catalog.consistency.visibility import wait_for_measurements
from influx_catalog.errors import VisibilityTimeoutError
from influx_catalog.model.point import Point, new_point
from influx_catalog.query.catalog import MeasurementCatalog
from influx_catalog.storage.write_buffer import WriteBuffer


@dataclass
class CatalogCheck:
    expected: Set[str]
    observed: Set[str] = field(default_factory=set)

    @property
    def ok(self) -> bool:
        return self.observed == self.expected

    @property
    def missing(self) -> Set[str]:
        return self.expected - self.observed

    @property
    def unexpected(self) -> Set[str]:
        return self.observed - self.expected


def sample_points(count: int, now: Optional[datetime] = None) -> List[Point]:
    now = now or datetime.now(timezone.utc)
    return [
        new_point(f"measurement{i}", {"tag1": f"value{i}"}, {"value": i}, now, WritePrecision.MS)
        for i in range(1, count + 1)
    ]


def run_catalog_check(session, bucket: str, org: str, count: int = 5, policy=None,
                      catalog: Optional[MeasurementCatalog] = None, start="-5y", **wait_kwargs) -> CatalogCheck:
    points = sample_points(count)
    buffer = WriteBuffer(session)
    buffer.write_points(bucket, org, points)
    buffer.flush()

    catalog = catalog or MeasurementCatalog(session)
    check = CatalogCheck(expected={p.measurement for p in points})
    try:
        check.observed = wait_for_measurements(catalog, bucket, check.expected, start=start,
                                               policy=policy, **wait_kwargs)
    except VisibilityTimeoutError as exc:
        check.observed = exc.observed
    if check.ok:
        logger.info("Catalog check passed: {} measurement(s)", len(check.expected))
    else:
        logger.error("Catalog check failed: missing={} unexpected={}", sorted(check.missing), sorted(check.unexpected))
    return check
