# influx_catalog/query/catalog.py
# Catalog query engine: lists the distinct measurement names written to a bucket in a time range.
from typing import Iterable, Optional, Set

from influxdb_client.client.exceptions import InfluxDBError
from loguru import logger
from urllib3.exceptions import HTTPError

from influx_catalog.errors import QueryError, QueryErrorKind
from influx_catalog.query.flux import Bound, CatalogQuery, SchemaMeasurementsQuery, range_is_empty
from influx_catalog.session import http_status


def distinct_values(tables: Iterable, column: str) -> Set[str]:
    """
    Reduce Flux result tables to the set of distinct values of one column.

    Records without the column (or with a null in it) are skipped; values are normalized with str.
    """
    names = set()
    for table in tables:
        for record in table.records:
            value = record.values.get(column)
            if value is None:
                continue
            names.add(str(value))
    return names


class MeasurementCatalog:
    """
    Reads back which measurements exist in a bucket.

    The query shape is a pluggable CatalogQuery; the default asks the server for distinct
    measurement names directly instead of scanning every series.
    """

    def __init__(self, session, strategy: Optional[CatalogQuery] = None):
        self.session = session
        self.strategy = strategy or SchemaMeasurementsQuery()

    def list_measurements(self, bucket: str, start: Bound = "-5y", stop: Optional[Bound] = None) -> Set[str]:
        """
        Distinct measurement names in bucket over [start, stop).

        An empty range or a range without writes yields an empty set.

        Raises:
            QueryError(MALFORMED): bad range or a query the server refused as invalid
            QueryError(TRANSPORT): network, auth or server failure
        """
        if not bucket:
            raise QueryError("bucket must not be empty", kind=QueryErrorKind.MALFORMED)
        if range_is_empty(start, stop):
            return set()

        query = self.strategy.render(bucket, start, stop)
        logger.debug("Catalog query ({}):\n{}", self.strategy.name, query)
        try:
            tables = self.session.query_api().query(query, org=self.session.org)
        except InfluxDBError as exc:
            status = http_status(exc)
            kind = QueryErrorKind.MALFORMED if status == 400 else QueryErrorKind.TRANSPORT
            raise QueryError(f"Catalog query on {bucket} failed ({status}): {exc}", kind=kind,
                             query=query, status=status) from exc
        except HTTPError as exc:
            raise QueryError(f"Catalog query on {bucket} failed: {exc}", kind=QueryErrorKind.TRANSPORT,
                             query=query) from exc

        names = distinct_values(tables, self.strategy.column)
        logger.debug("Found {} measurement(s) in {}", len(names), bucket)
        return names
