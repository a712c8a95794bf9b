from datetime import datetime, timedelta, timezone

import pytest
from influxdb_client.rest import ApiException
from urllib3.exceptions import ProtocolError

from influx_catalog.errors import QueryError, QueryErrorKind
from influx_catalog.query.catalog import MeasurementCatalog, distinct_values
from influx_catalog.query.flux import (
    DistinctMeasurementQuery,
    KeysScanQuery,
    SchemaMeasurementsQuery,
    render_bound,
    strategy_for,
)
from influx_catalog.tests.fakes import table


@pytest.fixture
def catalog(session):
    return MeasurementCatalog(session)


def test_dedup_regardless_of_row_fan_out(catalog, query_api):
    names = [f"measurement{i}" for i in range(1, 6)]
    tables = [table(*[{"_value": name} for _ in range(fan_out + 1)]) for fan_out, name in enumerate(names)]
    tables.append(table({"_value": "measurement3"}, {"_value": "measurement1"}))
    query_api.results = [tables]

    assert catalog.list_measurements("opennms") == set(names)


def test_records_without_the_column_are_skipped(catalog, query_api):
    query_api.results = [[table({"_value": "cpu"}, {"result": "_result"}, {"_value": None})]]
    assert catalog.list_measurements("opennms") == {"cpu"}


def test_values_normalized_to_str():
    assert distinct_values([table({"_value": 1}, {"_value": "1"})], "_value") == {"1"}


def test_empty_result_is_empty_set(catalog, query_api):
    query_api.results = [[]]
    assert catalog.list_measurements("opennms", start="-1h") == set()


def test_zero_width_range_skips_the_query(catalog, query_api):
    t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    assert catalog.list_measurements("opennms", start=t, stop=t) == set()
    assert query_api.queries == []


def test_query_scoped_to_org_and_bucket(catalog, query_api):
    catalog.list_measurements("opennms")
    sent = query_api.queries[0]
    assert sent.org == "opennms"
    assert 'schema.measurements(bucket: "opennms", start: -5y, stop: now())' in sent.query


def test_keys_scan_reads_measurement_column(session, query_api):
    query_api.results = [[table({"_measurement": "m1", "_value": "_field"}, {"_measurement": "m1", "_value": "tag1"},
                                {"_measurement": "m2", "_value": "_field"})]]
    catalog = MeasurementCatalog(session, KeysScanQuery())
    assert catalog.list_measurements("opennms") == {"m1", "m2"}
    assert query_api.queries[0].query.endswith("|> keys()")


def test_start_after_stop_is_malformed(catalog, query_api):
    t = datetime(2024, 1, 1, tzinfo=timezone.utc)
    with pytest.raises(QueryError) as err:
        catalog.list_measurements("opennms", start=t, stop=t - timedelta(days=1))
    assert err.value.kind is QueryErrorKind.MALFORMED
    assert query_api.queries == []


def test_unparseable_bound_is_malformed(catalog):
    with pytest.raises(QueryError) as err:
        catalog.list_measurements("opennms", start="last week")
    assert err.value.kind is QueryErrorKind.MALFORMED
    assert not err.value.retryable


def test_bad_request_is_malformed(catalog, query_api):
    query_api.results = [ApiException(status=400, reason="compilation failed")]
    with pytest.raises(QueryError) as err:
        catalog.list_measurements("opennms")
    assert err.value.kind is QueryErrorKind.MALFORMED
    assert err.value.query is not None


@pytest.mark.parametrize("error", [ApiException(status=401, reason="unauthorized"), ProtocolError("reset")])
def test_transport_failures(catalog, query_api, error):
    query_api.results = [error]
    with pytest.raises(QueryError) as err:
        catalog.list_measurements("opennms")
    assert err.value.kind is QueryErrorKind.TRANSPORT
    assert err.value.retryable


def test_bucket_name_is_escaped():
    q = DistinctMeasurementQuery().render('we"ird', "-1h")
    assert 'from(bucket: "we\\"ird")' in q
    assert 'distinct(column: "_measurement")' in q


def test_render_bounds():
    assert render_bound(datetime(2024, 1, 1)) == "2024-01-01T00:00:00.000000Z"
    assert render_bound(timedelta(minutes=-5)) == "-300000ms"
    assert render_bound("-5y") == "-5y"
    assert render_bound("now()") == "now()"


def test_strategy_lookup():
    assert isinstance(strategy_for("schema"), SchemaMeasurementsQuery)
    assert strategy_for("keys").column == "_measurement"
    with pytest.raises(ValueError):
        strategy_for("everything")
