# influx_catalog/storage/write_buffer.py
# Storage module handles data persistence.
# Buffers points per (bucket, org) in memory and flushes them through the synchronous
# influxdb_client write API. Nothing touches the network until flush().
import threading
import time
from collections import OrderedDict
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from influxdb_client.client.exceptions import InfluxDBError
from loguru import logger
from urllib3.exceptions import HTTPError

from influx_catalog.errors import (
    InvalidPointError,
    OperationCancelledError,
    WriteRejectedError,
    WriteTransportError,
)
from influx_catalog.model.point import Point
from influx_catalog.session import http_status

# statuses where the payload itself is at fault; resending it unchanged cannot succeed
REJECTED_STATUSES = frozenset({400, 413, 422})

BufferKey = Tuple[str, str]


class _Batch(NamedTuple):
    bucket: str
    org: str
    precision: str
    points: List[Point]


class WriteBuffer:
    """
    In-memory batch of points keyed by (bucket, org).

    Points enqueued before flush() are part of that flush; points enqueued while it runs wait for
    the next one. A batch that fails in transport is put back in front of the buffer, a batch the
    server rejects is dropped. The buffer is meant for a single owner; the lock only keeps
    enqueue and snapshot consistent.
    """

    def __init__(self, session):
        self.session = session
        self._lock = threading.Lock()
        self._pending: "OrderedDict[BufferKey, List[Point]]" = OrderedDict()

    @property
    def pending(self) -> int:
        with self._lock:
            return sum(len(points) for points in self._pending.values())

    def __len__(self):
        return self.pending

    def write_point(self, bucket: str, org: str, point: Point):
        if not bucket or not org:
            raise InvalidPointError("bucket and org must be non-empty to buffer a point")
        if not isinstance(point, Point):
            raise InvalidPointError(f"Expected a Point, got {type(point).__name__}")
        with self._lock:
            self._pending.setdefault((bucket, org), []).append(point)

    def write_points(self, bucket: str, org: str, points: Iterable[Point]):
        for point in points:
            self.write_point(bucket, org, point)

    # -------------------- Flush -------------------- #
    def _snapshot(self) -> List[_Batch]:
        with self._lock:
            staged, self._pending = self._pending, OrderedDict()
        batches = []
        for (bucket, org), points in staged.items():
            by_precision: Dict[str, List[Point]] = OrderedDict()
            for p in points:
                by_precision.setdefault(p.precision, []).append(p)
            for precision, group in by_precision.items():
                batches.append(_Batch(bucket, org, precision, group))
        return batches

    def _requeue(self, batches: List[_Batch]):
        if not batches:
            return
        with self._lock:
            restored: "OrderedDict[BufferKey, List[Point]]" = OrderedDict()
            for batch in batches:
                restored.setdefault((batch.bucket, batch.org), []).extend(batch.points)
            for key, points in self._pending.items():
                restored.setdefault(key, []).extend(points)
            self._pending = restored
        logger.debug("Re-queued {} unsent batch(es)", len(batches))

    def _send(self, batch: _Batch):
        lines = [p.to_line_protocol() for p in batch.points]
        try:
            self.session.write_api().write(bucket=batch.bucket, org=batch.org, record=lines,
                                           write_precision=batch.precision)
        except InfluxDBError as exc:
            status = http_status(exc)
            if status in REJECTED_STATUSES:
                raise WriteRejectedError(f"Write to {batch.bucket} rejected ({status}): {exc}",
                                         status=status, lines=lines) from exc
            raise WriteTransportError(f"Write to {batch.bucket} failed ({status}): {exc}",
                                      status=status, lines=lines) from exc
        except HTTPError as exc:
            raise WriteTransportError(f"Write to {batch.bucket} failed: {exc}", lines=lines) from exc
        return len(lines)

    def flush(self, timeout: Optional[float] = None, cancel: Optional[threading.Event] = None) -> int:
        """
        Send every buffered point and block until the server accepts each request.

        Args:
            timeout: seconds; checked before each request, the HTTP timeout bounds a single request
            cancel: event that stops the flush before the next request

        Returns:
            number of points accepted
        Raises:
            WriteTransportError: network/server failure; the batch stays buffered
            WriteRejectedError: payload refused; the batch is dropped
            OperationCancelledError: deadline or cancel hit; unsent batches stay buffered
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        batches = self._snapshot()
        if not batches:
            return 0

        written = 0
        for i, batch in enumerate(batches):
            if (cancel is not None and cancel.is_set()) or (deadline is not None and time.monotonic() >= deadline):
                self._requeue(batches[i:])
                raise OperationCancelledError(
                    f"Flush stopped with {len(batches) - i} batch(es) unsent",
                    details={"written": written})
            try:
                written += self._send(batch)
            except WriteRejectedError:
                logger.warning("Dropping {} rejected point(s) for {}/{}", len(batch.points), batch.bucket, batch.org)
                self._requeue(batches[i + 1:])
                raise
            except BaseException:
                # transport failures, interrupts and unexpected errors keep the batch
                self._requeue(batches[i:])
                raise
            logger.debug("Flushed {} point(s) to {}/{} precision={}", len(batch.points), batch.bucket,
                         batch.org, batch.precision)
        logger.info("Flush complete: {} point(s) in {} request(s)", written, len(batches))
        return written
