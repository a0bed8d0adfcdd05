"""
In-memory tracking of STK push transactions.

A record is created PENDING when the push is accepted, moved once to
SUCCESS or FAILED by the gateway callback, read by status polls and
dropped by the sweeper after the retention window.
"""
import dataclasses
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class TransactionStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"  # never stored, answer for absent ids

    @property
    def is_terminal(self):
        return self in (TransactionStatus.SUCCESS, TransactionStatus.FAILED)


@dataclass
class TransactionRecord:
    checkout_request_id: str
    status: TransactionStatus
    timestamp: float
    message: str = ""
    result_code: Optional[Any] = None
    amount: Optional[Any] = None
    receipt_number: Optional[str] = None
    transaction_date: Optional[Any] = None
    phone_number: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"status": self.status.value, "message": self.message}
        for name in ("amount", "receipt_number", "transaction_date", "phone_number"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


class CallbackMetadata:
    """Name -> value view over CallbackMetadata.Item, built once per callback."""

    AMOUNT = "Amount"
    RECEIPT_NUMBER = "MpesaReceiptNumber"
    TRANSACTION_DATE = "TransactionDate"
    PHONE_NUMBER = "PhoneNumber"

    def __init__(self, values: Dict[str, Any]):
        self._values = values

    @classmethod
    def from_items(cls, items: Optional[Iterable[Dict[str, Any]]]) -> "CallbackMetadata":
        values = {}
        for item in items or []:
            if isinstance(item, dict) and isinstance(item.get("Name"), str) and item["Name"]:
                values[item["Name"]] = item.get("Value")
        return cls(values)

    def get(self, name, default=None):
        return self._values.get(name, default)

    @property
    def amount(self):
        return self._values.get(self.AMOUNT)

    @property
    def receipt_number(self):
        return self._values.get(self.RECEIPT_NUMBER)

    @property
    def transaction_date(self):
        return self._values.get(self.TRANSACTION_DATE)

    @property
    def phone_number(self):
        return self._values.get(self.PHONE_NUMBER)


def is_success_code(result_code) -> bool:
    # Safaricom sends 0, but "0" and 0.0 show up from proxies and replays
    try:
        return float(str(result_code).strip()) == 0
    except ValueError:
        return False


class TransactionStore:
    def __init__(self, clock=time.time):
        self._clock = clock
        self._records: Dict[str, TransactionRecord] = {}
        self._lock = threading.Lock()
        self.callback_failures = 0

    def __len__(self):
        with self._lock:
            return len(self._records)

    def register_pending(self, checkout_request_id) -> TransactionRecord:
        with self._lock:
            record = self._records.get(checkout_request_id)
            if record is None:
                record = TransactionRecord(
                    checkout_request_id=checkout_request_id,
                    status=TransactionStatus.PENDING,
                    timestamp=self._clock(),
                )
                self._records[checkout_request_id] = record
            return dataclasses.replace(record)

    def apply_callback(self, checkout_request_id, result_code, result_desc=None, metadata_items=None) -> TransactionRecord:
        metadata = CallbackMetadata.from_items(metadata_items)
        with self._lock:
            record = self._records.get(checkout_request_id)
            if record is None:
                logger.warning(
                    "transactions.unmatched_callback",
                    extra={"checkout_request_id": checkout_request_id, "result_code": result_code},
                )
                record = TransactionRecord(
                    checkout_request_id=checkout_request_id,
                    status=TransactionStatus.PENDING,
                    timestamp=self._clock(),
                )
                self._records[checkout_request_id] = record

            if record.status.is_terminal:
                logger.info(
                    "transactions.duplicate_callback",
                    extra={"checkout_request_id": checkout_request_id, "status": record.status.value},
                )
                return dataclasses.replace(record)

            record.result_code = result_code
            record.message = result_desc or ""
            record.timestamp = self._clock()
            if is_success_code(result_code):
                record.status = TransactionStatus.SUCCESS
                record.amount = metadata.amount
                record.receipt_number = metadata.receipt_number
                record.transaction_date = metadata.transaction_date
                record.phone_number = metadata.phone_number
            else:
                record.status = TransactionStatus.FAILED
            snapshot = dataclasses.replace(record)

        logger.info(
            "transactions.completed",
            extra={"checkout_request_id": checkout_request_id, "status": snapshot.status.value},
        )
        return snapshot

    def get_status(self, checkout_request_id) -> TransactionRecord:
        with self._lock:
            record = self._records.get(checkout_request_id)
            if record is not None:
                return dataclasses.replace(record)
        return TransactionRecord(
            checkout_request_id=checkout_request_id,
            status=TransactionStatus.UNKNOWN,
            timestamp=self._clock(),
            message="Transaction not found",
        )

    def sweep(self, max_age) -> int:
        cutoff = self._clock() - max_age
        with self._lock:
            expired = [key for key, record in self._records.items() if record.timestamp < cutoff]
            for key in expired:
                del self._records[key]
        if expired:
            logger.info("transactions.swept", extra={"removed": len(expired)})
        return len(expired)

    def record_failure(self):
        with self._lock:
            self.callback_failures += 1

    def clear(self):
        with self._lock:
            self._records.clear()


class TransactionSweeper:
    """Runs ``store.sweep(max_age)`` every ``interval`` seconds on a daemon thread."""

    def __init__(self, store: TransactionStore, interval: float = 3600, max_age: float = 3600):
        self.store = store
        self.interval = interval
        self.max_age = max_age
        self._stopped = threading.Event()
        self._thread = None

    def start(self):
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, name="transaction-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        self._stopped.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self):
        while not self._stopped.wait(self.interval):
            try:
                self.store.sweep(self.max_age)
            except Exception:
                logger.exception("transactions.sweep_failed")
