import logging
import threading

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentsConfig(AppConfig):
    name = "payments"
    verbose_name = "M-Pesa payments"

    def ready(self):
        from .transactions import TransactionStore, TransactionSweeper

        self.store = TransactionStore()
        self.sweeper = None
        self._client = None
        self._client_lock = threading.Lock()

        interval = getattr(settings, "MPESA_SWEEP_INTERVAL", 3600)
        if interval:
            self.sweeper = TransactionSweeper(
                self.store,
                interval=interval,
                max_age=getattr(settings, "MPESA_TRANSACTION_RETENTION", 3600),
            )
            self.sweeper.start()

    def get_client(self):
        """
        Shared DarajaClient built from settings on first use, so a missing
        credential only breaks the payment endpoints, not startup.
        """
        from .services import DarajaClient

        with self._client_lock:
            if self._client is None:
                self._client = DarajaClient()
                logger.info("payments.client_ready", extra={"environment": self._client.config.environment})
            return self._client
