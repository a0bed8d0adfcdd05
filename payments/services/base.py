from abc import ABC, abstractmethod


class PaymentProvider(ABC):
    @abstractmethod
    def push_payment(self, phone_number, amount, account_reference, transaction_desc):
        """Prompt the customer to pay; returns the provider's acceptance body."""
        raise NotImplementedError

    @abstractmethod
    def query_push_status(self, checkout_request_id):
        raise NotImplementedError
