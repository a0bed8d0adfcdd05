import json

from django.core.management.base import BaseCommand, CommandError

from payments.services import DarajaClient, DarajaError


class Command(BaseCommand):
    help = "Call the M-Pesa Daraja API with the credentials from settings and print the response."

    def add_arguments(self, parser):
        sub = parser.add_subparsers(dest="action", required=True)

        sub.add_parser("token", help="Fetch an OAuth access token")

        p = sub.add_parser("stk-push", help="Lipa na M-Pesa Online payment prompt")
        p.add_argument("--phone", required=True)
        p.add_argument("--amount", type=int, required=True)
        p.add_argument("--reference", default="TEST001")
        p.add_argument("--description", default="Test Payment")

        p = sub.add_parser("stk-query", help="Status of an STK push")
        p.add_argument("checkout_request_id")

        p = sub.add_parser("b2c", help="Business to customer payment")
        p.add_argument("--phone", required=True)
        p.add_argument("--amount", type=int, required=True)
        p.add_argument("--command-id", default="BusinessPayment")
        p.add_argument("--remarks", default="B2C Payment")

        p = sub.add_parser("b2b", help="Business to business transfer")
        p.add_argument("--receiver", required=True)
        p.add_argument("--amount", type=int, required=True)
        p.add_argument("--reference", required=True)
        p.add_argument("--command-id", default="BusinessPayBill")

        p = sub.add_parser("status", help="Transaction status query")
        p.add_argument("transaction_id")

        sub.add_parser("balance", help="Account balance query")

        p = sub.add_parser("reverse", help="Reverse a transaction")
        p.add_argument("transaction_id")
        p.add_argument("--amount", type=int, required=True)

        p = sub.add_parser("register-urls", help="Register C2B confirmation/validation URLs")
        p.add_argument("--confirmation-url", required=True)
        p.add_argument("--validation-url", required=True)
        p.add_argument("--response-type", default="Completed")

        p = sub.add_parser("simulate", help="Simulate a C2B payment (sandbox)")
        p.add_argument("--phone", required=True)
        p.add_argument("--amount", type=int, required=True)
        p.add_argument("--bill-ref", default="TEST001")

    def handle(self, *args, **options):
        try:
            client = DarajaClient()
            result = self._dispatch(client, options)
        except DarajaError as e:
            raise CommandError(str(e)) from e
        self.stdout.write(json.dumps(result, indent=2))

    def _dispatch(self, client, options):
        action = options["action"]
        if action == "token":
            return {"access_token": client.acquire_credential()}
        if action == "stk-push":
            return client.push_payment(
                phone_number=options["phone"],
                amount=options["amount"],
                account_reference=options["reference"],
                transaction_desc=options["description"],
            )
        if action == "stk-query":
            return client.query_push_status(options["checkout_request_id"])
        if action == "b2c":
            return client.disburse(
                amount=options["amount"],
                phone_number=options["phone"],
                command_id=options["command_id"],
                remarks=options["remarks"],
            )
        if action == "b2b":
            return client.business_transfer(
                amount=options["amount"],
                receiver_shortcode=options["receiver"],
                account_reference=options["reference"],
                command_id=options["command_id"],
            )
        if action == "status":
            return client.query_transaction_status(options["transaction_id"])
        if action == "balance":
            return client.query_account_balance()
        if action == "reverse":
            return client.reverse_transaction(options["transaction_id"], amount=options["amount"])
        if action == "register-urls":
            return client.register_notification_urls(
                confirmation_url=options["confirmation_url"],
                validation_url=options["validation_url"],
                response_type=options["response_type"],
            )
        if action == "simulate":
            return client.merchant_simulate(
                amount=options["amount"],
                phone_number=options["phone"],
                bill_ref_number=options["bill_ref"],
            )
        raise CommandError(f"Unknown action '{action}'")
