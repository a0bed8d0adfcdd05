from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Safaricom retries delivery unless it gets exactly this back.
ACKNOWLEDGEMENT = {"ResultCode": 0, "ResultDesc": "Success"}


@dataclass
class StkCallback:
    checkout_request_id: str
    result_code: Any
    result_desc: Optional[str] = None
    merchant_request_id: Optional[str] = None
    items: List[Dict[str, Any]] = field(default_factory=list)


def parse_stk_callback(payload) -> StkCallback:
    """
    Pull the interesting parts out of a Lipa na M-Pesa Online callback:

        {"Body": {"stkCallback": {"MerchantRequestID": ..., "CheckoutRequestID": ...,
                                  "ResultCode": 0, "ResultDesc": ...,
                                  "CallbackMetadata": {"Item": [{"Name": ..., "Value": ...}]}}}}

    Raises ValueError when the body does not have that shape.
    """
    if not isinstance(payload, dict):
        raise ValueError("callback body is not a JSON object")
    stk = (payload.get("Body") or {}).get("stkCallback")
    if not isinstance(stk, dict):
        raise ValueError("callback body has no Body.stkCallback")

    checkout_id = stk.get("CheckoutRequestID")
    if not checkout_id:
        raise ValueError("stkCallback has no CheckoutRequestID")
    if "ResultCode" not in stk:
        raise ValueError("stkCallback has no ResultCode")

    items = (stk.get("CallbackMetadata") or {}).get("Item") or []
    if not isinstance(items, list):
        raise ValueError("CallbackMetadata.Item is not a list")

    return StkCallback(
        checkout_request_id=str(checkout_id),
        result_code=stk["ResultCode"],
        result_desc=stk.get("ResultDesc"),
        merchant_request_id=stk.get("MerchantRequestID"),
        items=items,
    )
