from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
import json

# Wire format shared with every shipped app version; do not rename keys.
QR_TYPE = "FLUZIO_CHECK_IN"

MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"
WRONG_PAYLOAD_TYPE = "WRONG_PAYLOAD_TYPE"

class QRPayloadError(ValueError):
    def __init__(self, reason: str, detail: str):
        super().__init__(detail)
        self.reason = reason
        self.detail = detail

@dataclass(frozen=True)
class QRPayload:
    business_id: str
    business_name: str
    issued_at_ms: int | None = None

def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)

def encode_payload(business_id: str, business_name: str, issued_at_ms: int | None = None) -> str:
    """Plain JSON, not signed. Anyone who knows the business id can build one."""
    return json.dumps(
        {
            "type": QR_TYPE,
            "businessId": business_id,
            "businessName": business_name,
            "timestamp": issued_at_ms if issued_at_ms is not None else _now_ms(),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )

def decode_payload(text: str) -> QRPayload:
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError):
        raise QRPayloadError(MALFORMED_PAYLOAD, "QR payload is not valid JSON")
    if not isinstance(data, dict):
        raise QRPayloadError(MALFORMED_PAYLOAD, "QR payload is not an object")
    if data.get("type") != QR_TYPE:
        raise QRPayloadError(WRONG_PAYLOAD_TYPE, "Not a check-in code")

    business_id = data.get("businessId")
    if not isinstance(business_id, str) or not business_id:
        raise QRPayloadError(MALFORMED_PAYLOAD, "missing field: businessId")
    business_name = data.get("businessName", "")
    if not isinstance(business_name, str):
        raise QRPayloadError(MALFORMED_PAYLOAD, "invalid field: businessName")

    # informational only; no expiry is enforced on this value
    ts = data.get("timestamp")
    issued_at_ms = ts if isinstance(ts, int) and not isinstance(ts, bool) else None
    return QRPayload(business_id=business_id, business_name=business_name, issued_at_ms=issued_at_ms)

def render_png(payload: str) -> bytes:
    import qrcode
    img = qrcode.make(payload)
    b = BytesIO(); img.save(b, format="PNG")
    return b.getvalue()
