"""
Code Payload Parsing
====================

Turns a decoded code payload into structured fields.

Supported payloads:
    - JSON objects, e.g. {"location": "Dover", "counterValue": 963373}
    - Changer labels: "<Location>, changer <N>, <counter> = $<amount>"

Anything else is kept as an opaque payload with no embedded counter.
Parsing never raises; a payload the decoder produced is always usable.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from counter_scan.models.readings import CodePayload


logger = logging.getLogger(__name__)


MAX_FIGURE_DIGITS = 18

_CHANGER_PATTERN = re.compile(
    r"^(?P<location>.+?),\s*changer\s+(?P<changer>\d{1,18}),\s*(?P<counter>\d{1,18})\s*=\s*\$(?P<amount>\d{1,18})$",
    re.IGNORECASE,
)

_COUNTER_KEYS = ("counterValue", "counter_value", "counter", "digitalCounter")
_AMOUNT_KEYS = ("dollarAmount", "dollar_amount", "amount")
_CHANGER_KEYS = ("changer", "changerNumber", "changer_number")


def normalize_location(location: str) -> str:
    """Lower-case location identifier."""
    return location.strip().lower()


def machine_id_for(location: str, changer: int) -> str:
    """Machine identifier, e.g. ``DOVER_CH2_HA``."""
    return f"{normalize_location(location).upper()}_CH{changer}_HA"


def _as_int(value: Any) -> Optional[int]:
    """
    Coerce JSON scalars like 963373, "963373" or "$500" to int.

    Negative numbers and figures longer than MAX_FIGURE_DIGITS are treated
    as absent.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    if isinstance(value, int):
        if value < 0 or len(str(value)) > MAX_FIGURE_DIGITS:
            return None
        return value
    if isinstance(value, str):
        if value.strip().startswith("-"):
            return None
        digits = re.sub(r"[^\d]", "", value)
        if digits and len(digits) <= MAX_FIGURE_DIGITS:
            return int(digits)
    return None


def _first(data: Dict[str, Any], keys: tuple) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _parse_json(payload: str, data: Dict[str, Any]) -> CodePayload:
    location_name = data.get("location") or data.get("locationName")
    location = normalize_location(str(location_name)) if location_name else None
    changer = _as_int(_first(data, _CHANGER_KEYS))

    machine_id = data.get("machineId") or data.get("machine_id")
    if machine_id is None and location and changer is not None:
        machine_id = machine_id_for(location, changer)

    return CodePayload(
        raw=payload,
        is_json=True,
        data=data,
        location=location,
        location_name=str(location_name).strip() if location_name else None,
        machine_id=str(machine_id) if machine_id is not None else None,
        changer=changer,
        counter_value=_as_int(_first(data, _COUNTER_KEYS)),
        amount=_as_int(_first(data, _AMOUNT_KEYS)),
    )


def parse_code_payload(payload: str) -> CodePayload:
    """
    Parse a decoded payload.

    Args:
        payload: Text exactly as the decoder returned it

    Returns:
        CodePayload; ``counter_value`` is None when the payload carries no
        counter figure.
    """
    text = payload.strip()

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        return _parse_json(payload, data)

    match = _CHANGER_PATTERN.match(text)
    if match:
        location_name = match.group("location").strip()
        changer = int(match.group("changer"))
        return CodePayload(
            raw=payload,
            location=normalize_location(location_name),
            location_name=location_name,
            machine_id=machine_id_for(location_name, changer),
            changer=changer,
            counter_value=int(match.group("counter")),
            amount=int(match.group("amount")),
        )

    logger.debug(f"Payload has no recognised structure: {text[:60]!r}")
    return CodePayload(raw=payload)
