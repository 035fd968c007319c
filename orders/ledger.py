"""
ORDERS App - Status Ledger Codec

An order's status is persisted as a single string:

    <step_id>#<timestamp>#<json_overlay>

- step_id: order-wide lifecycle stage (see OrderStep), e.g. "2"
- timestamp: ISO-8601 moment the step was entered, kept verbatim
- json_overlay: {"<product_key>": "<item status>"} overrides per item

The overlay may itself contain '#', so only the first two separators
are significant. A damaged ledger never blocks a status update: missing
parts are synthesized and an unreadable overlay is replaced by {}.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

SEPARATOR = '#'
DEFAULT_STEP_ID = '0'


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class StatusRecord:
    """Decoded form of an order's status ledger."""
    step_id: str
    transitioned_at: str
    item_overlay: Dict[str, str] = field(default_factory=dict)

    def item_status(self, product_key: str) -> Optional[str]:
        """Status override for an item, None when it inherits the step."""
        return self.item_overlay.get(product_key)

    @property
    def transitioned_datetime(self) -> Optional[datetime]:
        try:
            return date_parser.isoparse(self.transitioned_at)
        except (ValueError, TypeError):
            return None


class StatusCodec:
    """
    Encoder/decoder for the order status ledger.

    The clock is injectable so tests can pin the synthesized timestamps.
    """

    def __init__(self, clock: Callable[[], str] = _utc_now_iso):
        self.clock = clock

    # ============================================
    # Grammar
    # ============================================

    def decode(self, raw: Optional[str]) -> StatusRecord:
        """
        Parse a ledger string.

        Args:
            raw: Stored ledger, may be None/empty or legacy data

        Returns:
            StatusRecord (never raises)
        """
        if not raw:
            return StatusRecord(DEFAULT_STEP_ID, self.clock(), {})

        parts = raw.split(SEPARATOR)
        if len(parts) < 2:
            # Legacy rows only stored the step
            return StatusRecord(raw, self.clock(), {})

        step_id, timestamp = parts[0], parts[1]
        overlay_segment = SEPARATOR.join(parts[2:])
        return StatusRecord(step_id, timestamp, self._decode_overlay(overlay_segment, raw))

    def encode(self, record: StatusRecord) -> str:
        overlay = json.dumps(record.item_overlay, ensure_ascii=False, separators=(',', ':'))
        return SEPARATOR.join([record.step_id, record.transitioned_at, overlay])

    def _decode_overlay(self, segment: str, raw: str) -> Dict[str, str]:
        if not segment:
            return {}
        try:
            overlay = json.loads(segment)
        except ValueError as e:
            logger.warning(f"[LEDGER] Corrupt item overlay, treating as empty ({e}): {raw[:80]}")
            return {}
        if not isinstance(overlay, dict):
            logger.warning(f"[LEDGER] Item overlay is not an object, treating as empty: {raw[:80]}")
            return {}
        return {str(key): str(value) for key, value in overlay.items()}

    # ============================================
    # Mutations (return the new string to persist)
    # ============================================

    def update_item_status(self, raw: Optional[str], product_key: str, new_status: str) -> str:
        """Override one item's status. Step and timestamp are left untouched."""
        record = self.decode(raw)
        overlay = dict(record.item_overlay)
        overlay[product_key] = new_status
        return self.encode(replace(record, item_overlay=overlay))

    def set_step(self, raw: Optional[str], new_step_id) -> str:
        """Enter a new order-wide step. The overlay is preserved."""
        record = self.decode(raw)
        return self.encode(replace(record, step_id=str(new_step_id), transitioned_at=self.clock()))


status_codec = StatusCodec()
