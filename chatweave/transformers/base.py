"""
Base transformer interface for vendor exports.

Transformers validate one raw export conversation against the vendor's
source schema and turn it into normalized message records. They fail
closed: a conversation that does not validate raises DecodeError
instead of being coerced into defaults.
"""

import logging
import math
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from chatweave.core.errors import DecodeError
from chatweave.core.models import IngestionError, NormalizedRecord

logger = logging.getLogger(__name__)

# Epoch values below this are seconds, at or above it milliseconds
_MS_CUTOFF = 100_000_000_000


def to_epoch_ms(value: Any) -> Optional[int]:
    """
    Normalize a vendor timestamp to epoch milliseconds.

    Accepts epoch seconds or milliseconds (numbers or digit strings),
    ISO-8601 strings (naive ones are taken as UTC) and Mongo-style
    ``{"$date": ...}`` / ``{"$numberLong": ...}`` wrappers.

    Returns
    -------
    int or None
        Epoch ms, or None if the value is missing or unparseable
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, dict):
        for key in ("$date", "$numberLong"):
            if key in value:
                return to_epoch_ms(value[key])
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value) or value < 0:
            return None
        return int(value) if value >= _MS_CUTOFF else int(round(value * 1000))
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return to_epoch_ms(float(text))
        except ValueError:
            pass
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return None


def _now_ms() -> int:
    return int(time.time() * 1000)


class BaseTransformer(ABC):
    """
    Abstract base class for vendor transformers.

    Attributes
    ----------
    source_name : str
        Vendor tag written on every record

    Methods
    -------
    transform(raw_data, source_id)
        Decode one raw conversation into records
    transform_export(items, source_id)
        Decode a whole export, collecting per-conversation errors
    """

    schema = None

    @property
    @abstractmethod
    def source_name(self) -> str:
        """
        Vendor tag.

        Returns
        -------
        str
            One of 'chatgpt', 'claude', 'gemini', 'grok'
        """

    @abstractmethod
    def _records(self, parsed, source_id: str, raw_path: Optional[str]) -> List[NormalizedRecord]:
        """Build records from a validated conversation."""

    def _native_id(self, raw_data: Any) -> Optional[str]:
        if isinstance(raw_data, dict):
            for key in ("conversation_id", "conversationId", "uuid", "id"):
                if raw_data.get(key):
                    return str(raw_data[key])
        return None

    def _fail(self, message: str, native_id: Optional[str] = None) -> DecodeError:
        return DecodeError(self.source_name, message, native_id=native_id)

    def _record(self, **fields) -> NormalizedRecord:
        return NormalizedRecord(vendor=self.source_name, **fields)

    def transform(
        self, raw_data: Dict[str, Any], source_id: str, raw_path: Optional[str] = None
    ) -> List[NormalizedRecord]:
        """
        Decode one raw conversation.

        Parameters
        ----------
        raw_data : Dict
            One conversation object from the export
        source_id : str
            Source the records belong to
        raw_path : str, optional
            Export file path, kept on each record

        Returns
        -------
        List[NormalizedRecord]
            Records in conversation order; messages with no text are dropped

        Raises
        ------
        DecodeError
            If the object does not match the vendor schema
        """
        if not isinstance(raw_data, dict):
            raise self._fail(f"expected an object, got {type(raw_data).__name__}")
        try:
            parsed = self.schema.model_validate(raw_data)
        except ValidationError as e:
            raise self._fail(str(e), native_id=self._native_id(raw_data)) from e
        return self._records(parsed, source_id, raw_path)

    def transform_export(
        self, items: List[Any], source_id: str, raw_path: Optional[str] = None
    ) -> Tuple[List[NormalizedRecord], List[IngestionError]]:
        """
        Decode a whole export.

        A conversation that fails to decode is reported and skipped; it
        never aborts the rest of the file.

        Returns
        -------
        Tuple[List[NormalizedRecord], List[IngestionError]]
            (records, errors)
        """
        records: List[NormalizedRecord] = []
        errors: List[IngestionError] = []
        stats = {"transformed": 0, "skipped": 0, "errors": 0}

        for raw_data in items:
            try:
                converted = self.transform(raw_data, source_id, raw_path)
            except DecodeError as e:
                logger.warning("Error transforming %s/%s: %s", self.source_name, e.native_id, str(e).splitlines()[0])
                errors.append(IngestionError(source=source_id, message=str(e), timestamp=_now_ms()))
                stats["errors"] += 1
                continue
            if not converted:
                stats["skipped"] += 1
                continue
            records.extend(converted)
            stats["transformed"] += 1

        logger.info(
            "%s transform complete: %d transformed, %d skipped, %d errors",
            self.source_name,
            stats["transformed"],
            stats["skipped"],
            stats["errors"],
        )
        return records, errors
