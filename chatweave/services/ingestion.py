"""
Ingestion service.

Takes normalized message records (from the vendor transformers or any
external parser) and writes them to the store with dedup-safe
semantics. Re-ingesting the same records is a no-op; a superset export
only adds what is new.
"""

import json
import logging
import time
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from pydantic import ValidationError

from chatweave.core import ids
from chatweave.core.db import Database
from chatweave.core.errors import DecodeError
from chatweave.core.models import IngestionError, IngestionResult, NormalizedRecord, Vendor
from chatweave.transformers import transform_export

logger = logging.getLogger(__name__)

RecordInput = Union[NormalizedRecord, Dict[str, Any]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _record_source(raw: Any, fallback: Optional[str]) -> str:
    if isinstance(raw, dict):
        return str(raw.get("sourceId") or raw.get("source_id") or fallback or "unknown")
    return fallback or "unknown"


class IngestionService:
    """
    Writes normalized records into the store.

    The service never calls save(); the caller brackets a batch with a
    single save() on the database.
    """

    def __init__(self, db: Database):
        """
        Initialize ingestion service.

        Parameters
        ----------
        db : Database
            Open store
        """
        self.db = db

    def _validate(
        self, records: Iterable[RecordInput], source_id: Optional[str], errors: List[IngestionError]
    ) -> List[NormalizedRecord]:
        valid = []
        for raw in records:
            if isinstance(raw, NormalizedRecord):
                valid.append(raw)
                continue
            try:
                data = dict(raw)
                if source_id and not (data.get("sourceId") or data.get("source_id")):
                    data["sourceId"] = source_id
                valid.append(NormalizedRecord.model_validate(data))
            except (ValidationError, TypeError, ValueError) as e:
                message = str(e)
                logger.warning("Skipping malformed record: %s", message.splitlines()[0])
                errors.append(
                    IngestionError(
                        source=_record_source(raw, source_id), message=message, timestamp=_now_ms()
                    )
                )
        return valid

    def _ensure_source(self, record: NormalizedRecord) -> None:
        if self.db.get_source(record.source_id) is None:
            self.db.add_source(
                record.vendor.value, record.raw_path or "", source_id=record.source_id
            )

    def ingest(
        self, records: Iterable[RecordInput], source_id: Optional[str] = None
    ) -> IngestionResult:
        """
        Ingest a batch of normalized records.

        Malformed records are skipped and reported; the rest are grouped
        into conversations by their stable conversation id.

        Parameters
        ----------
        records : Iterable[NormalizedRecord or dict]
            Records in the normalized shape (camelCase or snake_case keys)
        source_id : str, optional
            Source ID for records that don't carry one

        Returns
        -------
        IngestionResult
            Counts of conversations and messages plus per-record errors
        """
        result = IngestionResult()
        records = list(records)
        result.records = len(records)

        valid = self._validate(records, source_id, result.errors)

        groups: "OrderedDict[Tuple[str, str, Optional[str]], List[NormalizedRecord]]" = OrderedDict()
        for record in valid:
            stable = ids.conversation_id(
                record.vendor.value, record.conversation_id or "", record.title
            )
            # id-less conversations only share a title within one file
            scope = None if record.conversation_id else record.raw_path
            groups.setdefault((record.source_id, stable, scope), []).append(record)

        for (src, stable, _), group in groups.items():
            self._ingest_conversation(src, stable, group, result)

        logger.info(
            "Ingested %d records: %d conversations (%d new), %d messages inserted, %d skipped, "
            "%d likely duplicates, %d errors",
            result.records,
            result.conversations,
            result.conversations_created,
            result.messages_inserted,
            result.messages_skipped,
            result.likely_duplicates,
            len(result.errors),
        )
        return result

    @staticmethod
    def _count_likely_duplicates(ordered: List[NormalizedRecord]) -> int:
        """Adjacent near-identical messages (resends, regenerations); all are kept."""
        count = 0
        for prev, record in zip(ordered, ordered[1:]):
            if ids.is_likely_duplicate(
                prev.role.value,
                prev.created_at,
                prev.text,
                record.role.value,
                record.created_at,
                record.text,
            ):
                logger.debug(
                    "Likely duplicate in conversation %s at %d",
                    record.conversation_id or record.title,
                    record.created_at,
                )
                count += 1
        return count

    def _ingest_conversation(
        self,
        source_id: str,
        stable_id: str,
        group: List[NormalizedRecord],
        result: IngestionResult,
    ) -> None:
        first = group[0]
        self._ensure_source(first)

        ordered = sorted(group, key=lambda r: r.created_at)
        result.likely_duplicates += self._count_likely_duplicates(ordered)
        content_hash = ids.content_hash((r.role.value, r.text) for r in ordered)

        before = self.db.count_conversations()
        conv_id = self.db.insert_conversation(
            {
                "source_id": source_id,
                "ext_id": first.conversation_id,
                "stable_id": stable_id,
                "title": first.title,
                "started_at": ordered[0].created_at,
                "updated_at": ordered[-1].created_at,
                "raw_path": first.raw_path,
                "content_hash": content_hash,
            }
        )
        if conv_id is None:
            result.errors.append(
                IngestionError(
                    source=source_id,
                    message=f"Could not store conversation {first.conversation_id or stable_id}",
                    timestamp=_now_ms(),
                )
            )
            return

        result.conversations += 1
        if self.db.count_conversations() > before:
            result.conversations_created += 1

        new_ts = []
        for record in ordered:
            msg_stable = ids.message_id(
                record.vendor.value,
                stable_id,
                record.role.value,
                record.created_at,
                record.text,
                record.tool_name,
            )
            row_id = self.db.insert_message(
                conv_id,
                record.role.value,
                record.created_at,
                record.text,
                tool_json=record.tool_json,
                stable_id=msg_stable,
            )
            if row_id is None:
                result.messages_skipped += 1
            else:
                result.messages_inserted += 1
                new_ts.append(record.created_at)

        if new_ts:
            self.db.touch_conversation(conv_id, min(new_ts))
            self.db.touch_conversation(conv_id, max(new_ts))

    def ingest_file(
        self,
        path: Union[str, Path],
        vendor: str,
        label: Optional[str] = None,
    ) -> IngestionResult:
        """
        Decode a vendor export file and ingest it.

        The file is registered as a source (id derived from vendor and
        path). Conversations that fail to decode are reported as errors.

        Parameters
        ----------
        path : str or Path
            Export JSON file (a list of conversations, or one conversation)
        vendor : str
            Vendor tag
        label : str, optional
            Display label for the source

        Returns
        -------
        IngestionResult
            Combined decode and ingestion outcome

        Raises
        ------
        DecodeError
            If the file cannot be read or is not JSON.
        """
        vendor = Vendor(vendor).value
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DecodeError(vendor, f"Failed to read/parse {path}: {e}") from e

        items = payload if isinstance(payload, list) else [payload]
        source_id = self.db.add_source(vendor, str(path.resolve()), label=label)

        records, decode_errors = transform_export(vendor, items, source_id, raw_path=str(path))
        result = self.ingest(records, source_id=source_id)
        result.errors = decode_errors + result.errors
        return result
