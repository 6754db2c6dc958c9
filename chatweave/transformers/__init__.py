"""
Transformers for converting vendor exports to normalized records.

One transformer per vendor; ``transform_export`` dispatches on the
vendor tag.
"""

from typing import Any, List, Optional, Tuple, Type, Union

from chatweave.core.models import IngestionError, NormalizedRecord, Vendor

from .base import BaseTransformer, to_epoch_ms
from .chatgpt import ChatGPTTransformer
from .claude import ClaudeTransformer
from .gemini import GeminiTransformer
from .grok import GrokTransformer

TRANSFORMERS: dict[Vendor, Type[BaseTransformer]] = {
    Vendor.CHATGPT: ChatGPTTransformer,
    Vendor.CLAUDE: ClaudeTransformer,
    Vendor.GEMINI: GeminiTransformer,
    Vendor.GROK: GrokTransformer,
}


def get_transformer(vendor: Union[str, Vendor]) -> BaseTransformer:
    """
    Instantiate the transformer for a vendor.

    Raises
    ------
    ValueError
        If the vendor is unknown
    """
    return TRANSFORMERS[Vendor(vendor)]()


def transform_export(
    vendor: Union[str, Vendor], items: List[Any], source_id: str, raw_path: Optional[str] = None
) -> Tuple[List[NormalizedRecord], List[IngestionError]]:
    """Decode a vendor export into records plus per-conversation errors."""
    return get_transformer(vendor).transform_export(items, source_id, raw_path=raw_path)


__all__ = [
    "BaseTransformer",
    "ChatGPTTransformer",
    "ClaudeTransformer",
    "GeminiTransformer",
    "GrokTransformer",
    "TRANSFORMERS",
    "get_transformer",
    "to_epoch_ms",
    "transform_export",
]
