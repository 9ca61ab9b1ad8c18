"""Frame decoding and session aggregation."""

from pymyozen.ingestion.aggregator import SessionAggregator, SessionOutcome
from pymyozen.ingestion.decode import decode, decode_or_raise, decode_status, decode_status_or_raise
from pymyozen.ingestion.pipeline import IngestPipeline

__all__ = [
    "IngestPipeline",
    "SessionAggregator",
    "SessionOutcome",
    "decode",
    "decode_or_raise",
    "decode_status",
    "decode_status_or_raise",
]
