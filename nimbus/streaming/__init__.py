"""Streaming relay and reassembly.

Encoder and transport run on the server; decoder and reassembler run on
the client. Both sides speak ``data: <json>\\n\\n`` records.
"""

from nimbus.streaming.decoder import FrameDecoder
from nimbus.streaming.encoder import encode_chunk, encode_done, encode_frame
from nimbus.streaming.reassembler import Reassembler
from nimbus.streaming.transport import (
    EVENT_STREAM_HEADERS,
    FragmentRelay,
    StreamAbortedError,
    StreamClosedError,
    StreamTransport,
)

__all__ = [
    "EVENT_STREAM_HEADERS",
    "FragmentRelay",
    "FrameDecoder",
    "Reassembler",
    "StreamAbortedError",
    "StreamClosedError",
    "StreamTransport",
    "encode_chunk",
    "encode_done",
    "encode_frame",
]
