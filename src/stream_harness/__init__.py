"""
Stream harness.

Provisions a Kinesis data stream, publishes synthetic records to it on a
fixed cadence and serves a liveness endpoint:
- stream_manager: create/describe/delete the stream
- publisher: record submission and draining
- scheduler: fixed-cadence publish ticks
- lifecycle: ordered startup and shutdown
"""

__version__ = "0.1.0"
