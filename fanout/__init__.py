"""Fan-out harness.

HTTP service that replays every inbound request against a fixed list of
downstream dependencies and reports what came back:
 - verbose mode: a text report of every dependency call
 - status mode: a single synthesized status code

Each response is delayed by a configurable amount so call chains of these
harnesses can simulate a service mesh for latency and chaos testing.
"""
