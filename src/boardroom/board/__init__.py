"""Board meeting module -- agenda handling, meeting store, worker and live stream.

Provides the request-side pieces (agenda normalization, stream session,
incremental synchronizer, wire encoding) and the worker-side pieces (job
queue, orchestrator, persona responder) of a board meeting.
"""
