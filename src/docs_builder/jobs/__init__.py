"""Docs build job queue: trigger, worker, and poll protocol.

Jobs live in a SQLite-backed queue. A trigger either answers immediately
(docs already fresh) or enqueues one job per package version; a worker claims
one job at a time, runs the docs build and records the outcome; callers poll
the job id until it reaches a terminal status.

Failures never travel as raw exceptions. The worker turns them into a
``FailureEnvelope`` (code, message, stack, extra) stored on the job, and the
poll endpoint hands that envelope back to the client, which maps it to a
caller-facing message.
"""
