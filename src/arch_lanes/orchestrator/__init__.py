"""Job queue for ad-hoc model invocations.

Jobs live in one SQLite table. Workers claim with a conditional UPDATE guarded
by ``status = 'queued'``; every later write is guarded by ``status =
'processing'`` and the claim token handed out at claim time. A worker that
lost its claim to healing therefore cannot overwrite the new owner's result.
"""
