"""core/mixer — Pure console mixing model and virtual-group engine.

This package contains zero I/O, zero network calls, zero filesystem access.
Channel state, layout normalization, ratio bookkeeping, offset application
and reconciliation are deterministic functions of their inputs.

Console I/O lives in ingestion/console_bridge.py; layout persistence lives in
ingestion/layout_store.py.
"""
