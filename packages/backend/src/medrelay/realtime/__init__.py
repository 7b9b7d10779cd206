"""Real-time core — sessions, subscriptions, the connection pool.

Learn: Frames flow through three layers:
1. websocket.py — accepts the connection, feeds raw frames in
2. session.py   — decodes, gates on auth, dispatches in order
3. dispatch.py  — routes each request to a store-backed handler

Live queries push snapshots back through the same session, tagged with
their own event names instead of a ref.
"""
