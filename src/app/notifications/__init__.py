"""Outbound notifications -- email adapters, templates and best-effort dispatch.

Delivery is never allowed to undo the state change that triggered it: the
dispatcher catches and logs every failure and reports per-recipient
NotificationResult values for the API to surface next to the entity.
"""
