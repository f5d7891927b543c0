"""Meetings module -- data models, repository, lifecycle, and call provisioning.

Provides the meeting data layer, the status state machine driven by the
call platform's webhook, the call-provisioning outbox with its background
reconciler, and transcript retrieval.
"""
