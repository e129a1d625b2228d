"""
sms — Send an SMS and await its out-of-band "sent" acknowledgment.

Sub-modules:
    sms_service        — sendMessage: preconditions, off-loop execution
    channel_selector   — which SIM subscription to send on
    outcome_waiter     — arm listener, submit, wait with timeout
    result_translator  — provider result codes → Outcome
    listener_registry  — token-scoped ack listeners
    telephony          — carrier capability, one class per environment profile
    permissions        — permission capability
    models             — data structures shared across the package
"""
