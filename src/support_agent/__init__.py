"""Support agent with response verification.

This package wraps a Claude-backed conversational support agent for a
mental health practice. Every reply the model writes goes through the
verification pipeline (``support_agent.verification``) before the user
sees it.
"""
