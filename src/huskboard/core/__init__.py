"""Core domain package for huskboard.

Core contains the reconciliation engine, key locking, identity tags and tier
selection without any Telegram or storage-specific code, keeping the
business logic portable.
"""
