"""Core domain package for eventwatch.

Core contains window matching, deduplication, trigger bookkeeping, and the
dispatch engine without any calendar, storage, or Telegram-specific code,
keeping the business logic portable.
"""
