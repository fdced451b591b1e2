"""Core domain package for passbook.

Core contains normalization, extraction rules, account matching, and
deduplication logic without any mailbox, oracle, or storage-specific code,
keeping the business logic portable.
"""
