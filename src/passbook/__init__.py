"""passbook: turns bank and merchant alert mail into transaction candidates."""

__version__ = "0.3.0"
