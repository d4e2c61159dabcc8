"""
Utils module - Logging utilities.

Contents:
- message.py: Log class for library logging
"""
from oscport.utils.message import Log, init_logger

__all__ = [
    'Log',
    'init_logger',
]
