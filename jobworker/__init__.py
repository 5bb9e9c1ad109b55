"""
Accounting Job Workers

Asynchronous queue workers for the accounting back office: pull typed jobs from
named queues, dispatch them to pluggable processors, settle them with
at-least-once ack/nack semantics, and keep the worker pool alive.
"""

__version__ = "1.0.0"
