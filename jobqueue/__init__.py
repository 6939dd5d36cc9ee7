"""
Distributed Job Queue

A persistence-backed, poll-based job queue. Independent worker processes claim
jobs through atomic conditional updates on a shared store, run them, and
reschedule failures with escalating backoff.
"""

__version__ = "1.0.0"
