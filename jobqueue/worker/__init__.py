"""
Worker process: payload registry and the polling worker loop.
"""
