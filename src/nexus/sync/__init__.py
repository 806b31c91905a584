"""
Synchronization between the cache store and the company registry.
"""
