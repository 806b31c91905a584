"""
HTTP API for Nexus.
"""
