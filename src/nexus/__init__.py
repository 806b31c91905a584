"""
Nexus - Company Registry Synchronization Engine

Serves company lookups and searches for a due-diligence platform by:
- Combining an authoritative local store with the national company registry
- Deciding when cached registry data can be trusted
- Merging and de-duplicating results from both sources
- Enforcing subscription-tier quotas and running isolated batch operations
"""

__version__ = "0.1.0"
