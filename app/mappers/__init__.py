"""
app/mappers package marker.
"""

from app.mappers.fact_mapper import NO_DATA, MappedAmount, NoData, map_audit_opinion, map_facts

__all__ = [
    "NO_DATA",
    "MappedAmount",
    "NoData",
    "map_audit_opinion",
    "map_facts",
]
