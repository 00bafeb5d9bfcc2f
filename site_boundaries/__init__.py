"""Site Boundary Persistence Core.

Resilience and consistency layer for drawing, uploading and persisting
geographic boundary polygons of physical sites: a circuit-breaking fetch
client, a TTL-bound boundary-existence cache and a create/patch/conflict
save protocol that keeps one boundary per site and year.
"""

__version__ = "0.1.0"
