"""Server capability registry.

Composition:
    - `capability_registry`: registrations, lookup indices, ranking, metrics.
    - `fuzzy_index`: trigram fallback search over capability terms.
    - `health`: periodic staleness sweep.
    - `catalog`: default property-management servers.
"""
