"""
genetic_search: generational genetic search with pluggable strategies

Evolves populations of user-defined genomes, caches expensive phenotype
evaluations, and can hand evaluation out to process pools or queue workers.
"""

__version__ = "0.1.0"
