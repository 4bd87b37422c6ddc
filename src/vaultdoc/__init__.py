"""
vaultdoc - Document-style data access for the wallet platform.

Application code talks MongoDB-style documents (filters, sort specs,
embedded arrays, aggregation pipelines); storage is the normalized
Postgres schema behind Supabase.
"""

__version__ = "1.0.0"
