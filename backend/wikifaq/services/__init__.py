"""Pipeline services: fetching, generation, persistence, indexing and orchestration."""
