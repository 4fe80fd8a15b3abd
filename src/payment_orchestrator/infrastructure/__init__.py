"""Storage collaborators: interfaces and PostgreSQL implementations."""
