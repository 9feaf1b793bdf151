"""Infrastructure layer: database connectivity, session storage, jobs and observability."""
