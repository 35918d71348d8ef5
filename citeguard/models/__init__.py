"""Domain models for documents, verdicts and jobs."""
