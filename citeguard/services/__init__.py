"""Worker, worker pool, job tracker and LLM services."""
