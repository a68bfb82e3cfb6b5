"""Infrastructure: cache backend, document store, relational/search persistence."""
