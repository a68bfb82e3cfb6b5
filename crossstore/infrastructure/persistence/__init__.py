"""SQL persistence: relational and search mirrors, SQL transactional store."""
