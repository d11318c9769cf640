"""SQLite storage: engine policy, SQLModel tables, and migrations."""
