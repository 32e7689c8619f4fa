"""Infrastructure: SQLite persistence, logging and process lifecycle."""
