"""In-process lifecycle event dispatch."""
