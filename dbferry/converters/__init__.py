"""Type classification, dialect profiles and SQL generation."""
