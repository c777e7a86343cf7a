"""Service layer for tagnote."""
