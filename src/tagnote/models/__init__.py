"""Data models for tagnote."""
