"""JSON Schemas for rule tables, configuration and span documents."""
