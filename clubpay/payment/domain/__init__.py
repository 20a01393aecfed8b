"""Domain layer: records, enums and value objects."""
