"""Domain layer: enums, errors, canonical models and interfaces."""
