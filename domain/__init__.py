"""Pure domain layer: entities, enums and rule functions. No I/O."""
