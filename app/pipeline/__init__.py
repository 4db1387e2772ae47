"""Pure pipeline logic: models, checks, scoring rules and the stage Manager."""
