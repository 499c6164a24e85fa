"""dbschema command-line interface."""
