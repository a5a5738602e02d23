"""Core building blocks for neo-storage: exceptions, identifiers, protocols."""
