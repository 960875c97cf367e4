"""Core types, constants, exceptions and collaborator protocols."""
