"""Pipeline stages and the single-flight run guard."""
