"""Interactive tool-calling agent CLI."""
