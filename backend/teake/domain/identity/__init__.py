"""User accounts and the verification workflow."""
