"""Comment threads attached to stories."""
