"""Profiles of the people stories are written about."""
