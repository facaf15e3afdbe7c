"""Badminton session tracking backend."""
