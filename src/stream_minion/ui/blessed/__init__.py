"""Blessed full-screen UI."""
