"""Core domain types and interfaces."""
