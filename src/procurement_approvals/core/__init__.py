"""Core configuration and infrastructure setup."""
