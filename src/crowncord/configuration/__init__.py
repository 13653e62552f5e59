"""Configuration management for Crowncord (YAML application settings)."""
