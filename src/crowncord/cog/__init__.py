"""Discord cogs: listeners and slash commands."""
