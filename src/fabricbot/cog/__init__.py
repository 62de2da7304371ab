"""py-cord cogs for fabricbot."""
