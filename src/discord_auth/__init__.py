# src/discord_auth/__init__.py
