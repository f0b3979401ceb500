# src/discord_auth/__main__.py

from .main import run

run()
