"""world_preview_site

Backend for the marketing site: form relays plus the world-preview generator.

Primary entrypoints:
 - cli.py (Typer CLI)
 - server.py (FastAPI app: world-preview proxy, waitlist, apply)
 - controller.py (preview dialog/session controller)
 - generator.py (generation client + session caching)
 - render.py (viewer strategy dispatch)
"""

__all__ = [
    "cache",
    "controller",
    "generator",
    "render",
    "server",
]
