"""Typer CLI for serving the site and previewing gallery worlds."""
import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx
import typer

from . import cache
from .config import Settings, load_gallery
from .controller import PreviewController, ViewerState
from .generator import GenerationClient
from .page import DownloadLink, PreviewDialog, StatusBoard
from .render import RendererDispatcher, default_strategies
from .scene import HttpTextureLoader
from .viewer import ViewerMount, render_page

app = typer.Typer(add_completion=False)


@app.callback()
def main_options(log_level: str = typer.Option("WARNING", help="Logging level.")):
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _http_client(base_url: str) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(600.0, connect=10.0), follow_redirects=True)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: Optional[int] = typer.Option(None, help="Port (defaults to $PORT or 3000)."),
    static_dir: Optional[str] = typer.Option(None, help="Directory of static site files to serve at /."),
    env_file: Optional[str] = typer.Option(None, help="Path to a .env file."),
):
    """Run the site server (world-preview proxy, waitlist and apply endpoints)."""
    import uvicorn
    from .server import create_app

    settings = Settings.from_env(env_file)
    if static_dir:
        settings.static_dir = static_dir
    app_ = create_app(settings)
    bind_port = port or settings.port
    typer.echo(f"Server listening on http://{host}:{bind_port}")
    uvicorn.run(app_, host=host, port=bind_port)


@app.command("cache-key")
def cache_key(image_url: str, labels_fg1: str = "", labels_fg2: str = "", classes: str = ""):
    """Print the session cache key for a generation request."""
    key = cache.derive_key([image_url, labels_fg1, labels_fg2, classes])
    typer.echo(cache.storage_key(key))


async def _preview(item, gallery, base_url, store, force, width, height):
    async with _http_client(base_url) as http:
        status = StatusBoard()
        mount = ViewerMount(width=width, height=height)
        dialog = PreviewDialog()
        download = DownloadLink()
        controller = PreviewController(
            client=GenerationClient(http, store, status=status),
            dispatcher=RendererDispatcher(default_strategies(HttpTextureLoader(http))),
            dialog=dialog,
            mount=mount,
            status=status,
            download=download,
            gallery=gallery,
        )
        if force:
            dialog.title = item.title
            dialog.show_modal()
            state = await controller.regenerate()
        else:
            state = await controller.open_item(item)
        html = render_page(mount, dialog.title, status.status_line, download.href)
        strategy = controller.session.strategy if controller.session else None
        controller.close()
        return state, strategy, status, download, html


@app.command()
def preview(
    title: str = typer.Argument(..., help="Caption of the gallery item to preview."),
    gallery_file: str = typer.Option("config/gallery.yaml", "--gallery", help="Gallery YAML."),
    base_url: str = typer.Option("http://127.0.0.1:3000", help="Site server base URL."),
    session: str = typer.Option("default", help="Session name; previews in one session share a cache."),
    force: bool = typer.Option(False, help="Regenerate even if cached."),
    out: Optional[str] = typer.Option(None, help="Write the mounted view as an HTML page."),
    width: int = typer.Option(960, help="Viewer width in px."),
    height: int = typer.Option(540, help="Viewer height in px."),
):
    """Generate (or load from the session cache) the world for one gallery item."""
    gallery = load_gallery(Path(gallery_file))
    item = next((i for i in gallery if i.title == title.strip()), None)
    if item is None:
        typer.echo(f"No gallery item titled {title!r}", err=True)
        raise typer.Exit(code=2)

    store = cache.FileSessionStore(cache.default_session_dir(session))
    state, strategy, status, download, html = asyncio.run(
        _preview(item, gallery, base_url, store, force, width, height)
    )
    typer.echo(f"Status: {status.status_line}")
    for line in status.log_lines:
        typer.echo(f"  {line}")
    if state != ViewerState.DISPLAYING:
        raise typer.Exit(code=1)
    typer.echo(f"Viewer: {strategy or 'none'}")
    typer.echo(f"Download: {download.href}")
    if out:
        Path(out).parent.mkdir(parents=True, exist_ok=True)
        Path(out).write_text(html, encoding="utf-8")
        typer.echo(f"Wrote {out}")


def main():  # pragma: no cover
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
