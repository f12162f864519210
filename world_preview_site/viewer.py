"""Viewer container, view nodes and frame scheduling.

``ViewerMount`` is the element views are mounted into. Nodes render to HTML
through jinja2 so a mounted view can be written out for a browser.
"""
from __future__ import annotations

import asyncio
import itertools
import json
import time
from typing import Callable, Dict, List, Optional

from jinja2 import Template


MODEL_VIEWER_SCRIPT = "https://esm.run/@google/model-viewer@^4/dist/model-viewer.min.js"
THREE_MODULE = "https://esm.run/three@0.160.0"
ORBIT_CONTROLS_MODULE = "https://esm.run/three@0.160.0/examples/jsm/controls/OrbitControls.js"

MODEL_VIEWER_TEMPLATE = """<script type="module" src="{{ script }}"></script>
<model-viewer src="{{ src }}"{% for name, value in attributes.items() %} {{ name }}{% if value %}="{{ value }}"{% endif %}{% endfor %}></model-viewer>"""

NOTICE_TEMPLATE = """<p class="{{ css_class }}">{{ text }}</p>"""

PANORAMA_TEMPLATE = """<canvas id="{{ node_id }}" class="panorama-surface" width="{{ width }}" height="{{ height }}"></canvas>
<script type="application/json" id="{{ node_id }}-config">{{ config }}</script>
<script type="module">
import * as THREE from "{{ three }}";
import { OrbitControls } from "{{ orbit }}";
const canvas = document.getElementById("{{ node_id }}");
const cfg = JSON.parse(document.getElementById("{{ node_id }}-config").textContent);
const renderer = new THREE.WebGLRenderer({ canvas, antialias: cfg.antialias });
renderer.setSize(cfg.width, cfg.height);
const scene = new THREE.Scene();
const camera = new THREE.PerspectiveCamera(cfg.camera.fov, cfg.camera.aspect, cfg.camera.near, cfg.camera.far);
camera.position.set(...cfg.camera.position);
const controls = new OrbitControls(camera, renderer.domElement);
controls.enableZoom = cfg.controls.enable_zoom;
const texture = await new THREE.TextureLoader().loadAsync(cfg.texture);
texture.mapping = THREE.EquirectangularReflectionMapping;
const geometry = new THREE.SphereGeometry(cfg.sphere.radius, cfg.sphere.width_segments, cfg.sphere.height_segments);
geometry.scale(...cfg.sphere.scale);
scene.add(new THREE.Mesh(geometry, new THREE.MeshBasicMaterial({ map: texture })));
(function animate() { requestAnimationFrame(animate); controls.update(); renderer.render(scene, camera); })();
</script>"""


class ViewNode:
    kind = "node"

    def render(self) -> str:
        raise NotImplementedError


class ModelViewerNode(ViewNode):
    kind = "model-viewer"

    def __init__(self, src: str, attributes: Optional[Dict[str, str]] = None):
        self.src = src
        self.attributes = dict(attributes or {})

    def render(self) -> str:
        return Template(MODEL_VIEWER_TEMPLATE, autoescape=True).render(
            script=MODEL_VIEWER_SCRIPT, src=self.src, attributes=self.attributes
        )


class NoticeNode(ViewNode):
    kind = "notice"

    def __init__(self, text: str, css_class: str = "text-subtle"):
        self.text = text
        self.css_class = css_class

    def render(self) -> str:
        return Template(NOTICE_TEMPLATE, autoescape=True).render(text=self.text, css_class=self.css_class)


class PanoramaNode(ViewNode):
    """Canvas for a panorama view; ``describe`` supplies the scene config."""
    kind = "panorama"
    _ids = itertools.count(1)

    def __init__(self, surface, describe: Callable[[], dict]):
        self.node_id = f"panorama-{next(PanoramaNode._ids)}"
        self.surface = surface
        self._describe = describe

    def config(self) -> dict:
        return self._describe()

    def render(self) -> str:
        cfg = self.config()
        return Template(PANORAMA_TEMPLATE, autoescape=False).render(
            node_id=self.node_id,
            width=int(self.surface.width),
            height=int(self.surface.height),
            config=json.dumps(cfg).replace("</", "<\\/"),
            three=THREE_MODULE,
            orbit=ORBIT_CONTROLS_MODULE,
        )


class ViewerMount:
    """Container element for the preview view.

    Resize observers are called with no arguments whenever ``resize`` is
    called by the host; ``observe_resize`` returns the matching unobserve.
    """

    def __init__(self, width: float = 960, height: float = 540):
        self.client_width = width
        self.client_height = height
        self.children: List[ViewNode] = []
        self._observers: Dict[int, Callable[[], None]] = {}
        self._ids = itertools.count(1)

    def replace_children(self, *nodes: ViewNode) -> None:
        self.children = list(nodes)

    def append(self, node: ViewNode) -> None:
        self.children.append(node)

    def observe_resize(self, callback: Callable[[], None]) -> Callable[[], None]:
        oid = next(self._ids)
        self._observers[oid] = callback

        def unobserve() -> None:
            self._observers.pop(oid, None)

        return unobserve

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def resize(self, width: float, height: float) -> None:
        self.client_width = width
        self.client_height = height
        for callback in list(self._observers.values()):
            callback()

    def render_html(self) -> str:
        return "\n".join(child.render() for child in self.children)


class AsyncioFrameScheduler:
    """requestAnimationFrame-style scheduling on the running event loop."""

    def __init__(self, fps: float = 60.0, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.interval = 1.0 / fps
        self._loop = loop
        self._handles: Dict[int, asyncio.TimerHandle] = {}
        self._ids = itertools.count(1)

    def request_frame(self, callback: Callable[[float], None]) -> int:
        loop = self._loop or asyncio.get_running_loop()
        fid = next(self._ids)

        def fire() -> None:
            self._handles.pop(fid, None)
            callback(time.monotonic() * 1000.0)

        self._handles[fid] = loop.call_later(self.interval, fire)
        return fid

    def cancel_frame(self, fid: int) -> None:
        handle = self._handles.pop(fid, None)
        if handle is not None:
            handle.cancel()

    @property
    def pending(self) -> int:
        return len(self._handles)


class RenderLoop:
    """Per-frame loop that reschedules itself until stopped."""

    def __init__(self, scheduler, tick: Callable[[], None]):
        self.scheduler = scheduler
        self.tick = tick
        self.running = False
        self.frames = 0
        self._pending: Optional[int] = None

    def start(self) -> None:
        if self.running:
            return
        self.running = True
        self._pending = self.scheduler.request_frame(self._frame)

    def _frame(self, _timestamp: float) -> None:
        self._pending = None
        if not self.running:
            return
        self._pending = self.scheduler.request_frame(self._frame)
        self.frames += 1
        self.tick()

    def stop(self) -> None:
        self.running = False
        if self._pending is not None:
            self.scheduler.cancel_frame(self._pending)
            self._pending = None


PAGE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8" />
<title>{{ title }}</title>
<style>
body { margin:0; background:#0b0b0b; color:#eee; font-family: system-ui, sans-serif; }
#viewerMount { width: {{ width }}px; height: {{ height }}px; }
.text-subtle { color:#999; padding:1rem; }
</style>
</head>
<body>
<h1>{{ title }}</h1>
<p id="statusLine">{{ status }}</p>
<div id="viewerMount">
{{ body|safe }}
</div>
{% if download and download != '#' %}<p><a id="downloadWorld" href="{{ download }}">Open / Download</a></p>{% endif %}
</body>
</html>
"""


def render_page(mount: ViewerMount, title: str, status: str = "", download: str = "#") -> str:
    """Standalone HTML document for whatever is mounted in ``mount``."""
    return Template(PAGE_TEMPLATE, autoescape=True).render(
        title=title,
        status=status,
        download=download,
        width=int(mount.client_width),
        height=int(mount.client_height),
        body=mount.render_html(),
    )
