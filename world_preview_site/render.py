"""Viewer strategy dispatch for generated world files.

Strategies are tried in order; the first whose predicate accepts the world
file is mounted into the container. Every mount returns a ``MountHandle``
whose ``dispose`` stops whatever the view left running (render loop, resize
observer). The dispatcher disposes the previous handle of a container before
mounting into it again.
"""
from __future__ import annotations

import logging
import re
import weakref
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from .scene import (
    EQUIRECTANGULAR,
    Mesh,
    MeshBasicMaterial,
    OrbitControls,
    PerspectiveCamera,
    Scene,
    SphereGeometry,
    Surface,
)
from .schema import WorldFile
from .viewer import AsyncioFrameScheduler, ModelViewerNode, NoticeNode, PanoramaNode, RenderLoop, ViewerMount

logger = logging.getLogger(__name__)

STATUS_NO_FILE = "No world file returned."
STATUS_MODEL = "3D model loaded. Drag to orbit."
STATUS_PANORAMA = "Panorama loaded. Drag to look around."
STATUS_FALLBACK = "File ready."
FALLBACK_NOTICE = "Preview not supported in-browser. Use Open / Download to view."

MODEL_EXTENSIONS = {"glb", "gltf"}
IMAGE_EXTENSIONS = {"png", "jpg", "jpeg", "webp", "avif"}

PANORAMA_FOV = 60
PANORAMA_NEAR = 0.1
PANORAMA_FAR = 1000
PANORAMA_CAMERA_POSITION = (0.0, 0.0, 0.1)
SPHERE_RADIUS = 50
SPHERE_SEGMENTS = 64


def url_extension(url: str) -> str:
    path = re.split(r"[?#]", url or "", maxsplit=1)[0]
    return path.rsplit(".", 1)[-1].lower() if path else ""


def is_model(world_file: WorldFile) -> bool:
    ctype = (world_file.content_type or "").lower()
    return "model/gltf" in ctype or url_extension(world_file.url) in MODEL_EXTENSIONS


def is_image(world_file: WorldFile) -> bool:
    ctype = (world_file.content_type or "").lower()
    return ctype.startswith("image/") or url_extension(world_file.url) in IMAGE_EXTENSIONS


def _always(_world_file: WorldFile) -> bool:
    return True


class MountHandle:
    """Teardown for one mounted view. ``dispose`` may be called repeatedly."""

    def __init__(self, dispose: Optional[Callable[[], None]] = None, view=None):
        self._dispose = dispose
        self.view = view
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        if self._dispose is not None:
            self._dispose()


@dataclass
class Mounted:
    strategy: Optional[str]
    status: str
    handle: MountHandle


@dataclass
class PanoramaView:
    surface: Surface
    scene: Scene
    camera: PerspectiveCamera
    controls: OrbitControls
    loop: Optional[RenderLoop] = None


class ModelViewerStrategy:
    name = "model-viewer"
    status = STATUS_MODEL

    async def mount(self, container: ViewerMount, world_file: WorldFile, is_current) -> MountHandle:
        node = ModelViewerNode(
            world_file.url,
            {
                "camera-controls": "",
                "touch-action": "pan-y",
                "style": "width:100%;height:100%;display:block;background:#0b0b0b",
                "alt": "Interactive 3D world preview",
            },
        )
        container.append(node)
        return MountHandle(view=node)


class PanoramaStrategy:
    """Equirectangular image on the inside of a sphere, camera at its centre."""
    name = "panorama"
    status = STATUS_PANORAMA

    def __init__(self, texture_loader, scheduler=None, surface_factory=Surface):
        self.texture_loader = texture_loader
        self.scheduler = scheduler or AsyncioFrameScheduler()
        self.surface_factory = surface_factory

    async def mount(self, container: ViewerMount, world_file: WorldFile, is_current) -> MountHandle:
        width, height = container.client_width, container.client_height
        surface = self.surface_factory(antialias=True)
        surface.set_size(width, height)

        scene = Scene()
        camera = PerspectiveCamera(PANORAMA_FOV, width / height if height else 1.0, PANORAMA_NEAR, PANORAMA_FAR)
        camera.position = PANORAMA_CAMERA_POSITION
        controls = OrbitControls(camera, surface)
        controls.enable_zoom = False
        view = PanoramaView(surface=surface, scene=scene, camera=camera, controls=controls)

        def describe() -> dict:
            mesh = scene.children[0] if scene.children else None
            texture = mesh.material.map if mesh else None
            return {
                "antialias": surface.antialias,
                "width": surface.width,
                "height": surface.height,
                "texture": texture.url if texture else world_file.url,
                "mapping": texture.mapping if texture else EQUIRECTANGULAR,
                "camera": {
                    "fov": camera.fov,
                    "aspect": camera.aspect,
                    "near": camera.near,
                    "far": camera.far,
                    "position": list(camera.position),
                },
                "controls": {"enable_zoom": controls.enable_zoom},
                "sphere": {
                    "radius": SPHERE_RADIUS,
                    "width_segments": SPHERE_SEGMENTS,
                    "height_segments": SPHERE_SEGMENTS,
                    "scale": [-1, 1, 1],
                },
            }

        container.append(PanoramaNode(surface, describe))

        texture = await self.texture_loader(world_file.url)
        if not is_current():
            logger.debug("Panorama mount for %s superseded while loading texture", world_file.url)
            handle = MountHandle(view=view)
            handle.dispose()
            return handle
        texture.mapping = EQUIRECTANGULAR

        geometry = SphereGeometry(SPHERE_RADIUS, SPHERE_SEGMENTS, SPHERE_SEGMENTS)
        geometry.scale(-1, 1, 1)
        scene.add(Mesh(geometry, MeshBasicMaterial(map=texture)))

        def on_resize() -> None:
            w, h = container.client_width, container.client_height
            surface.set_size(w, h)
            if h:
                camera.aspect = w / h
                camera.update_projection_matrix()

        unobserve = container.observe_resize(on_resize)

        def tick() -> None:
            controls.update()
            surface.render(scene, camera)

        view.loop = RenderLoop(self.scheduler, tick)
        view.loop.start()

        def dispose() -> None:
            view.loop.stop()
            unobserve()

        return MountHandle(dispose, view=view)


class FallbackStrategy:
    name = "fallback"
    status = STATUS_FALLBACK

    async def mount(self, container: ViewerMount, world_file: WorldFile, is_current) -> MountHandle:
        node = NoticeNode(FALLBACK_NOTICE)
        container.append(node)
        return MountHandle(view=node)


Predicate = Callable[[WorldFile], bool]


def default_strategies(texture_loader, scheduler=None) -> List[Tuple[Predicate, object]]:
    return [
        (is_model, ModelViewerStrategy()),
        (is_image, PanoramaStrategy(texture_loader, scheduler=scheduler)),
        (_always, FallbackStrategy()),
    ]


class RendererDispatcher:
    def __init__(self, strategies: Sequence[Tuple[Predicate, object]]):
        self.strategies = list(strategies)
        self._active: "weakref.WeakKeyDictionary[ViewerMount, MountHandle]" = weakref.WeakKeyDictionary()
        self._epochs: "weakref.WeakKeyDictionary[ViewerMount, int]" = weakref.WeakKeyDictionary()

    def select(self, world_file: WorldFile):
        for predicate, strategy in self.strategies:
            if predicate(world_file):
                return strategy
        return None

    def clear(self, container: ViewerMount) -> None:
        """Dispose the container's current view and empty it."""
        self._epochs[container] = self._epochs.get(container, 0) + 1
        handle = self._active.pop(container, None)
        if handle is not None:
            handle.dispose()
        container.replace_children()

    def active_handle(self, container: ViewerMount) -> Optional[MountHandle]:
        return self._active.get(container)

    async def mount(self, container: ViewerMount, world_file: Optional[WorldFile]) -> Mounted:
        self.clear(container)
        epoch = self._epochs[container]

        if world_file is None or not world_file.url:
            return Mounted(strategy=None, status=STATUS_NO_FILE, handle=MountHandle())

        strategy = self.select(world_file)
        if strategy is None:
            return Mounted(strategy=None, status=STATUS_FALLBACK, handle=MountHandle())

        def is_current() -> bool:
            return self._epochs.get(container) == epoch

        handle = await strategy.mount(container, world_file, is_current)
        if is_current():
            self._active[container] = handle
        else:
            handle.dispose()
        logger.debug("Mounted %s via %s", world_file.url, strategy.name)
        return Mounted(strategy=strategy.name, status=strategy.status, handle=handle)
