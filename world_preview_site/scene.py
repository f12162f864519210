"""Panorama scene pieces: surface, camera, controls, sphere and texture.

These mirror the three.js objects the browser viewer is built from, so the
panorama strategy can size, resize and drive them frame by frame without a
GPU. ``PanoramaNode`` serialises the resulting scene for the browser.
"""
from __future__ import annotations

import io
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import httpx
from PIL import Image, UnidentifiedImageError

EQUIRECTANGULAR = "equirectangular"


class ViewerError(Exception):
    """A view could not be mounted."""


class TextureLoadError(ViewerError):
    pass


@dataclass
class Texture:
    url: str
    width: int = 0
    height: int = 0
    mapping: Optional[str] = None


@dataclass
class SphereGeometry:
    radius: float = 1.0
    width_segments: int = 32
    height_segments: int = 16
    scale_factors: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    def scale(self, x: float, y: float, z: float) -> None:
        sx, sy, sz = self.scale_factors
        self.scale_factors = (sx * x, sy * y, sz * z)

    @property
    def inverted(self) -> bool:
        # An odd number of negative axes flips the winding order.
        return sum(1 for s in self.scale_factors if s < 0) % 2 == 1


@dataclass
class MeshBasicMaterial:
    map: Optional[Texture] = None


@dataclass
class Mesh:
    geometry: SphereGeometry
    material: MeshBasicMaterial


@dataclass
class Scene:
    children: List[Mesh] = field(default_factory=list)

    def add(self, mesh: Mesh) -> None:
        self.children.append(mesh)


class PerspectiveCamera:
    def __init__(self, fov: float, aspect: float, near: float, far: float):
        self.fov = fov
        self.aspect = aspect
        self.near = near
        self.far = far
        self.position = (0.0, 0.0, 0.0)
        self.projection_matrix: List[float] = []
        self.update_projection_matrix()

    def update_projection_matrix(self) -> None:
        """Recompute the column-major projection matrix from fov/aspect."""
        f = 1.0 / math.tan(math.radians(self.fov) / 2.0)
        nf = 1.0 / (self.near - self.far)
        self.projection_matrix = [
            f / self.aspect, 0.0, 0.0, 0.0,
            0.0, f, 0.0, 0.0,
            0.0, 0.0, (self.far + self.near) * nf, -1.0,
            0.0, 0.0, 2.0 * self.far * self.near * nf, 0.0,
        ]


class OrbitControls:
    """Orbit camera controls; ``update`` is called once per frame."""

    def __init__(self, camera: PerspectiveCamera, surface: "Surface"):
        self.camera = camera
        self.surface = surface
        self.enable_zoom = True
        self.updates = 0

    def update(self) -> None:
        self.updates += 1


class Surface:
    """Rendering surface the panorama draws into."""

    def __init__(self, antialias: bool = True):
        self.antialias = antialias
        self.width = 0.0
        self.height = 0.0
        self.frames_rendered = 0

    def set_size(self, width: float, height: float) -> None:
        self.width = width
        self.height = height

    def render(self, scene: Scene, camera: PerspectiveCamera) -> None:
        self.frames_rendered += 1


class HttpTextureLoader:
    """Fetch a texture over HTTP and read its pixel size with Pillow."""

    def __init__(self, http: httpx.AsyncClient):
        self.http = http

    async def __call__(self, url: str) -> Texture:
        try:
            response = await self.http.get(url)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TextureLoadError(f"Failed to load texture {url}: {e}") from e
        try:
            with Image.open(io.BytesIO(response.content)) as img:
                width, height = img.size
        except (UnidentifiedImageError, OSError) as e:
            raise TextureLoadError(f"Unreadable texture {url}: {e}") from e
        return Texture(url=url, width=width, height=height)
