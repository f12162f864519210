from pydantic import BaseModel, ConfigDict, field_validator
from typing import List, Optional, Mapping, Any


class WorldFile(BaseModel):
    """Artifact descriptor returned by the generation service."""
    model_config = ConfigDict(frozen=True, extra="allow")

    url: str = ""
    content_type: str = ""
    file_name: Optional[str] = None
    file_size: Optional[int] = None

    @field_validator("url", "content_type", mode="before")
    @classmethod
    def _null_as_empty(cls, v):
        return "" if v is None else v


class GenerationRequest(BaseModel):
    image_url: str
    labels_fg1: str = ""
    labels_fg2: str = ""
    classes: str = ""
    # Excluded from identity; bypasses the cache lookup only.
    force: bool = False

    def identity(self) -> List[str]:
        return [self.image_url, self.labels_fg1, self.labels_fg2, self.classes]

    def payload(self) -> dict:
        return {
            "image_url": self.image_url,
            "labels_fg1": self.labels_fg1,
            "labels_fg2": self.labels_fg2,
            "classes": self.classes,
        }


class GenerationOutcome(BaseModel):
    result: WorldFile
    served_from_cache: bool


class CacheEntry(BaseModel):
    world_file: WorldFile


class SourceItem(BaseModel):
    """A gallery item that can be opened in the preview dialog."""
    model_config = ConfigDict(frozen=True)

    image_url: str
    labels_fg1: str = ""
    labels_fg2: str = ""
    classes: str = ""
    title: str = "Preview"

    @classmethod
    def from_dataset(
        cls,
        dataset: Mapping[str, Any],
        caption: Optional[str] = None,
        img_src: Optional[str] = None,
    ) -> "SourceItem":
        """Build an item from element data attributes, caption text and <img> src.

        Accepts camelCase dataset names (``worldImage``, ``labelsFg1``) as
        the page exposes them.
        """
        image = dataset.get("worldImage") or dataset.get("image") or img_src or ""
        title = (caption or "").strip() or "Preview"
        return cls(
            image_url=image,
            labels_fg1=dataset.get("labelsFg1") or "",
            labels_fg2=dataset.get("labelsFg2") or "",
            classes=dataset.get("classes") or "",
            title=title,
        )

    def to_request(self, force: bool = False) -> GenerationRequest:
        return GenerationRequest(
            image_url=self.image_url,
            labels_fg1=self.labels_fg1,
            labels_fg2=self.labels_fg2,
            classes=self.classes,
            force=force,
        )


class WorldPreviewRequest(BaseModel):
    """Body accepted by the world-preview proxy endpoint."""
    image_url: str
    labels_fg1: str
    labels_fg2: str
    classes: str

    def is_complete(self) -> bool:
        return all([self.image_url, self.labels_fg1, self.labels_fg2, self.classes])
