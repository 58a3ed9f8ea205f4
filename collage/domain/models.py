# collage/domain/models.py
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PhotoStyle = Literal["framed", "taped", "plain"]
TextKind = Literal["date", "title", "body"]
TextAlign = Literal["left", "center", "right"]
FontFamily = Literal["sans", "serif"]
AssetKind = Literal["sticker", "frame", "decoration"]


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CanvasSpec(_Model):
    width: int = Field(gt=0)
    height: int = Field(gt=0)

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"


class NormalizedBox(_Model):
    x: float
    y: float
    w: float
    h: float


class PhotoPlacement(_Model):
    id: str
    source_index: int = Field(alias="sourceIndex")
    box: NormalizedBox
    rotate: float = 0.0
    style: PhotoStyle = "framed"
    corner_radius: float = Field(default=12.0, alias="cornerRadius", ge=0)
    shadow: bool = True

    def to_plan(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sourceIndex": self.source_index,
            **self.box.model_dump(),
            "rotate": self.rotate,
            "style": self.style,
            "cornerRadius": self.corner_radius,
            "shadow": self.shadow,
        }


class TextBlock(_Model):
    id: str
    kind: TextKind = "body"
    text: str = ""
    box: NormalizedBox
    align: TextAlign = "left"
    font_size: Optional[float] = Field(default=None, alias="fontSize")
    color: Optional[str] = None
    font_family: FontFamily = Field(default="sans", alias="fontFamily")
    rotate: float = 0.0

    def to_plan(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "kind": self.kind,
            "text": self.text,
            **self.box.model_dump(),
            "align": self.align,
            "fontFamily": self.font_family,
            "rotate": self.rotate,
        }
        if self.font_size is not None:
            out["fontSize"] = self.font_size
        if self.color is not None:
            out["color"] = self.color
        return out


class StickerPlacement(_Model):
    element_id: str = Field(alias="elementId", min_length=1)
    box: NormalizedBox
    rotate: float = 0.0

    def to_plan(self) -> Dict[str, Any]:
        return {"elementId": self.element_id, **self.box.model_dump(), "rotate": self.rotate}


class CollageLayout(_Model):
    canvas: CanvasSpec
    background_style: str = Field(default="paper", alias="backgroundStyle")
    photos: List[PhotoPlacement] = Field(default_factory=list)
    texts: List[TextBlock] = Field(default_factory=list)
    stickers: List[StickerPlacement] = Field(default_factory=list)

    def to_plan(self) -> Dict[str, Any]:
        """Flat JSON shape used by the planner, accepted back by normalize_layout."""
        return {
            "canvas": self.canvas.model_dump(),
            "backgroundStyle": self.background_style,
            "photos": [p.to_plan() for p in self.photos],
            "texts": [t.to_plan() for t in self.texts],
            "stickers": [s.to_plan() for s in self.stickers],
        }


class PlanElement(_Model):
    id: str
    kind: AssetKind = "sticker"
    prompt: str = ""


class CollagePlan(_Model):
    style: str = ""
    palette: List[str] = Field(default_factory=list)
    background_prompt: str = Field(default="", alias="backgroundPrompt")
    elements: List[PlanElement] = Field(default_factory=list)
    layout: CollageLayout
    notes: str = ""

    def to_plan(self) -> Dict[str, Any]:
        return {
            "style": self.style,
            "palette": list(self.palette),
            "backgroundPrompt": self.background_prompt,
            "elements": [e.model_dump() for e in self.elements],
            "layout": self.layout.to_plan(),
            "notes": self.notes,
        }


class GeneratedAsset(_Model):
    id: str
    kind: AssetKind = "sticker"
    image_bytes: bytes = Field(alias="imageBytes", repr=False)
    prompt: str = ""


class UploadedImage(_Model):
    filename: Optional[str] = None
    content_type: Optional[str] = None
    data: Optional[bytes] = Field(default=None, repr=False)


class ProgressEvent(_Model):
    stage: str
    percent: float = Field(ge=0, le=1)
    message: Optional[str] = None


ProgressCallback = Callable[[ProgressEvent], Any]


class GenerateRequest(_Model):
    prompt: str = ""
    style: Optional[str] = None
    template_id: Optional[str] = None
    files: List[UploadedImage] = Field(default_factory=list)
    width: Optional[int] = None
    height: Optional[int] = None
    provider: Optional[str] = None
    date_text: Optional[str] = None
    title_text: Optional[str] = None
    body_text: Optional[str] = None


class GenerationResult(_Model):
    final_image_bytes: bytes = Field(repr=False)
    background_image_bytes: bytes = Field(repr=False)
    assets: List[GeneratedAsset] = Field(default_factory=list)
    layout: CollageLayout
    plan: CollagePlan
    resolved_style_prompt: str
    background_prompt: str
