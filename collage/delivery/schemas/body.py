import base64

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional

from collage.domain.models import GenerationResult


class ComposeJsonBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str = ""
    style: Optional[str] = None
    template_id: Optional[str] = Field(default=None, alias="templateId")
    provider: Optional[str] = None
    width: Optional[int] = Field(default=None, ge=256, le=2048)
    height: Optional[int] = Field(default=None, ge=256, le=2048)
    date_text: Optional[str] = Field(default=None, alias="dateText")
    title_text: Optional[str] = Field(default=None, alias="titleText")
    body_text: Optional[str] = Field(default=None, alias="bodyText")

    # User photos; URLs, data URLs or raw base64
    images: List[str] = Field(default_factory=list, max_length=3)


class AssetOut(BaseModel):
    id: str
    kind: str
    prompt: str
    base64: str


class ComposeResponse(BaseModel):
    imageBase64: str
    backgroundBase64: str
    assets: List[AssetOut] = Field(default_factory=list)
    plan: Dict[str, Any]
    resolvedStyle: str
    backgroundPrompt: str


class ProvidersResponse(BaseModel):
    providers: List[str]
    default: str


def to_response(result: GenerationResult) -> ComposeResponse:
    def b64(data: bytes) -> str:
        return base64.b64encode(data).decode("utf-8")

    return ComposeResponse(
        imageBase64=b64(result.final_image_bytes),
        backgroundBase64=b64(result.background_image_bytes),
        assets=[AssetOut(id=a.id, kind=a.kind, prompt=a.prompt, base64=b64(a.image_bytes)) for a in result.assets],
        plan=result.plan.to_plan(),
        resolvedStyle=result.resolved_style_prompt,
        backgroundPrompt=result.background_prompt,
    )
