# collage/infrastructure/providers/base.py
"""
Provider capabilities consumed by the collage pipeline.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from collage.domain.models import CanvasSpec


@dataclass
class PlanningContext:
    prompt: str
    style: str
    template_id: Optional[str]
    photo_count: int
    canvas: CanvasSpec


class PlanningProvider(ABC):
    """Turns a prompt plus reference photos into a collage plan."""

    @abstractmethod
    async def plan_layout(self, context: PlanningContext, reference_images: Sequence[bytes]) -> Dict[str, Any]:
        """
        Ask the model for a plan.

        Args:
            context: Prompt, resolved style, template id, photo count and canvas
            reference_images: PNG bytes of the uploaded photos, in upload order

        Returns:
            The plan object (style, palette, backgroundPrompt, elements, layout, notes).
            Its ``layout`` is untrusted and goes through normalize_layout.
        """


class ImageProvider(ABC):
    """Generates a single image from a prompt."""

    @abstractmethod
    async def generate_image(self, prompt: str, size: str, transparent: bool = False) -> bytes:
        """
        Generate one image.

        Args:
            prompt: Full prompt text
            size: Logical size "WxH"; the adapter maps it to what the vendor accepts
            transparent: Whether a transparent background is wanted

        Returns:
            Encoded image bytes
        """


class CollageProvider(PlanningProvider, ImageProvider):
    """A vendor adapter offering both capabilities."""
    id: str = ""
