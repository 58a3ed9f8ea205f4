# collage/domain/templates.py
from typing import Dict, Optional

TEMPLATE_STYLES: Dict[str, str] = {
    "vintage-journal": "vintage journal scrapbook, paper texture, washi tape, film grain",
    "cyberpunk": "cyberpunk neon collage, glitch, hologram stickers, dark city",
    "healing-illustration": "healing pastel illustration collage, warm light, cute doodles",
    "minimal-paper": "minimal paper collage, clean grid, whitespace, editorial",
    "polaroid-wall": "polaroid photo wall collage, tape, pin board, soft shadow",
}
DEFAULT_STYLE = "vintage journal scrapbook, paper texture, unified collage style"


def resolve_style(style: Optional[str] = None, template_id: Optional[str] = None) -> str:
    """Explicit style wins, then the template's description, then the generic default."""
    if style and style.strip():
        return style.strip()
    return TEMPLATE_STYLES.get((template_id or "").strip(), DEFAULT_STYLE)
