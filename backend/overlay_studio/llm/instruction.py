"""Compose an edit instruction from item / position / style fields."""

from __future__ import annotations

from pydantic import BaseModel

ITEM_PLACEHOLDER = "a pair of sunglasses"
POSITION_PLACEHOLDER = "the eyes"
STYLE_PLACEHOLDER = "matching the original image style"


class InstructionTemplate(BaseModel):
    item: str = ""
    position: str = ""
    style: str = ""


def compose_instruction(template: InstructionTemplate) -> str:
    """Blank fields fall back to their placeholder text."""
    item = template.item.strip() or ITEM_PLACEHOLDER
    position = template.position.strip() or POSITION_PLACEHOLDER
    style = template.style.strip() or STYLE_PLACEHOLDER
    return f"Add {item}, placed at {position}, {style}"


def resolve_instruction(prompt: str | None, template: InstructionTemplate | None) -> str:
    """An explicit prompt wins; otherwise compose one from the template."""
    if prompt and prompt.strip():
        return prompt
    if template is not None:
        return compose_instruction(template)
    return ""
