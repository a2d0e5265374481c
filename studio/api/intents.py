"""
Intents API Routes
Prompt preview for rendering intents.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from studio.api.deps import get_db
from studio.models import Product, PromptOverride, RenderingIntent
from studio.schemas.generate import PromptPreviewRequest, PromptPreviewResponse
from studio.services.prompt_renderer import ProductFacts, VariableSpec, render_prompt

router = APIRouter()


@router.post("/{intent_id}/preview", response_model=PromptPreviewResponse)
async def preview_prompt(
    intent_id: str,
    request: PromptPreviewRequest,
    db: Session = Depends(get_db),
):
    """Render the prompt a generation would send, and list missing required variables."""
    intent = db.get(RenderingIntent, intent_id)
    if not intent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rendering intent not found")

    template = intent.prompt_template
    facts = ProductFacts()
    if request.product_id:
        product = db.get(Product, request.product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        facts = ProductFacts(title=product.title, category=product.category, external_id=product.external_id)
        override = (
            db.query(PromptOverride)
            .filter(PromptOverride.product_id == product.id, PromptOverride.intent_id == intent.id)
            .first()
        )
        if override:
            template = override.custom_prompt

    rendered = render_prompt(
        template,
        request.variable_values,
        facts,
        [VariableSpec.from_model(v) for v in intent.variables],
        request.custom_instructions,
    )
    return PromptPreviewResponse(
        prompt=rendered.text,
        missing_variables=rendered.missing_labels,
        values=rendered.values,
    )
