from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from convertly.api.dependencies import get_newsletter_service
from convertly.features.newsletter.service import NewsletterService


router = APIRouter(prefix="/api", tags=["newsletter"])


class SubscribeRequest(BaseModel):
    email: Optional[str] = None


@router.post("/newsletter")
async def subscribe(request: SubscribeRequest, service: NewsletterService = Depends(get_newsletter_service)):
    email = service.subscribe(request.email)
    return {"success": True, "message": "Successfully subscribed to newsletter", "email": email}
