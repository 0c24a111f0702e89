from fastapi import APIRouter, Depends

from ..deps import get_app_settings
from ..settings import Settings


router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health(settings: Settings = Depends(get_app_settings)):
	return {
		"status": "ok",
		"gemini_configured": bool(settings.gemini_api_key),
		"openai_configured": bool(settings.openai_api_key),
	}
