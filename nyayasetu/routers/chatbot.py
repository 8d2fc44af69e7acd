"""
NyayaSetu - Help Chatbot Router
FAQ answers for the help widget in English and Hindi.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query
from pydantic import Field

from nyayasetu.models.schemas import CamelModel, envelope
from nyayasetu.services import faq

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chatbot", tags=["Help Chatbot"])


class AskRequest(CamelModel):
    message: str = Field(..., max_length=500)
    language: Optional[str] = None


@router.post("/ask")
async def ask(body: AskRequest):
    """
    Answer a help question.

    Without an explicit language, Devanagari input is answered from the
    Hindi FAQ and everything else from the English one.
    """
    language = body.language
    if not language:
        language = "hi" if faq.detect_script(body.message) == "devanagari" else faq.DEFAULT_LANGUAGE

    result = faq.find_best_answer(body.message, language)
    data = result.to_dict()
    data["script"] = faq.detect_script(body.message)
    return envelope(data)


@router.get("/quick-actions")
async def quick_actions(language: str = Query(faq.DEFAULT_LANGUAGE)):
    return envelope(faq.get_quick_actions(language))


@router.get("/languages")
async def languages():
    return envelope(faq.available_languages())
