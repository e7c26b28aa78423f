"""
Spend coach chat schemas
"""
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[Dict[str, Any]] = []
    goal: Optional[str] = None
    locale: Optional[str] = None
    actions: List[Any] = []


class ChatResponse(BaseModel):
    message: str
    suggestions: List[Any] = []
    actions: List[Any] = []
    confidence: Optional[float] = None
