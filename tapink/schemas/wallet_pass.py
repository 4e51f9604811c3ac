from typing import List, Optional

from pydantic import BaseModel, Field


class PassColorsPayload(BaseModel):
    """Hex colors supplied by the card owner. Malformed values fall back to defaults."""
    background: Optional[str] = None
    label: Optional[str] = None
    text: Optional[str] = None


class WalletPassRequest(BaseModel):
    """Branding payload for POST /api/wallet-pass"""
    name: str = Field(..., min_length=1, max_length=200)
    company: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=200)
    barcodeMessage: str = Field(..., min_length=1, max_length=2048)
    serialNumber: Optional[str] = Field(None, min_length=1, max_length=128)
    # Data URL or remote HTTP(S) URL
    logoUrl: Optional[str] = None
    stripImageUrl: Optional[str] = None
    profilePicUrl: Optional[str] = None
    colors: Optional[PassColorsPayload] = None


class WalletPassErrorResponse(BaseModel):
    error: str
    message: str
    missing: List[str] = []
