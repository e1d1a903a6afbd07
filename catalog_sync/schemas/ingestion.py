from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field


class ProductUpdateIn(BaseModel):
    externalId: str = Field(min_length=1)
    stock: Optional[int] = None
    availability: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class InventoryUpdatePayload(BaseModel):
    merchantId: str = Field(min_length=1)
    productUpdates: List[ProductUpdateIn] = []

    model_config = ConfigDict(extra="ignore")


class IngestionAccepted(BaseModel):
    status: str = "accepted"
    messageId: uuid.UUID
    productUpdates: int = 0
