from typing import List, Optional

from pydantic import BaseModel

from payflow.payments.models import SubjectRef


class CatalogLine(BaseModel):
    name: str
    unit_amount: int
    quantity: int = 1
    image: Optional[str] = None


class CatalogItem(BaseModel):
    """Sujet achetable résolu côté serveur: le prix ne vient jamais du client."""
    subject: SubjectRef
    display_name: str
    image_ref: Optional[str] = None
    lines: List[CatalogLine]

    @property
    def amount(self) -> int:
        return sum(line.unit_amount * line.quantity for line in self.lines)
