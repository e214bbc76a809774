"""
Catalog Lookup: résout un sujet achetable (cours ou commande restaurant) et son prix.
Lecture seule; appelée avant toute création de session pour que le prix ne vienne jamais du client.
"""
from typing import Any, Dict
import logging

from payflow.courses import repository as courses_repo
from payflow.orders import repository as orders_repo
from payflow.payments.errors import SubjectNotFound
from payflow.payments.models import SubjectRef, SubjectType
from .models import CatalogItem, CatalogLine

logger = logging.getLogger(__name__)

# module payflow.catalog.service
def price_from_row(row: Dict[str, Any]) -> float:
    """
    Prix d'une ligne catalogue en unités majeures (str|float|int accepté).
    Retourne 0.0 si parsing impossible.
    """
    try:
        return float(row.get("price") or 0)
    except (TypeError, ValueError):
        return 0.0

def to_minor_units(price: float) -> int:
    """4999.0 -> 499900 (paise/centimes)."""
    return int(round(price * 100))

def _resolve_course(course_id: str) -> CatalogItem:
    course = courses_repo.get_course(course_id)
    if not course or course.get("is_published") is False:
        raise SubjectNotFound("Cours introuvable")
    unit_amount = to_minor_units(price_from_row(course))
    if unit_amount <= 0:
        # Un cours gratuit ne passe pas par le checkout
        raise SubjectNotFound("Cours non achetable")
    title = course.get("title") or "Cours"
    thumbnail = course.get("thumbnail") or None
    return CatalogItem(
        subject=SubjectRef(subject_type=SubjectType.COURSE, subject_id=str(course["id"])),
        display_name=title,
        image_ref=thumbnail,
        lines=[CatalogLine(name=title, unit_amount=unit_amount, quantity=1, image=thumbnail)],
    )

def _resolve_order(order_id: str) -> CatalogItem:
    order = orders_repo.get_order(order_id)
    if not order or order.get("status") != "pending":
        raise SubjectNotFound("Commande introuvable")
    lines = []
    for item in order.get("cart_items") or []:
        qty = int(item.get("quantity") or 0)
        unit_amount = int(item.get("price") or 0)
        if qty <= 0 or unit_amount <= 0:
            continue
        lines.append(CatalogLine(
            name=item.get("name") or "Article",
            unit_amount=unit_amount,
            quantity=qty,
            image=item.get("image") or None,
        ))
    if not lines:
        raise SubjectNotFound("Commande vide")
    return CatalogItem(
        subject=SubjectRef(subject_type=SubjectType.ORDER, subject_id=str(order["id"])),
        display_name=f"Commande {order['id']}",
        image_ref=lines[0].image,
        lines=lines,
    )

def resolve(subject: SubjectRef) -> CatalogItem:
    """
    resolve(subject) -> CatalogItem | SubjectNotFound
    - cours: prix du cours (unités majeures en base) converti en unités mineures
    - commande: lignes figées dans la commande pending, prix en unités mineures
    """
    if subject.subject_type == SubjectType.COURSE:
        item = _resolve_course(subject.subject_id)
    else:
        item = _resolve_order(subject.subject_id)
    logger.debug("catalog.resolve subject=%s:%s amount=%s", subject.subject_type.value, subject.subject_id, item.amount)
    return item
