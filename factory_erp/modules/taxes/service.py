from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from decimal import Decimal
from typing import Optional
from uuid import UUID
import logging

from factory_erp.common.exceptions import ConflictError, NotFoundError, StorageError
from factory_erp.modules.taxes.models import HSNCode
from factory_erp.modules.taxes.schemas import HSNCreate, HSNUpdate

logger = logging.getLogger(__name__)

# Textile and job-work codes used by the factory out of the box
DEFAULT_HSN_CODES = [
    {"code": "6109", "description": "T-Shirts", "tax_rate": Decimal("5")},
    {"code": "6203", "description": "Men's Trousers/Suits", "tax_rate": Decimal("5")},
    {"code": "6204", "description": "Women's Dresses/Suits", "tax_rate": Decimal("5")},
    {"code": "6111", "description": "Babies Garments", "tax_rate": Decimal("5")},
    {"code": "6205", "description": "Men's Shirts", "tax_rate": Decimal("5")},
    {"code": "6206", "description": "Women's Blouses/Shirts", "tax_rate": Decimal("5")},
    {"code": "5208", "description": "Cotton Fabrics", "tax_rate": Decimal("12")},
    {"code": "9988", "description": "Stitching/Job Work", "tax_rate": Decimal("18")},
]


class HSNService:
    def __init__(self, db: Session):
        self.db = db

    def create_hsn(self, hsn_data: HSNCreate) -> HSNCode:
        """Register a new HSN code"""
        existing = self.db.query(HSNCode).filter(HSNCode.code == hsn_data.code).first()
        if existing:
            raise ConflictError(f"HSN code '{hsn_data.code}' already exists", code_value=hsn_data.code)

        hsn = HSNCode(**hsn_data.model_dump())
        try:
            self.db.add(hsn)
            self.db.commit()
            self.db.refresh(hsn)
            return hsn
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(f"HSN code '{hsn_data.code}' already exists", code_value=hsn_data.code)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating HSN code {hsn_data.code}: {e}", exc_info=True)
            raise StorageError("Could not save HSN code")

    def list_hsn(self, limit: int = 100, offset: int = 0, search: Optional[str] = None) -> dict:
        query = self.db.query(HSNCode)
        if search:
            query = query.filter(
                HSNCode.code.ilike(f"%{search}%") | HSNCode.description.ilike(f"%{search}%")
            )
        total = query.count()
        items = query.order_by(HSNCode.code).offset(offset).limit(limit).all()
        return {"items": items, "total": total, "limit": limit, "offset": offset}

    def get_by_id(self, hsn_id: UUID) -> HSNCode:
        hsn = self.db.query(HSNCode).filter(HSNCode.id == hsn_id).first()
        if not hsn:
            raise NotFoundError("HSN code not found", hsn_id=str(hsn_id))
        return hsn

    def get_by_code(self, code: str) -> HSNCode:
        hsn = self.db.query(HSNCode).filter(HSNCode.code == code).first()
        if not hsn:
            raise NotFoundError(f"HSN code '{code}' not found")
        return hsn

    def update_hsn(self, hsn_id: UUID, hsn_update: HSNUpdate) -> HSNCode:
        hsn = self.get_by_id(hsn_id)
        changes = hsn_update.model_dump(exclude_unset=True)
        if "code" in changes and changes["code"] != hsn.code:
            clash = self.db.query(HSNCode).filter(HSNCode.code == changes["code"]).first()
            if clash:
                raise ConflictError(f"HSN code '{changes['code']}' already exists", code_value=changes["code"])
        for key, value in changes.items():
            setattr(hsn, key, value)
        try:
            self.db.commit()
            self.db.refresh(hsn)
            return hsn
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating HSN code {hsn_id}: {e}", exc_info=True)
            raise StorageError("Could not update HSN code")

    def delete_hsn(self, hsn_id: UUID) -> None:
        # Invoice items keep the code as text, so removing it from the registry is safe
        hsn = self.get_by_id(hsn_id)
        try:
            self.db.delete(hsn)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting HSN code {hsn_id}: {e}", exc_info=True)
            raise StorageError("Could not delete HSN code")

    def default_rate(self, code: Optional[str]) -> Optional[Decimal]:
        """Registry rate for a code, or None when the code is unknown."""
        if not code:
            return None
        hsn = self.db.query(HSNCode).filter(HSNCode.code == code).first()
        return Decimal(hsn.tax_rate) if hsn else None

    def seed_defaults(self) -> int:
        """Insert the default codes that are missing; returns how many were added."""
        existing = {row.code for row in self.db.query(HSNCode.code).all()}
        added = 0
        for entry in DEFAULT_HSN_CODES:
            if entry["code"] in existing:
                continue
            self.db.add(HSNCode(**entry))
            added += 1
        self.db.commit()
        logger.info(f"Seeded {added} default HSN codes")
        return added
